#!/usr/bin/env python
"""
Delete blobs that no file record references.

Updates and removals delete replaced content on a best effort basis, and an
upload whose catalog write fails leaves its content behind. This script
finds those orphan blobs in the configured storage and deletes them.

Blobs younger than --min-age-minutes are skipped: an upload stores its
content before the catalog record is written, so a fresh blob may be
about to become referenced.

Usage:
    PYTHONPATH=.
    python scripts/sweep_orphan_blobs.py --dry-run
    python scripts/sweep_orphan_blobs.py --min-age-minutes 120
"""

import argparse
import sys
from datetime import datetime, timedelta, timezone

from sqlmodel import Session

from api.files.catalog import FileCatalog
from api.files.errors import CatalogError, StorageError
from api.files.storage import BlobStore
from core.db import get_session
from core.deps import get_blob_store, get_s3_client
from core.logger import logger


class OrphanBlobSweeper:
    """Finds and deletes blobs without a catalog record."""

    def __init__(
        self,
        session: Session,
        blob_store: BlobStore,
        min_age: timedelta = timedelta(hours=1),
        dry_run: bool = False,
    ):
        self.catalog = FileCatalog(session)
        self.blob_store = blob_store
        self.min_age = min_age
        self.dry_run = dry_run
        self.stats = {"scanned": 0, "referenced": 0, "too_recent": 0, "deleted": 0, "errors": 0}

    def find_orphans(self, now: datetime | None = None) -> list[str]:
        """Return keys of blobs old enough to sweep that no record references."""
        now = now or datetime.now(timezone.utc)
        # List blobs before records so a blob uploaded in between is never
        # seen without the record that references it.
        blobs = self.blob_store.list_blobs()
        referenced = {
            record.stored_file_name
            for record in self.catalog.list()
            if record.stored_file_name
        }

        orphans = []
        for blob in blobs:
            self.stats["scanned"] += 1
            if blob.key in referenced:
                self.stats["referenced"] += 1
            elif now - blob.last_modified < self.min_age:
                self.stats["too_recent"] += 1
            else:
                orphans.append(blob.key)
        return orphans

    def sweep(self, now: datetime | None = None) -> dict:
        """Delete orphan blobs (or only report them on a dry run)."""
        for key in self.find_orphans(now):
            if self.dry_run:
                logger.info("[DRY RUN] Would delete orphan blob: %s", key)
                continue
            try:
                if self.blob_store.delete(key):
                    self.stats["deleted"] += 1
                    logger.info("Deleted orphan blob: %s", key)
            except StorageError as e:
                self.stats["errors"] += 1
                logger.error("Failed to delete orphan blob %s: %s", key, e)
        return self.stats


def main():
    parser = argparse.ArgumentParser(
        description="Delete stored blobs that no file record references",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show what would be deleted
  python scripts/sweep_orphan_blobs.py --dry-run

  # Only delete orphans older than two hours
  python scripts/sweep_orphan_blobs.py --min-age-minutes 120
        """,
    )
    parser.add_argument(
        "--min-age-minutes",
        type=int,
        default=60,
        help="Skip blobs modified more recently than this (default: 60)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be deleted without making changes",
    )

    args = parser.parse_args()

    session = next(get_session())
    sweeper = OrphanBlobSweeper(
        session,
        get_blob_store(get_s3_client()),
        min_age=timedelta(minutes=args.min_age_minutes),
        dry_run=args.dry_run,
    )

    try:
        stats = sweeper.sweep()
    except (CatalogError, StorageError) as e:
        logger.error("Sweep failed: %s", e)
        sys.exit(1)
    finally:
        session.close()

    logger.info("=" * 50)
    logger.info("SWEEP SUMMARY")
    logger.info("=" * 50)
    for name, count in stats.items():
        logger.info("%s: %s", name.replace("_", " ").capitalize(), count)

    if stats["errors"] > 0:
        sys.exit(1)


if __name__ == "__main__":
    main()
