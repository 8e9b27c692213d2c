"""
Define application startup and shutdown procedures
"""

import re
from contextlib import asynccontextmanager
from pathlib import Path
from fastapi import FastAPI
from core.config import get_settings
from core.db import create_db_and_tables
from core.logger import logger


def _log_setting(key: str, value):
    """Log a setting, masking sensitive values like passwords and secrets"""
    if ("PASSWORD" in key or "SECRET" in key) and value is not None:
        logger.info("  %s: %s", key, "*****")
    elif "SQLALCHEMY_DATABASE_URI" in key and value is not None:
        # Mask password in database URI if present
        masked_value = re.sub(r"://(.*?):(.*?)@", r"://\1:*****@", value)
        logger.info("  %s: %s", key, masked_value)
    else:
        logger.info("  %s: %s", key, value)


# Handle startup/shutdown tasks
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("In lifespan...starting up")

    logger.info("Configuration Settings:")
    settings = get_settings()

    # Log computed fields first (they don't appear in vars())
    computed_fields = {
        "SQLALCHEMY_DATABASE_URI": settings.SQLALCHEMY_DATABASE_URI,
        "FILE_STORAGE_BUCKET_URI": settings.FILE_STORAGE_BUCKET_URI,
    }

    for key, value in computed_fields.items():
        _log_setting(key, value)

    # Log remaining settings
    for key, value in vars(settings).items():
        _log_setting(key, value)

    logger.info("Initializing database...")
    create_db_and_tables()

    if settings.STORAGE_BACKEND.lower() == "local":
        storage_root = Path(settings.FILE_STORAGE_ROOT).resolve()
        storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("Storing files under %s", storage_root)
    else:
        logger.info("Storing files under %s", settings.FILE_STORAGE_BUCKET_URI)

    logger.info("In lifespan...yield")
    try:
        yield
    finally:
        # Shutdown
        logger.info("In lifespan...shutting down")
