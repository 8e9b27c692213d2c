"""Initial migration

Revision ID: initial_migration
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel

# revision identifiers, used by Alembic.
revision: str = 'initial_migration'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create fileinfo table
    op.create_table(
        'fileinfo',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column('class_name', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column('stored_file_name', sqlmodel.sql.sqltypes.AutoString(length=1024), nullable=True),
        sa.Column('version', sa.Integer(), nullable=True),
        sa.Column('timestamp', sa.BigInteger(), nullable=True),
        sa.Column('auxiliary_info', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stored_file_name')
    )
    op.create_index(op.f('ix_fileinfo_name'), 'fileinfo', ['name'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_fileinfo_name'), table_name='fileinfo')
    op.drop_table('fileinfo')
