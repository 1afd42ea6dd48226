"""declarative objects table

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

from kiln.adapters.sqlalchemy.mappings import UTCDateTime

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "declarative_objects",
        sa.Column("kind", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("namespace", sa.String(length=255), nullable=False),
        sa.Column("uid", sa.String(length=36), nullable=False),
        sa.Column("generation", sa.Integer(), nullable=False),
        sa.Column("resource_version", sa.Integer(), nullable=False),
        sa.Column("labels", sa.JSON(), nullable=False),
        sa.Column("annotations", sa.JSON(), nullable=False),
        sa.Column("owner_references", sa.JSON(), nullable=False),
        sa.Column("finalizers", sa.JSON(), nullable=False),
        sa.Column("spec", sa.JSON(), nullable=False),
        sa.Column("status", sa.JSON(), nullable=False),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=False),
        sa.Column("deletion_timestamp", UTCDateTime(), nullable=True),
        sa.PrimaryKeyConstraint("kind", "name", name=op.f("pk_declarative_objects")),
        sa.UniqueConstraint("uid", name=op.f("uq_declarative_objects_declarative_objects_uid")),
    )
    op.create_index(
        "ix_declarative_objects_kind_namespace",
        "declarative_objects",
        ["kind", "namespace"],
    )


def downgrade() -> None:
    op.drop_index("ix_declarative_objects_kind_namespace", table_name="declarative_objects")
    op.drop_table("declarative_objects")
