"""Add last_modified upstream change-tracking column to products.

Revision ID: 002
Revises: 001
Create Date: 2025-07-17

Holds the upstream record's own modification timestamp so a later sync can
tell which products changed in Exo. Additive only, no data migration needed.
"""

import sqlalchemy as sa
from alembic import op

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "products", sa.Column("last_modified", sa.DateTime(timezone=True), nullable=True)
    )


def downgrade() -> None:
    op.drop_column("products", "last_modified")
