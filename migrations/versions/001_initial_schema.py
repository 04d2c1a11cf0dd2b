"""Initial schema: products, quotes and quote_items matching db.py models.

Revision ID: 001
Revises: (none)
Create Date: 2025-07-16
"""

import sqlalchemy as sa
from alembic import op

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- products ---
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("stock_code", sa.String(100), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sku", sa.String(100), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("origin", sa.String(200), nullable=True),
        sa.Column("length", sa.Numeric(12, 4), nullable=True),
        sa.Column("width", sa.Numeric(12, 4), nullable=True),
        sa.Column("size", sa.String(200), nullable=True),
        sa.Column("stock_level", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_unique_constraint("uq_products_stock_code", "products", ["stock_code"])

    # --- quotes ---
    op.create_table(
        "quotes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("share_token", sa.String(64), nullable=False, unique=True),
        sa.Column("customer_name", sa.Text(), nullable=True),
        sa.Column("customer_email", sa.String(320), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("currency", sa.String(3), server_default="AUD", nullable=False),
        sa.Column("status", sa.String(10), server_default="DRAFT", nullable=False),
        sa.Column("subtotal", sa.Numeric(14, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("tax", sa.Numeric(14, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("total", sa.Numeric(14, 2), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    # --- quote_items ---
    op.create_table(
        "quote_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "quote_id",
            sa.Integer(),
            sa.ForeignKey("quotes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "product_id",
            sa.Integer(),
            sa.ForeignKey("products.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("stock_code", sa.String(100), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sku", sa.String(100), nullable=True),
        sa.Column("origin", sa.String(200), nullable=True),
        sa.Column("length", sa.Numeric(12, 4), nullable=True),
        sa.Column("width", sa.Numeric(12, 4), nullable=True),
        sa.Column("size", sa.String(200), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("qty", sa.Integer(), nullable=False),
        sa.Column("subtotal", sa.Numeric(14, 2), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "idx_quote_items_quote_stock", "quote_items", ["quote_id", "stock_code"],
    )


def downgrade() -> None:
    op.drop_table("quote_items")
    op.drop_table("quotes")
    op.drop_table("products")
