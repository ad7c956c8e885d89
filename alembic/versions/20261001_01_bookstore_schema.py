"""bookstore schema

Revision ID: 20261001_01
Revises:
Create Date: 2026-10-01
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261001_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _snapshot_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("user_name", sa.String(length=255), nullable=False),
        sa.Column("user_phone", sa.String(length=64), nullable=True),
        sa.Column("user_room", sa.String(length=64), nullable=True),
        sa.Column("book_id", sa.Integer(), nullable=False),
        sa.Column("book_title", sa.String(length=255), nullable=False),
        sa.Column("book_author", sa.String(length=255), nullable=False),
        sa.Column("book_description", sa.Text(), nullable=False, server_default=""),
        sa.Column("book_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("book_image", sa.String(length=1024), nullable=True),
        sa.Column("book_category", sa.String(length=100), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("total_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("order_status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _ensure_catalog_tables(inspector: sa.Inspector) -> None:
    if not _table_exists(inspector, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("nim", sa.String(length=64), nullable=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("hashed_password", sa.String(length=255), nullable=False),
            sa.Column("role", sa.String(length=16), nullable=False, server_default="user"),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index("ix_users_id", "users", ["id"], unique=False)
        op.create_index("ix_users_nim", "users", ["nim"], unique=False)
        op.create_index("ix_users_email", "users", ["email"], unique=True)

    if not _table_exists(inspector, "books"):
        op.create_table(
            "books",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("author", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("price", sa.Numeric(12, 2), nullable=False),
            sa.Column("image", sa.String(length=1024), nullable=True),
            sa.Column("category", sa.String(length=100), nullable=False),
            sa.Column("stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.CheckConstraint("price >= 0", name="ck_books_price_nonneg"),
            sa.CheckConstraint("stock >= 0", name="ck_books_stock_nonneg"),
        )
        op.create_index("ix_books_id", "books", ["id"], unique=False)
        op.create_index("ix_books_category", "books", ["category"], unique=False)


def _ensure_order_tables(inspector: sa.Inspector) -> None:
    if not _table_exists(inspector, "orders"):
        op.create_table(
            "orders",
            *_snapshot_columns(),
            sa.CheckConstraint("quantity > 0", name="ck_orders_quantity_positive"),
        )
        op.create_index("ix_orders_user_id", "orders", ["user_id"], unique=False)
        op.create_index("ix_orders_book_id", "orders", ["book_id"], unique=False)

    if not _table_exists(inspector, "buy_later_orders"):
        op.create_table(
            "buy_later_orders",
            *_snapshot_columns(),
            sa.Column("payment_duration", sa.Integer(), nullable=False),
            sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("payment_status", sa.String(length=16), nullable=False, server_default="unpaid"),
            sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
            sa.CheckConstraint("quantity > 0", name="ck_buy_later_orders_quantity_positive"),
            sa.CheckConstraint("payment_duration IN (1, 2)", name="ck_buy_later_orders_duration"),
        )
        op.create_index("ix_buy_later_orders_user_id", "buy_later_orders", ["user_id"], unique=False)
        op.create_index("ix_buy_later_orders_book_id", "buy_later_orders", ["book_id"], unique=False)
        op.create_index("ix_buy_later_orders_due_date", "buy_later_orders", ["due_date"], unique=False)

    if not _table_exists(inspector, "buy_later_payments"):
        op.create_table(
            "buy_later_payments",
            sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column(
                "buy_later_order_id",
                sa.String(length=36),
                sa.ForeignKey("buy_later_orders.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("amount", sa.Numeric(14, 2), nullable=False),
            sa.Column("payment_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.CheckConstraint("amount > 0", name="ck_buy_later_payments_amount_positive"),
        )
        op.create_index(
            "ix_buy_later_payments_buy_later_order_id",
            "buy_later_payments",
            ["buy_later_order_id"],
            unique=False,
        )


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    _ensure_catalog_tables(inspector)
    inspector = sa.inspect(bind)
    _ensure_order_tables(inspector)


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table_name in ("buy_later_payments", "buy_later_orders", "orders", "books", "users"):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)
