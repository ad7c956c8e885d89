import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import declared_attr, relationship

from kitab.models.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderSnapshotMixin:
    """Customer and book details copied onto the order when it is placed.

    Book fields are a snapshot, not a foreign key: later catalog edits (or
    deleting the book) must not change historical orders.
    """

    id = Column(String(36), primary_key=True, default=_new_id)

    @declared_attr
    def user_id(cls):
        return Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    user_name = Column(String(255), nullable=False)
    user_phone = Column(String(64), nullable=True)
    user_room = Column(String(64), nullable=True)

    book_id = Column(Integer, nullable=False, index=True)
    book_title = Column(String(255), nullable=False)
    book_author = Column(String(255), nullable=False)
    book_description = Column(Text, nullable=False, default="")
    book_price = Column(Numeric(12, 2), nullable=False)
    book_image = Column(String(1024), nullable=True)
    book_category = Column(String(100), nullable=False)

    quantity = Column(Integer, nullable=False)
    total_price = Column(Numeric(14, 2), nullable=False)
    order_status = Column(String(16), nullable=False, default="pending")  # pending | confirmed | completed | cancelled

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class Order(OrderSnapshotMixin, Base):
    """Buy-now purchase."""

    __tablename__ = "orders"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_orders_quantity_positive"),)


class BuyLaterOrder(OrderSnapshotMixin, Base):
    __tablename__ = "buy_later_orders"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_buy_later_orders_quantity_positive"),
        CheckConstraint("payment_duration IN (1, 2)", name="ck_buy_later_orders_duration"),
    )

    payment_duration = Column(Integer, nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=False, index=True)
    payment_status = Column(String(16), nullable=False, default="unpaid")  # unpaid | paid | overdue
    version = Column(Integer, nullable=False, default=1)

    payments = relationship(
        "BuyLaterPayment",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": version}


class BuyLaterPayment(Base):
    __tablename__ = "buy_later_payments"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_buy_later_payments_amount_positive"),)

    id = Column(String(36), primary_key=True, default=_new_id)
    buy_later_order_id = Column(
        String(36),
        ForeignKey("buy_later_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount = Column(Numeric(14, 2), nullable=False)
    payment_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    order = relationship("BuyLaterOrder", back_populates="payments")
