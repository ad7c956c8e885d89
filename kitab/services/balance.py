"""
Balance calculator for buy-later orders.

Read-only: derives paid-to-date and remaining balance from the payments
table. Nothing here writes, and overpayment is rejected when a payment is
recorded, not here.
"""

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from kitab.models import BuyLaterPayment

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    return Decimal(str(value or "0.00")).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def format_money(value) -> str:
    """Plain decimal text without trailing zeros: ``150000``, ``12500.5``."""
    normalized = Decimal(value).normalize()
    return format(normalized, "f")


def payments_for_order(db: Session, order_id: str) -> list[BuyLaterPayment]:
    """All payments recorded against the order, newest first."""
    return (
        db.query(BuyLaterPayment)
        .filter(BuyLaterPayment.buy_later_order_id == order_id)
        .order_by(BuyLaterPayment.payment_date.desc(), BuyLaterPayment.created_at.desc())
        .all()
    )


def total_paid(db: Session, order_id: str) -> Decimal:
    total = (
        db.query(func.sum(BuyLaterPayment.amount))
        .filter(BuyLaterPayment.buy_later_order_id == order_id)
        .scalar()
    )
    return money(total)


def remaining_balance(db: Session, order_id: str, total_price) -> Decimal:
    return max(ZERO, money(total_price) - total_paid(db, order_id))
