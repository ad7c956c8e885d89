"""
Append-only ledger of installments against buy-later orders.

There is no update or delete: a correction is a new record. Recording is
serialized per order. The order row is locked and re-read, and the append
bumps the order's version column, so a writer that lost a race fails with
``ConcurrencyError`` instead of pushing the total past the price.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from kitab.models import BuyLaterOrder, BuyLaterPayment
from kitab.services import balance, status_policy
from kitab.services.errors import CollaboratorError, ConcurrencyError, NotFoundError, ValidationError
from kitab.services.timeutils import utcnow

logger = logging.getLogger(__name__)


def _lock_order(db: Session, order_id: str) -> BuyLaterOrder:
    order = (
        db.query(BuyLaterOrder)
        .filter(BuyLaterOrder.id == order_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not order:
        raise NotFoundError("Order not found")
    return order


def _parse_amount(amount) -> Decimal:
    """Exact amount in currency units; sub-cent digits are rejected, never rounded."""
    try:
        value = Decimal(str(amount if amount is not None else "0"))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValidationError("Payment amount must be a number") from exc
    if not value.is_finite():
        raise ValidationError("Payment amount must be a number")
    if value <= 0:
        raise ValidationError("Payment amount must be greater than 0")
    if value.normalize().as_tuple().exponent < -2:
        raise ValidationError("Payment amount must have at most 2 decimal places")
    return balance.money(value)


def record_payment(
    db: Session,
    order_id: str,
    amount,
    notes: str | None = None,
    now: datetime | None = None,
) -> BuyLaterPayment:
    value = _parse_amount(amount)
    order = _lock_order(db, order_id)

    remaining = balance.remaining_balance(db, order.id, order.total_price)
    if value > remaining:
        db.rollback()
        logger.warning(
            "Rejected payment of %s on order %s: remaining balance is %s",
            value,
            order_id,
            remaining,
        )
        raise ValidationError(f"Payment amount exceeds remaining balance of {balance.format_money(remaining)}")

    recorded_at = now or utcnow()
    payment = BuyLaterPayment(
        buy_later_order_id=order.id,
        amount=value,
        payment_date=recorded_at,
        notes=(notes or "").strip() or None,
        created_at=recorded_at,
        updated_at=recorded_at,
    )
    db.add(payment)
    # Explicit bump so the version-checked UPDATE runs even if updated_at is unchanged;
    # a concurrent writer makes this flush fail.
    order.version = order.version + 1
    order.updated_at = recorded_at
    try:
        db.flush()
        status_policy.promote_if_settled(db, order)
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        logger.warning("Concurrent payment detected on order %s, rejecting amount %s", order_id, value)
        raise ConcurrencyError("Order was updated by another payment, reload and try again") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to record payment on order %s", order_id)
        raise CollaboratorError("Could not record payment, please try again") from exc

    db.refresh(payment)
    logger.info(
        "Recorded payment %s of %s on order %s (remaining %s)",
        payment.id,
        value,
        order_id,
        remaining - value,
    )
    return payment


def get_payment(db: Session, payment_id: str) -> BuyLaterPayment:
    payment = db.query(BuyLaterPayment).filter(BuyLaterPayment.id == payment_id).first()
    if not payment:
        raise NotFoundError("Payment not found")
    return payment


def list_payments(db: Session) -> list[BuyLaterPayment]:
    """Every recorded payment, newest first."""
    return db.query(BuyLaterPayment).order_by(BuyLaterPayment.payment_date.desc()).all()
