"""
Status rules for buy-later orders.

``order_status`` is a free admin choice between the four values below.
``payment_status`` has a derived value (paid / overdue / unpaid) computed
from the balance and due date on read. The stored column only changes when
something reconciles it: a payment that settles the order, the admin
reconcile endpoint, or ``sweep_overdue``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy.orm import Session

from kitab.models import BuyLaterOrder
from kitab.services import balance, persistence
from kitab.services.timeutils import as_utc, db_datetime, utcnow

logger = logging.getLogger(__name__)


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    OVERDUE = "overdue"


ORDER_STATUSES = frozenset(s.value for s in OrderStatus)
PAYMENT_STATUSES = frozenset(s.value for s in PaymentStatus)


@dataclass(frozen=True)
class BalanceSummary:
    total_price: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    is_fully_paid: bool
    is_overdue: bool
    effective_payment_status: PaymentStatus


def is_fully_paid(remaining: Decimal) -> bool:
    return remaining == 0


def is_overdue(due_date: datetime, remaining: Decimal, now: datetime | None = None) -> bool:
    now = as_utc(now or utcnow())
    return now > as_utc(due_date) and remaining > 0


def derive_payment_status(
    due_date: datetime,
    remaining: Decimal,
    now: datetime | None = None,
) -> PaymentStatus:
    if is_fully_paid(remaining):
        return PaymentStatus.PAID
    if is_overdue(due_date, remaining, now):
        return PaymentStatus.OVERDUE
    return PaymentStatus.UNPAID


def order_balance(db: Session, order: BuyLaterOrder, now: datetime | None = None) -> BalanceSummary:
    paid = balance.total_paid(db, order.id)
    total = balance.money(order.total_price)
    remaining = max(balance.ZERO, total - paid)
    return BalanceSummary(
        total_price=total,
        total_paid=paid,
        remaining_balance=remaining,
        is_fully_paid=is_fully_paid(remaining),
        is_overdue=is_overdue(order.due_date, remaining, now),
        effective_payment_status=derive_payment_status(order.due_date, remaining, now),
    )


def reconcile_payment_status(db: Session, order: BuyLaterOrder, now: datetime | None = None) -> bool:
    """Write the derived payment status onto the order. Caller commits.

    Returns True when the stored value changed. This also undoes a manual
    override that disagrees with the balance.
    """
    remaining = balance.remaining_balance(db, order.id, order.total_price)
    derived = derive_payment_status(order.due_date, remaining, now)
    if order.payment_status == derived.value:
        return False
    logger.info(
        "Reconciling buy later order %s payment_status %s -> %s (remaining=%s)",
        order.id,
        order.payment_status,
        derived.value,
        remaining,
    )
    order.payment_status = derived.value
    return True


def promote_if_settled(db: Session, order: BuyLaterOrder) -> bool:
    """Mark the order paid once the balance reaches zero. Caller commits."""
    remaining = balance.remaining_balance(db, order.id, order.total_price)
    if not is_fully_paid(remaining) or order.payment_status == PaymentStatus.PAID.value:
        return False
    logger.info("Buy later order %s fully paid, promoting payment_status to paid", order.id)
    order.payment_status = PaymentStatus.PAID.value
    return True


def sweep_overdue(db: Session, now: datetime | None = None) -> list[str]:
    """Flag unpaid orders past their due date as overdue and commit.

    Returns the ids of the orders that changed.
    """
    now = as_utc(now or utcnow())
    candidates = (
        db.query(BuyLaterOrder)
        .filter(
            BuyLaterOrder.payment_status == PaymentStatus.UNPAID.value,
            BuyLaterOrder.due_date < db_datetime(db, now),
        )
        .all()
    )
    changed = []
    for order in candidates:
        remaining = balance.remaining_balance(db, order.id, order.total_price)
        if is_overdue(order.due_date, remaining, now):
            order.payment_status = PaymentStatus.OVERDUE.value
            changed.append(order.id)
    if changed:
        persistence.commit(db, "flag overdue orders", f"{len(changed)} buy later order(s)")
    logger.info("Overdue sweep flagged %s of %s candidate order(s)", len(changed), len(candidates))
    return changed
