import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from kitab.models import BuyLaterOrder
from kitab.services import balance, persistence, status_policy
from kitab.services.checkout import place, prepare_checkout, snapshot_search
from kitab.services.errors import NotFoundError, ValidationError
from kitab.services.status_policy import ORDER_STATUSES, PAYMENT_STATUSES, OrderStatus, PaymentStatus
from kitab.services.timeutils import utcnow

logger = logging.getLogger(__name__)

DAYS_PER_MONTH = 30
PAYMENT_DURATIONS = (1, 2)

SORT_KEYS = {
    "due_date": BuyLaterOrder.due_date.asc(),
    "created_date": BuyLaterOrder.created_at.desc(),
    "amount": BuyLaterOrder.total_price.desc(),
    "customer": BuyLaterOrder.user_name.asc(),
}


def due_date_for(created_at: datetime, duration: int) -> datetime:
    return created_at + timedelta(days=DAYS_PER_MONTH * duration)


def create_buy_later_order(
    db: Session,
    user_id: int | None,
    book_id: int,
    quantity: int,
    duration: int,
    phone: str | None,
    room: str | None,
    now: datetime | None = None,
) -> BuyLaterOrder:
    """Place a deferred-payment order.

    Total price and due date are fixed here and never recomputed. The book's
    stock is decremented in the same transaction as the insert.
    """
    if duration not in PAYMENT_DURATIONS:
        raise ValidationError("Payment duration must be 1 or 2 months")
    draft = prepare_checkout(db, user_id, book_id, quantity, phone, room)

    created_at = now or utcnow()
    order = BuyLaterOrder(
        **draft.snapshot(),
        payment_duration=duration,
        due_date=due_date_for(created_at, duration),
        order_status=OrderStatus.PENDING.value,
        payment_status=PaymentStatus.UNPAID.value,
        created_at=created_at,
        updated_at=created_at,
    )
    order = place(db, order, draft)
    logger.info(
        "Buy later order %s created: user=%s book=%s quantity=%s total=%s due=%s",
        order.id,
        order.user_id,
        order.book_id,
        order.quantity,
        order.total_price,
        order.due_date,
    )
    return order


def get_buy_later_order(db: Session, order_id: str, user_id: int | None = None) -> BuyLaterOrder:
    """Fetch one order; when ``user_id`` is given the order must belong to that user."""
    query = db.query(BuyLaterOrder).filter(BuyLaterOrder.id == order_id)
    if user_id is not None:
        query = query.filter(BuyLaterOrder.user_id == user_id)
    order = query.first()
    if not order:
        raise NotFoundError("Order not found")
    return order


def list_buy_later_orders(
    db: Session,
    user_id: int | None = None,
    payment_status: str | None = None,
    search: str | None = None,
    sort_by: str = "due_date",
    order_status: str | None = None,
) -> list[BuyLaterOrder]:
    if sort_by not in SORT_KEYS:
        raise ValidationError(f"Unknown sort key: {sort_by}")
    query = db.query(BuyLaterOrder)
    if user_id is not None:
        query = query.filter(BuyLaterOrder.user_id == user_id)
    if payment_status and payment_status != "all":
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(f"Unknown payment status: {payment_status}")
        query = query.filter(BuyLaterOrder.payment_status == payment_status)
    if order_status and order_status != "all":
        if order_status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status: {order_status}")
        query = query.filter(BuyLaterOrder.order_status == order_status)
    if search and search.strip():
        query = query.filter(snapshot_search(BuyLaterOrder, search))
    return query.order_by(SORT_KEYS[sort_by]).all()


def _commit(db: Session, order: BuyLaterOrder, action: str) -> BuyLaterOrder:
    persistence.commit(db, action, f"buy later order {order.id}")
    db.refresh(order)
    return order


def reconcile_order(db: Session, order_id: str) -> tuple[BuyLaterOrder, bool]:
    """Write the balance-derived payment status, committing only when it changed."""
    order = get_buy_later_order(db, order_id)
    changed = status_policy.reconcile_payment_status(db, order)
    if changed:
        order = _commit(db, order, "reconcile payment status")
    return order, changed


def set_order_status(db: Session, order_id: str, status: str) -> BuyLaterOrder:
    """Admin action. Any status may move to any other status."""
    if status not in ORDER_STATUSES:
        raise ValidationError(f"Unknown order status: {status}")
    order = get_buy_later_order(db, order_id)
    previous = order.order_status
    order.order_status = status
    order = _commit(db, order, "update order status")
    logger.info("Buy later order %s order_status %s -> %s", order.id, previous, status)
    return order


def set_payment_status(db: Session, order_id: str, status: str, note: str | None = None) -> BuyLaterOrder:
    """Admin override of the stored payment status.

    Allowed even when it disagrees with the balance; the disagreement is
    logged so the override leaves a trail.
    """
    if status not in PAYMENT_STATUSES:
        raise ValidationError(f"Unknown payment status: {status}")
    order = get_buy_later_order(db, order_id)
    previous = order.payment_status
    remaining = balance.remaining_balance(db, order.id, order.total_price)
    if (status == PaymentStatus.PAID.value) != (remaining == 0):
        logger.warning(
            "Manual payment_status override on order %s: %s with remaining balance %s (note=%r)",
            order.id,
            status,
            remaining,
            note,
        )
    order.payment_status = status
    order = _commit(db, order, "update payment status")
    logger.info("Buy later order %s payment_status %s -> %s", order.id, previous, status)
    return order
