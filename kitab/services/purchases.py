import logging

from sqlalchemy.orm import Session

from kitab.models import Order
from kitab.services import persistence
from kitab.services.checkout import place, prepare_checkout, snapshot_search
from kitab.services.errors import NotFoundError, ValidationError
from kitab.services.status_policy import ORDER_STATUSES, OrderStatus

logger = logging.getLogger(__name__)

SORT_KEYS = {
    "created_date": Order.created_at.desc(),
    "amount": Order.total_price.desc(),
    "customer": Order.user_name.asc(),
}


def create_purchase(
    db: Session,
    user_id: int | None,
    book_id: int,
    quantity: int,
    phone: str | None,
    room: str | None,
) -> Order:
    draft = prepare_checkout(db, user_id, book_id, quantity, phone, room)
    order = place(db, Order(**draft.snapshot(), order_status=OrderStatus.PENDING.value), draft)
    logger.info(
        "Order %s created: user=%s book=%s quantity=%s total=%s",
        order.id,
        order.user_id,
        order.book_id,
        order.quantity,
        order.total_price,
    )
    return order


def get_purchase(db: Session, order_id: str, user_id: int | None = None) -> Order:
    query = db.query(Order).filter(Order.id == order_id)
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    order = query.first()
    if not order:
        raise NotFoundError("Order not found")
    return order


def list_purchases(
    db: Session,
    user_id: int | None = None,
    search: str | None = None,
    order_status: str | None = None,
    sort_by: str = "created_date",
) -> list[Order]:
    """Newest first unless ``sort_by`` says otherwise; ``"all"`` disables the status filter."""
    if sort_by not in SORT_KEYS:
        raise ValidationError(f"Unknown sort key: {sort_by}")
    query = db.query(Order)
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    if order_status and order_status != "all":
        if order_status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status: {order_status}")
        query = query.filter(Order.order_status == order_status)
    if search and search.strip():
        query = query.filter(snapshot_search(Order, search))
    return query.order_by(SORT_KEYS[sort_by]).all()


def set_purchase_status(db: Session, order_id: str, status: str) -> Order:
    if status not in ORDER_STATUSES:
        raise ValidationError(f"Unknown order status: {status}")
    order = get_purchase(db, order_id)
    previous = order.order_status
    order.order_status = status
    persistence.commit(db, "update order status", f"order {order_id}")
    db.refresh(order)
    logger.info("Order %s order_status %s -> %s", order.id, previous, status)
    return order
