from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from kitab.dependencies import get_current_user, require_admin
from kitab.models import BuyLaterOrder, User, get_db
from kitab.schemas.buy_later import (
    BuyLaterOrderCreateRequest,
    BuyLaterOrderResponse,
    OverdueSweepResponse,
    PaymentCreateRequest,
    PaymentResponse,
    PaymentStatusUpdateRequest,
    ReconcileResponse,
)
from kitab.schemas.orders import OrderStatusUpdateRequest
from kitab.services import balance, order_ledger, payment_ledger, status_policy

router = APIRouter()


def order_to_response(db: Session, order: BuyLaterOrder) -> BuyLaterOrderResponse:
    summary = status_policy.order_balance(db, order)
    return BuyLaterOrderResponse(
        id=order.id,
        user_id=order.user_id,
        user_name=order.user_name,
        user_phone=order.user_phone,
        user_room=order.user_room,
        book_id=order.book_id,
        book_title=order.book_title,
        book_author=order.book_author,
        book_description=order.book_description,
        book_price=order.book_price,
        book_image=order.book_image,
        book_category=order.book_category,
        quantity=order.quantity,
        total_price=summary.total_price,
        order_status=order.order_status,
        created_at=order.created_at,
        updated_at=order.updated_at,
        payment_duration=order.payment_duration,
        due_date=order.due_date,
        payment_status=order.payment_status,
        total_paid=summary.total_paid,
        remaining_balance=summary.remaining_balance,
        is_overdue=summary.is_overdue,
        effective_payment_status=summary.effective_payment_status,
    )


def _scope(user: User) -> int | None:
    return None if user.is_admin else user.id


@router.post(
    "",
    response_model=BuyLaterOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Buy later",
)
def create_buy_later_order(
    body: BuyLaterOrderCreateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """
    Place a deferred-payment order due in 1 or 2 months (30 days each).
    Customer identity comes from the token, never from the request body.
    """
    order = order_ledger.create_buy_later_order(
        db,
        user_id=current_user.id,
        book_id=body.book_id,
        quantity=body.quantity,
        duration=body.payment_duration,
        phone=body.user_phone,
        room=body.user_room,
    )
    return order_to_response(db, order)


@router.get(
    "",
    response_model=list[BuyLaterOrderResponse],
    summary="List buy later orders",
)
def list_buy_later_orders(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    payment_status: str | None = None,
    search: Annotated[str | None, Query(max_length=100)] = None,
    sort_by: str = "due_date",
    order_status: str | None = None,
):
    """Admins see every order, customers only their own."""
    orders = order_ledger.list_buy_later_orders(
        db,
        user_id=_scope(current_user),
        payment_status=payment_status,
        search=search,
        sort_by=sort_by,
        order_status=order_status,
    )
    return [order_to_response(db, order) for order in orders]


@router.get(
    "/payments",
    response_model=list[PaymentResponse],
    summary="List all installments (admin)",
)
def list_all_payments(
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    return payment_ledger.list_payments(db)


@router.post(
    "/overdue-sweep",
    response_model=OverdueSweepResponse,
    summary="Flag unpaid orders past due as overdue (admin)",
)
def overdue_sweep(
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    changed = status_policy.sweep_overdue(db)
    return OverdueSweepResponse(flagged=len(changed), order_ids=changed)


@router.get(
    "/{order_id}",
    response_model=BuyLaterOrderResponse,
    summary="Get buy later order with balance",
)
def get_buy_later_order(
    order_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Overdue is evaluated on read from the due date and balance, whatever the stored status says."""
    order = order_ledger.get_buy_later_order(db, order_id, user_id=_scope(current_user))
    return order_to_response(db, order)


@router.patch(
    "/{order_id}/status",
    response_model=BuyLaterOrderResponse,
    summary="Update order status (admin)",
)
def update_order_status(
    order_id: str,
    body: OrderStatusUpdateRequest,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    order = order_ledger.set_order_status(db, order_id, body.status.value)
    return order_to_response(db, order)


@router.patch(
    "/{order_id}/payment-status",
    response_model=BuyLaterOrderResponse,
    summary="Override payment status (admin)",
)
def update_payment_status(
    order_id: str,
    body: PaymentStatusUpdateRequest,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    order = order_ledger.set_payment_status(db, order_id, body.status.value, note=body.note)
    return order_to_response(db, order)


@router.post(
    "/{order_id}/reconcile",
    response_model=ReconcileResponse,
    summary="Sync stored payment status with the balance (admin)",
)
def reconcile_order(
    order_id: str,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    order, changed = order_ledger.reconcile_order(db, order_id)
    return ReconcileResponse(order_id=order.id, changed=changed, payment_status=order.payment_status)


@router.get(
    "/{order_id}/payments",
    response_model=list[PaymentResponse],
    summary="List installments for an order",
)
def list_order_payments(
    order_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    order = order_ledger.get_buy_later_order(db, order_id, user_id=_scope(current_user))
    return balance.payments_for_order(db, order.id)


@router.post(
    "/{order_id}/payments",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record an installment (admin)",
)
def record_payment(
    order_id: str,
    body: PaymentCreateRequest,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    """Append a payment. Rejected when it would exceed the remaining balance."""
    return payment_ledger.record_payment(db, order_id, body.amount, notes=body.notes)
