from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from kitab.dependencies import get_current_user, require_admin
from kitab.models import User, get_db
from kitab.schemas.orders import OrderResponse, OrderStatusUpdateRequest, PurchaseCreateRequest
from kitab.services import purchases

router = APIRouter()


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Buy now",
)
def create_order(
    body: PurchaseCreateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """
    Place an order for the given book and quantity.
    Stock is decremented in the same transaction; the order starts as pending admin confirmation.
    """
    return purchases.create_purchase(
        db,
        user_id=current_user.id,
        book_id=body.book_id,
        quantity=body.quantity,
        phone=body.user_phone,
        room=body.user_room,
    )


@router.get(
    "",
    response_model=list[OrderResponse],
    summary="List orders",
)
def list_orders(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    search: Annotated[str | None, Query(max_length=100)] = None,
    order_status: str | None = None,
    sort_by: str = "created_date",
):
    """Admins see every order, customers only their own. Newest first by default."""
    user_id = None if current_user.is_admin else current_user.id
    return purchases.list_purchases(
        db,
        user_id=user_id,
        search=search,
        order_status=order_status,
        sort_by=sort_by,
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
)
def get_order(
    order_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    user_id = None if current_user.is_admin else current_user.id
    return purchases.get_purchase(db, order_id, user_id=user_id)


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Update order status (admin)",
)
def update_order_status(
    order_id: str,
    body: OrderStatusUpdateRequest,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    return purchases.set_purchase_status(db, order_id, body.status.value)
