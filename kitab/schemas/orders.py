from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from kitab.schemas.common import MoneyModel
from kitab.services.status_policy import OrderStatus


class PurchaseCreateRequest(BaseModel):
    book_id: int
    quantity: int
    user_phone: str
    user_room: str

    model_config = {
        "json_schema_extra": {
            "examples": [{"book_id": 1, "quantity": 2, "user_phone": "081234567890", "user_room": "A-12"}]
        }
    }


class OrderStatusUpdateRequest(BaseModel):
    status: OrderStatus


class OrderResponse(MoneyModel):
    id: str
    user_id: int
    user_name: str
    user_phone: str | None
    user_room: str | None
    book_id: int
    book_title: str
    book_author: str
    book_description: str
    book_price: Decimal
    book_image: str | None
    book_category: str
    quantity: int
    total_price: Decimal
    order_status: OrderStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
