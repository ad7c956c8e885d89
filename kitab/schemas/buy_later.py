from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from kitab.schemas.common import MoneyModel
from kitab.schemas.orders import OrderResponse
from kitab.services.status_policy import PaymentStatus


class BuyLaterOrderCreateRequest(BaseModel):
    book_id: int
    quantity: int
    payment_duration: int = Field(description="Months until payment is due: 1 or 2")
    user_phone: str
    user_room: str

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "book_id": 1,
                    "quantity": 1,
                    "payment_duration": 1,
                    "user_phone": "081234567890",
                    "user_room": "A-12",
                }
            ]
        }
    }


class BuyLaterOrderResponse(OrderResponse):
    payment_duration: int
    due_date: datetime
    payment_status: PaymentStatus
    total_paid: Decimal
    remaining_balance: Decimal
    is_overdue: bool
    effective_payment_status: PaymentStatus


class PaymentStatusUpdateRequest(BaseModel):
    status: PaymentStatus
    note: str | None = Field(default=None, max_length=500)


class PaymentCreateRequest(BaseModel):
    amount: Decimal = Field(decimal_places=2)
    notes: str | None = Field(default=None, max_length=1000)

    model_config = {"json_schema_extra": {"examples": [{"amount": "50000", "notes": "Cicilan pertama"}]}}


class PaymentResponse(MoneyModel):
    id: str
    buy_later_order_id: str
    amount: Decimal
    payment_date: datetime
    notes: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ReconcileResponse(BaseModel):
    order_id: str
    changed: bool
    payment_status: PaymentStatus


class OverdueSweepResponse(BaseModel):
    flagged: int
    order_ids: list[str]
