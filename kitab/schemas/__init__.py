from kitab.schemas.analytics import AnalyticsResponse
from kitab.schemas.books import BookCreateRequest, BookResponse, BookUpdateRequest
from kitab.schemas.buy_later import (
    BuyLaterOrderCreateRequest,
    BuyLaterOrderResponse,
    PaymentCreateRequest,
    PaymentResponse,
    PaymentStatusUpdateRequest,
)
from kitab.schemas.orders import OrderResponse, OrderStatusUpdateRequest, PurchaseCreateRequest

__all__ = [
    "AnalyticsResponse",
    "BookCreateRequest",
    "BookResponse",
    "BookUpdateRequest",
    "BuyLaterOrderCreateRequest",
    "BuyLaterOrderResponse",
    "PaymentCreateRequest",
    "PaymentResponse",
    "PaymentStatusUpdateRequest",
    "OrderResponse",
    "OrderStatusUpdateRequest",
    "PurchaseCreateRequest",
]
