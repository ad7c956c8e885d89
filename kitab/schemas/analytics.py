from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, field_serializer

from kitab.schemas.common import format_money


class _AnalyticsModel(BaseModel):
    @field_serializer(
        "revenue",
        "total_price",
        "total_spent",
        "buy_now",
        "buy_later",
        "total",
        "total_revenue",
        "average_order_value",
        check_fields=False,
    )
    def serialize_money(self, value: Decimal) -> str:
        return format_money(value)


class TopBook(_AnalyticsModel):
    title: str
    author: str
    total_sold: int
    revenue: Decimal


class CategoryPerformance(_AnalyticsModel):
    category: str
    total_sold: int
    revenue: Decimal


class RecentTransaction(_AnalyticsModel):
    id: str
    customer_name: str
    book_title: str
    total_price: Decimal
    order_type: str  # buy_now | buy_later
    created_at: datetime
    status: str


class SalesTrendPoint(_AnalyticsModel):
    day: date
    buy_now: Decimal
    buy_later: Decimal
    total: Decimal


class BestCustomer(_AnalyticsModel):
    name: str
    total_orders: int
    total_spent: Decimal


class AnalyticsResponse(_AnalyticsModel):
    total_revenue: Decimal
    total_orders: int
    total_customers: int
    total_books_sold: int
    pending_buy_later: int
    overdue_payments: int
    average_order_value: Decimal
    top_selling_books: list[TopBook]
    category_performance: list[CategoryPerformance]
    recent_transactions: list[RecentTransaction]
    sales_trend: list[SalesTrendPoint]
    best_customers: list[BestCustomer]
