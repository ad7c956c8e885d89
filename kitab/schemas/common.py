from decimal import Decimal

from pydantic import BaseModel, field_serializer

from kitab.services.balance import format_money

MONEY_FIELDS = (
    "price",
    "book_price",
    "total_price",
    "amount",
    "total_paid",
    "remaining_balance",
)


class MoneyModel(BaseModel):
    @field_serializer(*MONEY_FIELDS, check_fields=False)
    def serialize_money(self, value: Decimal) -> str:
        return format_money(value)
