from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from kitab.schemas.common import MoneyModel


class BookCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    author: str = Field(min_length=1, max_length=255)
    description: str = ""
    price: Decimal = Field(ge=0)
    image: str | None = None
    category: str = Field(min_length=1, max_length=100)
    stock: int = Field(ge=0)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "title": "Fathul Qarib",
                    "author": "Ibnu Qasim al-Ghazi",
                    "description": "Syarah Matan Taqrib",
                    "price": "45000",
                    "category": "Fiqih",
                    "stock": 20,
                }
            ]
        }
    }


class BookUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    author: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    price: Decimal | None = Field(default=None, ge=0)
    image: str | None = None
    category: str | None = Field(default=None, min_length=1, max_length=100)
    stock: int | None = Field(default=None, ge=0)


class BookResponse(MoneyModel):
    id: int
    title: str
    author: str
    description: str
    price: Decimal
    image: str | None
    category: str
    stock: int
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
