from kitab.models.database import Base, get_db
from kitab.models.user import User
from kitab.models.book import Book
from kitab.models.order import BuyLaterOrder, BuyLaterPayment, Order

__all__ = ["Base", "get_db", "User", "Book", "Order", "BuyLaterOrder", "BuyLaterPayment"]
