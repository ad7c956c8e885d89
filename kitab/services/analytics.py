"""
Sales analytics for the admin dashboard.

Revenue counts every buy-now order plus buy-later orders whose stored
payment status is ``paid``. Rankings are computed in Python over the
orders created inside the requested range.
"""

from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from kitab.models import BuyLaterOrder, Order
from kitab.services.balance import ZERO, money
from kitab.services.status_policy import PaymentStatus
from kitab.services.timeutils import as_utc, db_datetime, utcnow

TOP_LIMIT = 10
TREND_DAYS = 7


def _in_range(db: Session, model, start: datetime, end: datetime) -> list:
    return (
        db.query(model)
        .filter(
            model.created_at >= db_datetime(db, start),
            model.created_at <= db_datetime(db, end),
        )
        .all()
    )


def _top_books(orders: list) -> list[dict]:
    stats: dict[tuple[str, str], dict] = {}
    for order in orders:
        key = (order.book_title, order.book_author)
        row = stats.setdefault(
            key,
            {"title": order.book_title, "author": order.book_author, "total_sold": 0, "revenue": ZERO},
        )
        row["total_sold"] += order.quantity
        row["revenue"] += money(order.total_price)
    return sorted(stats.values(), key=lambda r: r["total_sold"], reverse=True)[:TOP_LIMIT]


def _category_performance(orders: list) -> list[dict]:
    stats: dict[str, dict] = {}
    for order in orders:
        row = stats.setdefault(
            order.book_category,
            {"category": order.book_category, "total_sold": 0, "revenue": ZERO},
        )
        row["total_sold"] += order.quantity
        row["revenue"] += money(order.total_price)
    return sorted(stats.values(), key=lambda r: r["revenue"], reverse=True)


def _recent_transactions(buy_now: list[Order], buy_later: list[BuyLaterOrder]) -> list[dict]:
    rows = [(order, "buy_now") for order in buy_now] + [(order, "buy_later") for order in buy_later]
    rows.sort(key=lambda pair: as_utc(pair[0].created_at), reverse=True)
    return [
        {
            "id": order.id,
            "customer_name": order.user_name,
            "book_title": order.book_title,
            "total_price": money(order.total_price),
            "order_type": order_type,
            "created_at": as_utc(order.created_at),
            "status": order.order_status,
        }
        for order, order_type in rows[:TOP_LIMIT]
    ]


def _sales_trend(buy_now: list[Order], buy_later: list[BuyLaterOrder], now: datetime) -> list[dict]:
    buy_now_by_day: dict = defaultdict(lambda: ZERO)
    buy_later_by_day: dict = defaultdict(lambda: ZERO)
    for order in buy_now:
        buy_now_by_day[as_utc(order.created_at).date()] += money(order.total_price)
    for order in buy_later:
        buy_later_by_day[as_utc(order.created_at).date()] += money(order.total_price)

    trend = []
    today = now.date()
    for offset in range(TREND_DAYS - 1, -1, -1):
        day = today - timedelta(days=offset)
        trend.append(
            {
                "day": day,
                "buy_now": buy_now_by_day[day],
                "buy_later": buy_later_by_day[day],
                "total": buy_now_by_day[day] + buy_later_by_day[day],
            }
        )
    return trend


def _best_customers(orders: list) -> list[dict]:
    stats: dict[int, dict] = {}
    for order in orders:
        row = stats.setdefault(order.user_id, {"name": order.user_name, "total_orders": 0, "total_spent": ZERO})
        row["name"] = order.user_name
        row["total_orders"] += 1
        row["total_spent"] += money(order.total_price)
    return sorted(stats.values(), key=lambda r: r["total_spent"], reverse=True)[:TOP_LIMIT]


def build_analytics(db: Session, start: datetime, end: datetime, now: datetime | None = None) -> dict:
    now = as_utc(now or utcnow())
    buy_now = _in_range(db, Order, as_utc(start), as_utc(end))
    buy_later = _in_range(db, BuyLaterOrder, as_utc(start), as_utc(end))
    all_orders = [*buy_now, *buy_later]

    revenue = sum((money(o.total_price) for o in buy_now), ZERO) + sum(
        (money(o.total_price) for o in buy_later if o.payment_status == PaymentStatus.PAID.value),
        ZERO,
    )
    total_orders = len(all_orders)
    average = money(revenue / total_orders) if total_orders else ZERO

    return {
        "total_revenue": revenue,
        "total_orders": total_orders,
        "total_customers": len({o.user_id for o in all_orders}),
        "total_books_sold": sum(o.quantity for o in all_orders),
        "pending_buy_later": sum(1 for o in buy_later if o.payment_status == PaymentStatus.UNPAID.value),
        "overdue_payments": sum(1 for o in buy_later if o.payment_status == PaymentStatus.OVERDUE.value),
        "average_order_value": average,
        "top_selling_books": _top_books(all_orders),
        "category_performance": _category_performance(all_orders),
        "recent_transactions": _recent_transactions(buy_now, buy_later),
        "sales_trend": _sales_trend(buy_now, buy_later, now),
        "best_customers": _best_customers(all_orders),
    }
