from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from kitab.models.book import Book
from kitab.models.database import Base
from kitab.models.order import BuyLaterOrder, BuyLaterPayment, Order
from kitab.models.user import User
from kitab.services import balance, checkout, order_ledger, payment_ledger, status_policy
from kitab.services.errors import CollaboratorError, ConcurrencyError, NotFoundError, ValidationError
from kitab.services.timeutils import as_utc, utcnow


def _create(db, user, book, quantity=1, duration=1, now=None):
    return order_ledger.create_buy_later_order(
        db,
        user_id=user.id,
        book_id=book.id,
        quantity=quantity,
        duration=duration,
        phone="081234567890",
        room="A-12",
        now=now,
    )


# Order Ledger


def test_create_fixes_total_and_due_date(db, test_user, test_book):
    order = _create(db, test_user, test_book, quantity=1, duration=1)

    assert order.total_price == Decimal("150000.00")
    assert order.order_status == "pending"
    assert order.payment_status == "unpaid"
    assert as_utc(order.due_date) - as_utc(order.created_at) == timedelta(days=30)


def test_two_month_duration_is_sixty_days(db, test_user, cheap_book):
    order = _create(db, test_user, cheap_book, quantity=3, duration=2)

    assert order.total_price == Decimal("225000.00")
    assert as_utc(order.due_date) - as_utc(order.created_at) == timedelta(days=60)


def test_create_snapshots_customer_and_book(db, test_user, test_book):
    order = _create(db, test_user, test_book)

    assert order.user_id == test_user.id
    assert order.user_name == "Ahmad Fauzi"
    assert order.user_phone == "081234567890"
    assert order.user_room == "A-12"
    assert order.book_title == "Fathul Qarib"
    assert order.book_author == "Ibnu Qasim al-Ghazi"
    assert order.book_category == "Fiqih"


def test_create_decrements_stock(db, test_user, test_book):
    _create(db, test_user, test_book, quantity=4)

    db.refresh(test_book)
    assert test_book.stock == 6


@pytest.mark.parametrize("duration", [0, 3, 12])
def test_create_rejects_unsupported_duration(db, test_user, test_book, duration):
    with pytest.raises(ValidationError, match="Payment duration must be 1 or 2 months"):
        _create(db, test_user, test_book, duration=duration)

    db.refresh(test_book)
    assert test_book.stock == 10
    assert db.query(BuyLaterOrder).count() == 0


def test_create_requires_known_profile(db, test_book):
    with pytest.raises(ValidationError, match="User profile not found"):
        order_ledger.create_buy_later_order(db, None, test_book.id, 1, 1, "0812", "A-12")
    with pytest.raises(ValidationError, match="User profile not found"):
        order_ledger.create_buy_later_order(db, 4242, test_book.id, 1, 1, "0812", "A-12")


def test_create_requires_phone_and_room(db, test_user, test_book):
    with pytest.raises(ValidationError, match="Phone number is required"):
        order_ledger.create_buy_later_order(db, test_user.id, test_book.id, 1, 1, " ", "A-12")
    with pytest.raises(ValidationError, match="Room number is required"):
        order_ledger.create_buy_later_order(db, test_user.id, test_book.id, 1, 1, "0812", None)


def test_create_rejects_quantity_above_stock(db, test_user, cheap_book):
    with pytest.raises(ValidationError, match="Only 3 in stock"):
        _create(db, test_user, cheap_book, quantity=4)


def test_create_unknown_book(db, test_user):
    with pytest.raises(NotFoundError, match="Book not found"):
        order_ledger.create_buy_later_order(db, test_user.id, 99999, 1, 1, "0812", "A-12")


def test_place_rolls_back_order_when_stock_runs_out(db, test_user, test_book):
    draft = checkout.prepare_checkout(db, test_user.id, test_book.id, 2, "0812", "A-12")
    db.query(Book).filter(Book.id == test_book.id).update({Book.stock: 1}, synchronize_session=False)
    db.commit()

    record = Order(**draft.snapshot())
    with pytest.raises(ValidationError, match="Not enough stock left"):
        checkout.place(db, record, draft)

    assert db.query(Order).count() == 0
    assert db.query(Book).filter(Book.id == test_book.id).one().stock == 1


def test_catalog_price_change_does_not_touch_existing_order(db, test_user, test_book):
    order = _create(db, test_user, test_book)

    test_book.price = Decimal("200000.00")
    db.commit()
    db.refresh(order)

    assert order.total_price == Decimal("150000.00")
    assert order.book_price == Decimal("150000.00")
    assert balance.remaining_balance(db, order.id, order.total_price) == Decimal("150000.00")


def test_get_order_scoped_to_owner(db, test_user, test_user2, test_book):
    order = _create(db, test_user, test_book)

    assert order_ledger.get_buy_later_order(db, order.id, user_id=test_user.id).id == order.id
    with pytest.raises(NotFoundError):
        order_ledger.get_buy_later_order(db, order.id, user_id=test_user2.id)
    with pytest.raises(NotFoundError):
        order_ledger.get_buy_later_order(db, "missing")


def test_list_filters_and_sorts(db, test_user, test_user2, test_book, cheap_book):
    first = _create(db, test_user, test_book, duration=2)
    second = _create(db, test_user2, cheap_book, duration=1)
    order_ledger.set_payment_status(db, second.id, "overdue")

    by_due = order_ledger.list_buy_later_orders(db, sort_by="due_date")
    assert [o.id for o in by_due] == [second.id, first.id]

    by_amount = order_ledger.list_buy_later_orders(db, sort_by="amount")
    assert [o.id for o in by_amount] == [first.id, second.id]

    overdue = order_ledger.list_buy_later_orders(db, payment_status="overdue")
    assert [o.id for o in overdue] == [second.id]

    assert len(order_ledger.list_buy_later_orders(db, payment_status="all")) == 2
    assert [o.id for o in order_ledger.list_buy_later_orders(db, user_id=test_user.id)] == [first.id]
    assert [o.id for o in order_ledger.list_buy_later_orders(db, search="zarnuji")] == [second.id]


def test_list_rejects_unknown_filters(db):
    with pytest.raises(ValidationError, match="Unknown sort key"):
        order_ledger.list_buy_later_orders(db, sort_by="title")
    with pytest.raises(ValidationError, match="Unknown payment status"):
        order_ledger.list_buy_later_orders(db, payment_status="refunded")
    with pytest.raises(ValidationError, match="Unknown order status"):
        order_ledger.list_buy_later_orders(db, order_status="shipped")


def test_list_filters_by_order_status(db, test_user, test_book, cheap_book):
    pending = _create(db, test_user, test_book)
    confirmed = _create(db, test_user, cheap_book)
    order_ledger.set_order_status(db, confirmed.id, "confirmed")

    assert [o.id for o in order_ledger.list_buy_later_orders(db, order_status="confirmed")] == [confirmed.id]
    assert [o.id for o in order_ledger.list_buy_later_orders(db, order_status="pending")] == [pending.id]
    assert len(order_ledger.list_buy_later_orders(db, order_status="all")) == 2


def test_list_search_treats_wildcards_literally(db, test_user, test_book, cheap_book):
    _create(db, test_user, test_book)
    percent = Book(title="Diskon 100% Kitab", author="Penerbit", price=Decimal("10000.00"), category="Umum", stock=2)
    db.add(percent)
    db.commit()
    wanted = _create(db, test_user, percent)

    assert [o.id for o in order_ledger.list_buy_later_orders(db, search="%")] == [wanted.id]
    assert order_ledger.list_buy_later_orders(db, search="_") == []
    assert len(order_ledger.list_buy_later_orders(db, search="   ")) == 2


def test_reconcile_order_commits_only_on_change(db, test_user, test_book):
    order = _create(db, test_user, test_book)
    order_ledger.set_payment_status(db, order.id, "paid")

    order, changed = order_ledger.reconcile_order(db, order.id)
    assert changed is True
    assert order.payment_status == "unpaid"

    order, changed = order_ledger.reconcile_order(db, order.id)
    assert changed is False


def test_status_commit_failure_rolls_back(db, test_user, test_book, monkeypatch):
    order = _create(db, test_user, test_book)
    order_ledger.set_payment_status(db, order.id, "paid")
    rollback = MagicMock(wraps=db.rollback)
    monkeypatch.setattr(db, "rollback", rollback)
    monkeypatch.setattr(db, "commit", MagicMock(side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error"))))

    with pytest.raises(CollaboratorError, match="Could not update order"):
        order_ledger.reconcile_order(db, order.id)

    rollback.assert_called_once()


def test_set_order_status_any_transition(db, test_user, test_book):
    order = _create(db, test_user, test_book)

    order_ledger.set_order_status(db, order.id, "completed")
    order = order_ledger.set_order_status(db, order.id, "pending")
    assert order.order_status == "pending"

    with pytest.raises(ValidationError, match="Unknown order status"):
        order_ledger.set_order_status(db, order.id, "shipped")


# Payment Ledger and Balance Calculator


def test_partial_payment_keeps_status_unpaid(db, test_user, test_book):
    order = _create(db, test_user, test_book)

    payment = payment_ledger.record_payment(db, order.id, Decimal("50000"))

    assert payment.amount == Decimal("50000.00")
    assert balance.total_paid(db, order.id) == Decimal("50000.00")
    assert balance.remaining_balance(db, order.id, order.total_price) == Decimal("100000.00")
    db.refresh(order)
    assert order.payment_status == "unpaid"


def test_settling_payment_promotes_to_paid_and_closes_ledger(db, test_user, test_book):
    order = _create(db, test_user, test_book)
    payment_ledger.record_payment(db, order.id, Decimal("50000"))
    payment_ledger.record_payment(db, order.id, "100000")

    db.refresh(order)
    assert balance.remaining_balance(db, order.id, order.total_price) == Decimal("0.00")
    assert order.payment_status == "paid"

    with pytest.raises(ValidationError, match="exceeds remaining balance of 0"):
        payment_ledger.record_payment(db, order.id, Decimal("1"))
    assert db.query(BuyLaterPayment).count() == 2


def test_overpayment_rejected_without_writing(db, test_user, test_book):
    order = _create(db, test_user, test_book)
    payment_ledger.record_payment(db, order.id, Decimal("100000"))

    with pytest.raises(ValidationError, match="exceeds remaining balance of 50000"):
        payment_ledger.record_payment(db, order.id, Decimal("50000.01"))

    assert balance.total_paid(db, order.id) == Decimal("100000.00")


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), None])
def test_non_positive_amount_rejected(db, test_user, test_book, amount):
    order = _create(db, test_user, test_book)

    with pytest.raises(ValidationError, match="greater than 0"):
        payment_ledger.record_payment(db, order.id, amount)


def test_non_numeric_amount_rejected(db, test_user, test_book):
    order = _create(db, test_user, test_book)

    with pytest.raises(ValidationError, match="must be a number"):
        payment_ledger.record_payment(db, order.id, "lima puluh ribu")


@pytest.mark.parametrize("amount", [Decimal("0.005"), Decimal("149999.994"), "50000.125"])
def test_sub_cent_amount_rejected_not_rounded(db, test_user, test_book, amount):
    order = _create(db, test_user, test_book)

    with pytest.raises(ValidationError, match="at most 2 decimal places"):
        payment_ledger.record_payment(db, order.id, amount)

    assert db.query(BuyLaterPayment).count() == 0
    assert balance.total_paid(db, order.id) == Decimal("0.00")


def test_cent_amount_recorded_exactly(db, test_user, test_book):
    order = _create(db, test_user, test_book)

    payment = payment_ledger.record_payment(db, order.id, "12500.50")

    assert payment.amount == Decimal("12500.50")
    with pytest.raises(ValidationError, match="exceeds remaining balance of 137499.5$"):
        payment_ledger.record_payment(db, order.id, Decimal("137500"))


def test_payment_on_unknown_order(db):
    with pytest.raises(NotFoundError, match="Order not found"):
        payment_ledger.record_payment(db, "missing", Decimal("10"))


def test_payments_listed_newest_first(db, test_user, test_book):
    order = _create(db, test_user, test_book)
    start = utcnow()
    older = payment_ledger.record_payment(db, order.id, Decimal("10000"), now=start)
    newer = payment_ledger.record_payment(db, order.id, Decimal("20000"), now=start + timedelta(days=1))

    assert [p.id for p in balance.payments_for_order(db, order.id)] == [newer.id, older.id]
    assert [p.id for p in payment_ledger.list_payments(db)] == [newer.id, older.id]
    assert payment_ledger.get_payment(db, older.id).notes is None


def test_reads_do_not_change_order(db, test_user, test_book):
    order = _create(db, test_user, test_book)
    payment_ledger.record_payment(db, order.id, Decimal("50000"))
    db.refresh(order)
    version = order.version

    first = status_policy.order_balance(db, order)
    second = status_policy.order_balance(db, order)

    assert first == second
    db.refresh(order)
    assert order.version == version


def test_payment_history_and_total_are_repeatable(db, test_user, test_book):
    order = _create(db, test_user, test_book)
    payment_ledger.record_payment(db, order.id, Decimal("20000"))
    payment_ledger.record_payment(db, order.id, Decimal("30000"))
    db.refresh(order)
    version = order.version

    history = [p.id for p in balance.payments_for_order(db, order.id)]
    assert [p.id for p in balance.payments_for_order(db, order.id)] == history
    assert balance.total_paid(db, order.id) == balance.total_paid(db, order.id) == Decimal("50000.00")

    db.refresh(order)
    assert order.version == version
    assert db.query(BuyLaterPayment).count() == 2


def test_payment_bumps_version_with_unchanged_timestamp(db, test_user, test_book):
    order = _create(db, test_user, test_book)
    db.refresh(order)
    version = order.version

    payment_ledger.record_payment(db, order.id, Decimal("10000"), now=order.updated_at)

    db.refresh(order)
    assert order.version == version + 1


def test_stale_session_sees_fresh_balance(db, test_user, test_book):
    order = _create(db, test_user, test_book)
    other = sessionmaker(bind=db.get_bind(), autoflush=False)()
    try:
        payment_ledger.record_payment(other, order.id, Decimal("100000"))
    finally:
        other.close()

    with pytest.raises(ValidationError, match="exceeds remaining balance of 50000"):
        payment_ledger.record_payment(db, order.id, Decimal("100000"))


@pytest.fixture
def race_store(tmp_path):
    """File-backed store so two sessions can interleave on one order."""
    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False)

    setup = Session()
    user = User(name="Ahmad Fauzi", email="race@example.com", hashed_password="x", role="user")
    book = Book(title="Fathul Qarib", author="Ibnu Qasim", price=Decimal("150000.00"), category="Fiqih", stock=5)
    setup.add_all([user, book])
    setup.commit()
    order_id = _create(setup, user, book).id
    setup.close()

    sessions = []

    def open_session():
        session = Session()
        sessions.append(session)
        return session

    yield open_session, order_id

    for session in sessions:
        session.close()
    engine.dispose()


def _pay_with_interleaved_writer(session_a, order_id, amount, other_writer):
    """Record a payment; ``other_writer`` commits right after the balance is read."""
    real_remaining = balance.remaining_balance
    interleaved = []

    def remaining_then_interleave(db, oid, total_price):
        stale = real_remaining(db, oid, total_price)
        if not interleaved:
            interleaved.append(oid)
            other_writer(oid)
        return stale

    with patch("kitab.services.balance.remaining_balance", side_effect=remaining_then_interleave):
        payment_ledger.record_payment(session_a, order_id, amount)


def test_concurrent_payment_loses_race(race_store):
    open_session, order_id = race_store
    session_a, session_b = open_session(), open_session()

    with pytest.raises(ConcurrencyError):
        _pay_with_interleaved_writer(
            session_a,
            order_id,
            Decimal("120000"),
            lambda oid: payment_ledger.record_payment(session_b, oid, Decimal("50000")),
        )

    check = open_session()
    assert balance.total_paid(check, order_id) == Decimal("50000.00")
    assert check.query(BuyLaterPayment).count() == 1


def test_payment_loses_to_concurrent_status_override(race_store):
    open_session, order_id = race_store
    session_a, session_b = open_session(), open_session()

    with pytest.raises(ConcurrencyError):
        _pay_with_interleaved_writer(
            session_a,
            order_id,
            Decimal("50000"),
            lambda oid: order_ledger.set_payment_status(session_b, oid, "overdue", note="Ditagih ulang"),
        )

    check = open_session()
    assert check.query(BuyLaterPayment).count() == 0
    assert order_ledger.get_buy_later_order(check, order_id).payment_status == "overdue"


def test_payment_loses_to_concurrent_overdue_sweep(race_store):
    open_session, order_id = race_store
    session_a, session_b = open_session(), open_session()
    after_due = utcnow() + timedelta(days=31)

    with pytest.raises(ConcurrencyError):
        _pay_with_interleaved_writer(
            session_a,
            order_id,
            Decimal("50000"),
            lambda oid: status_policy.sweep_overdue(session_b, now=after_due),
        )

    check = open_session()
    assert check.query(BuyLaterPayment).count() == 0
    assert order_ledger.get_buy_later_order(check, order_id).payment_status == "overdue"


def test_status_override_on_stale_order_conflicts(race_store):
    open_session, order_id = race_store
    session_a, session_b = open_session(), open_session()

    order_ledger.get_buy_later_order(session_a, order_id)
    payment_ledger.record_payment(session_b, order_id, Decimal("50000"))

    with pytest.raises(ConcurrencyError, match="reload"):
        order_ledger.set_payment_status(session_a, order_id, "paid")

    check = open_session()
    assert order_ledger.get_buy_later_order(check, order_id).payment_status == "unpaid"


# Status Policy


def test_overdue_evaluated_on_read(db, test_user, test_book):
    order = _create(db, test_user, test_book, now=utcnow() - timedelta(days=40))
    payment_ledger.record_payment(db, order.id, Decimal("50000"))
    db.refresh(order)

    summary = status_policy.order_balance(db, order)

    assert summary.is_overdue is True
    assert summary.effective_payment_status == status_policy.PaymentStatus.OVERDUE
    assert order.payment_status == "unpaid"


def test_not_overdue_before_due_or_when_paid(db, test_user, test_book):
    order = _create(db, test_user, test_book)
    assert status_policy.order_balance(db, order).is_overdue is False

    later = utcnow() + timedelta(days=31)
    assert status_policy.order_balance(db, order, now=later).is_overdue is True

    payment_ledger.record_payment(db, order.id, Decimal("150000"))
    db.refresh(order)
    summary = status_policy.order_balance(db, order, now=later)
    assert summary.is_overdue is False
    assert summary.is_fully_paid is True
    assert summary.effective_payment_status == status_policy.PaymentStatus.PAID


def test_derive_payment_status_handles_naive_dates():
    due = (utcnow() - timedelta(days=1)).replace(tzinfo=None)

    assert status_policy.derive_payment_status(due, Decimal("1.00")) == status_policy.PaymentStatus.OVERDUE
    assert status_policy.derive_payment_status(due, Decimal("0.00")) == status_policy.PaymentStatus.PAID
    future = utcnow() + timedelta(days=1)
    assert status_policy.derive_payment_status(future, Decimal("1.00")) == status_policy.PaymentStatus.UNPAID


def test_manual_override_logged_and_reconciled(db, test_user, test_book, caplog):
    order = _create(db, test_user, test_book)

    with caplog.at_level("WARNING", logger="kitab.services.order_ledger"):
        order = order_ledger.set_payment_status(db, order.id, "paid", note="Bayar tunai")
    assert order.payment_status == "paid"
    assert "Manual payment_status override" in caplog.text

    assert status_policy.reconcile_payment_status(db, order) is True
    db.commit()
    db.refresh(order)
    assert order.payment_status == "unpaid"
    assert status_policy.reconcile_payment_status(db, order) is False


def test_sweep_flags_only_unpaid_past_due(db, test_user, test_book, cheap_book):
    long_ago = utcnow() - timedelta(days=45)
    past_due = _create(db, test_user, test_book, now=long_ago)
    settled = _create(db, test_user, cheap_book, now=long_ago)
    payment_ledger.record_payment(db, settled.id, Decimal("75000"))
    current = _create(db, test_user, test_book)

    assert status_policy.sweep_overdue(db) == [past_due.id]
    assert status_policy.sweep_overdue(db) == []

    db.refresh(past_due)
    db.refresh(settled)
    db.refresh(current)
    assert past_due.payment_status == "overdue"
    assert settled.payment_status == "paid"
    assert current.payment_status == "unpaid"


def test_sweep_commit_failure_rolls_back(db, test_user, test_book, monkeypatch):
    past_due = _create(db, test_user, test_book, now=utcnow() - timedelta(days=45))
    monkeypatch.setattr(db, "commit", MagicMock(side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error"))))

    with pytest.raises(CollaboratorError):
        status_policy.sweep_overdue(db)

    monkeypatch.undo()
    db.refresh(past_due)
    assert past_due.payment_status == "unpaid"
