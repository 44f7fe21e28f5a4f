from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import Account, Category, Transaction
from periods import InvalidRange, Window
from services import MetricsService, PeriodTotals, Unauthorized


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def add_txn(session, account, day, amount, category=None, payee="Shop"):
    txn = Transaction(
        date=day,
        account_id=account.id,
        category_id=category.id if category else None,
        payee=payee,
        amount=amount,
    )
    session.add(txn)
    return txn


def test_period_totals_are_zero_without_matching_rows() -> None:
    session = make_session()

    totals = MetricsService(session, "owner-a").period_totals(
        Window(date(2025, 1, 1), date(2025, 1, 31))
    )

    assert totals == PeriodTotals(income=0, expenses=0, remaining=0)


def test_period_totals_split_signed_amounts() -> None:
    session = make_session()
    checking = Account(owner_id="owner-a", name="Checking")
    session.add(checking)
    session.flush()
    add_txn(session, checking, date(2025, 1, 2), 300_000, payee="Salary")
    add_txn(session, checking, date(2025, 1, 5), -12_000)
    add_txn(session, checking, date(2025, 1, 6), -3_000)
    add_txn(session, checking, date(2025, 1, 7), 0, payee="Adjustment")
    add_txn(session, checking, date(2025, 2, 1), -99_999)
    session.commit()

    totals = MetricsService(session, "owner-a").period_totals(
        Window(date(2025, 1, 1), date(2025, 1, 31))
    )

    assert totals == PeriodTotals(income=300_000, expenses=-15_000, remaining=285_000)


def test_period_totals_ignore_other_owners_and_filter_account() -> None:
    session = make_session()
    mine = Account(owner_id="owner-a", name="Checking")
    savings = Account(owner_id="owner-a", name="Savings")
    theirs = Account(owner_id="owner-b", name="Checking")
    session.add_all([mine, savings, theirs])
    session.flush()
    add_txn(session, mine, date(2025, 1, 10), -1_000)
    add_txn(session, savings, date(2025, 1, 10), 5_000)
    add_txn(session, theirs, date(2025, 1, 10), -7_000)
    session.commit()

    window = Window(date(2025, 1, 1), date(2025, 1, 31))
    metrics = MetricsService(session, "owner-a")

    assert metrics.period_totals(window).remaining == 4_000
    assert metrics.period_totals(window, mine.id) == PeriodTotals(0, -1_000, -1_000)
    # someone else's account id only ever yields an empty scope
    assert metrics.period_totals(window, theirs.id) == PeriodTotals(0, 0, 0)


def test_summary_assembles_changes_categories_and_days() -> None:
    session = make_session()
    account = Account(owner_id="owner-a", name="Checking")
    other = Account(owner_id="owner-b", name="Checking")
    rent, food, fun, travel, misc = (
        Category(name="Rent"),
        Category(name="Food"),
        Category(name="Fun"),
        Category(name="Travel"),
        Category(name="Misc"),
    )
    session.add_all([account, other, rent, food, fun, travel, misc])
    session.flush()

    # previous window: 2025-01-27 .. 2025-01-31
    add_txn(session, account, date(2025, 1, 28), 1_000, payee="Salary")
    add_txn(session, account, date(2025, 1, 29), -400, rent)

    # current window: 2025-02-01 .. 2025-02-05
    add_txn(session, account, date(2025, 2, 1), 2_000, payee="Salary")
    add_txn(session, account, date(2025, 2, 3), -100, rent)
    add_txn(session, account, date(2025, 2, 3), -80, food)
    add_txn(session, account, date(2025, 2, 4), -50, fun)
    add_txn(session, account, date(2025, 2, 4), -20, travel)
    add_txn(session, account, date(2025, 2, 5), -10, misc)
    add_txn(session, account, date(2025, 2, 5), -5)
    add_txn(session, other, date(2025, 2, 2), -9_999, rent)
    session.commit()

    summary = MetricsService(session, "owner-a").summary("2025-02-01", "2025-02-05")

    assert summary.income_amount == 2_000
    assert summary.income_change == 100
    assert summary.expenses_amount == -265
    assert summary.expenses_change == 33.75
    assert summary.remaining_amount == 1_735
    assert summary.remaining_change == 189.17

    assert [(c.name, c.value) for c in summary.categories] == [
        ("Rent", 100),
        ("Food", 80),
        ("Fun", 50),
        ("Other", 30),
    ]

    assert [d.date for d in summary.days] == [date(2025, 2, n) for n in range(1, 6)]
    assert [(d.income, d.expenses) for d in summary.days] == [
        (2_000, 0),
        (0, 0),
        (0, 180),
        (0, 70),
        (0, 15),
    ]


def test_summary_serializes_with_camel_case_keys() -> None:
    session = make_session()

    summary = MetricsService(session, "owner-a").summary("2025-02-01", "2025-02-02")
    payload = summary.model_dump(mode="json", by_alias=True)

    assert payload == {
        "remainingAmount": 0,
        "remainingChange": 0.0,
        "incomeAmount": 0,
        "incomeChange": 0.0,
        "expensesAmount": 0,
        "expensesChange": 0.0,
        "categories": [],
        "days": [
            {"date": "2025-02-01", "income": 0, "expenses": 0},
            {"date": "2025-02-02", "income": 0, "expenses": 0},
        ],
    }


def test_summary_default_window_uses_today() -> None:
    session = make_session()

    summary = MetricsService(session, "owner-a").summary(today=date(2025, 3, 31))

    assert len(summary.days) == 31
    assert summary.days[0].date == date(2025, 3, 1)
    assert summary.days[-1].date == date(2025, 3, 31)


def test_summary_rejects_inverted_range() -> None:
    session = make_session()

    with pytest.raises(InvalidRange):
        MetricsService(session, "owner-a").summary("2025-02-05", "2025-02-01")


def test_metrics_require_an_owner() -> None:
    session = make_session()

    with pytest.raises(Unauthorized):
        MetricsService(session, None)
