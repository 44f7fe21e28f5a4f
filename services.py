from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence

from sqlalchemy import Select, case, delete, func, select
from sqlalchemy.orm import Session, contains_eager, joinedload

from analytics import fill_missing_days, percent_change, rollup_categories
from config import get_settings
from database import unit_of_work
from models import Account, Category, Transaction
from periods import Window, resolve_window
from schemas import AccountIn, CategoryIn, SummaryOut, TransactionIn


logger = logging.getLogger(__name__)


class Unauthorized(Exception):
    pass


class NotFound(ValueError):
    pass


def require_owner(owner_id: Optional[str]) -> str:
    if not owner_id:
        raise Unauthorized("Unauthorized")
    return owner_id


def owned_transactions(owner_id: str, *columns) -> Select:
    """
    SELECT over transactions restricted to accounts owned by ``owner_id``.

    Every read and every mutation scope in this module starts from here, so the
    account join is never optional.
    """
    stmt = select(*(columns or (Transaction,))).select_from(Transaction)
    return stmt.join(Account, Account.id == Transaction.account_id).where(
        Account.owner_id == owner_id
    )


def _in_window(stmt: Select, window: Window, account_id: Optional[str]) -> Select:
    stmt = stmt.where(Transaction.date.between(window.start, window.end))
    if account_id:
        stmt = stmt.where(Transaction.account_id == account_id)
    return stmt


@dataclass(frozen=True)
class PeriodTotals:
    income: int
    expenses: int
    remaining: int


class AccountService:
    def __init__(self, session: Session, owner_id: Optional[str]) -> None:
        self.session = session
        self.owner_id = require_owner(owner_id)

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.owner_id == self.owner_id)
            .order_by(Account.name, Account.id)
        )
        with unit_of_work(self.session, "list_accounts"):
            return list(self.session.scalars(stmt).all())

    def create(self, data: AccountIn) -> Account:
        clean_name = data.name.strip()
        if not clean_name:
            raise ValueError("Account name cannot be empty")
        account = Account(
            owner_id=self.owner_id,
            name=clean_name,
            external_link_id=data.external_link_id,
        )
        with unit_of_work(self.session, "create_account"):
            self.session.add(account)
            self.session.flush()
        logger.info(f"account_created: owner={self.owner_id} account={account.id}")
        return account


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(Category.name, Category.id)
        with unit_of_work(self.session, "list_categories"):
            return list(self.session.scalars(stmt).all())

    def create(self, data: CategoryIn) -> Category:
        clean_name = data.name.strip()
        if not clean_name:
            raise ValueError("Category name cannot be empty")
        category = Category(name=clean_name)
        with unit_of_work(self.session, "create_category"):
            self.session.add(category)
            self.session.flush()
        return category


class TransactionService:
    def __init__(self, session: Session, owner_id: Optional[str]) -> None:
        self.session = session
        self.owner_id = require_owner(owner_id)

    def _owned_account_ids(self, account_ids: set[str]) -> set[str]:
        if not account_ids:
            return set()
        stmt = (
            select(Account.id)
            .where(Account.owner_id == self.owner_id, Account.id.in_(account_ids))
            .with_for_update()
        )
        return set(self.session.scalars(stmt).all())

    def _known_category_ids(self, category_ids: set[str]) -> set[str]:
        if not category_ids:
            return set()
        stmt = select(Category.id).where(Category.id.in_(category_ids))
        return set(self.session.scalars(stmt).all())

    def _scoped_ids(self, transaction_ids: Sequence[str]) -> list[str]:
        """Ids from ``transaction_ids`` owned by the caller, locked, in request order."""
        requested = list(dict.fromkeys(transaction_ids))
        if not requested:
            return []
        stmt = (
            owned_transactions(self.owner_id, Transaction.id)
            .where(Transaction.id.in_(requested))
            .with_for_update()
        )
        owned = set(self.session.scalars(stmt).all())
        return [txn_id for txn_id in requested if txn_id in owned]

    def _delete_scoped(self, transaction_ids: Sequence[str]) -> list[str]:
        scoped = self._scoped_ids(transaction_ids)
        if scoped:
            self.session.execute(
                delete(Transaction)
                .where(Transaction.id.in_(scoped))
                .execution_options(synchronize_session="fetch")
            )
        return scoped

    def _build(self, data: TransactionIn) -> Transaction:
        return Transaction(
            date=data.date,
            account_id=data.account_id,
            category_id=data.category_id,
            payee=data.payee.strip(),
            amount=data.amount,
            notes=data.notes,
        )

    def create(self, data: TransactionIn) -> Transaction:
        with unit_of_work(self.session, "create_transaction"):
            if data.account_id not in self._owned_account_ids({data.account_id}):
                raise Unauthorized("Account not found")
            if data.category_id and not self._known_category_ids({data.category_id}):
                raise NotFound("Category not found")
            txn = self._build(data)
            self.session.add(txn)
            self.session.flush()
        logger.info(f"transaction_created: owner={self.owner_id} id={txn.id}")
        return txn

    def bulk_create(self, items: Sequence[TransactionIn]) -> list[Transaction]:
        if not items:
            return []
        created: list[Transaction] = []
        with unit_of_work(self.session, "bulk_create_transactions"):
            owned_accounts = self._owned_account_ids({i.account_id for i in items})
            known_categories = self._known_category_ids(
                {i.category_id for i in items if i.category_id}
            )
            for data in items:
                if data.account_id not in owned_accounts:
                    continue
                if data.category_id and data.category_id not in known_categories:
                    continue
                txn = self._build(data)
                self.session.add(txn)
                created.append(txn)
            self.session.flush()
        logger.info(
            f"transactions_bulk_created: owner={self.owner_id} "
            f"requested={len(items)} created={len(created)}"
        )
        return created

    def get(self, transaction_id: str) -> Transaction:
        stmt = (
            owned_transactions(self.owner_id)
            .options(
                contains_eager(Transaction.account), joinedload(Transaction.category)
            )
            .where(Transaction.id == transaction_id)
        )
        with unit_of_work(self.session, "get_transaction"):
            txn = self.session.scalar(stmt)
        if txn is None:
            raise NotFound("Transaction not found")
        return txn

    def list(
        self, window: Window, account_id: Optional[str] = None
    ) -> list[Transaction]:
        stmt = (
            owned_transactions(self.owner_id)
            .options(
                contains_eager(Transaction.account), joinedload(Transaction.category)
            )
            .order_by(Transaction.date.desc(), Transaction.created_at.desc())
        )
        stmt = _in_window(stmt, window, account_id)
        with unit_of_work(self.session, "list_transactions"):
            return list(self.session.scalars(stmt).unique().all())

    def update(self, transaction_id: str, data: TransactionIn) -> Transaction:
        with unit_of_work(self.session, "update_transaction"):
            txn = self.session.scalar(
                owned_transactions(self.owner_id)
                .where(Transaction.id == transaction_id)
                .with_for_update()
            )
            if txn is None:
                raise NotFound("Transaction not found")
            if data.account_id != txn.account_id and not self._owned_account_ids(
                {data.account_id}
            ):
                raise NotFound("Account not found")
            if data.category_id and not self._known_category_ids({data.category_id}):
                raise NotFound("Category not found")

            txn.date = data.date
            txn.account_id = data.account_id
            txn.category_id = data.category_id
            txn.payee = data.payee.strip()
            txn.amount = data.amount
            txn.notes = data.notes
            self.session.flush()
        logger.info(f"transaction_updated: owner={self.owner_id} id={txn.id}")
        return txn

    def delete(self, transaction_id: str) -> str:
        with unit_of_work(self.session, "delete_transaction"):
            deleted = self._delete_scoped([transaction_id])
            if not deleted:
                raise NotFound("Transaction not found")
        logger.info(f"transaction_deleted: owner={self.owner_id} id={deleted[0]}")
        return deleted[0]

    def bulk_delete(self, transaction_ids: Sequence[str]) -> list[str]:
        with unit_of_work(self.session, "bulk_delete_transactions"):
            deleted = self._delete_scoped(transaction_ids)
        logger.info(
            f"transactions_bulk_deleted: owner={self.owner_id} "
            f"requested={len(transaction_ids)} deleted={len(deleted)}"
        )
        return deleted


class MetricsService:
    def __init__(self, session: Session, owner_id: Optional[str]) -> None:
        self.session = session
        self.owner_id = require_owner(owner_id)

    def period_totals(
        self, window: Window, account_id: Optional[str] = None
    ) -> PeriodTotals:
        stmt = owned_transactions(
            self.owner_id,
            func.coalesce(
                func.sum(case((Transaction.amount > 0, Transaction.amount), else_=0)),
                0,
            ).label("income"),
            func.coalesce(
                func.sum(case((Transaction.amount < 0, Transaction.amount), else_=0)),
                0,
            ).label("expenses"),
            func.coalesce(func.sum(Transaction.amount), 0).label("remaining"),
        )
        stmt = _in_window(stmt, window, account_id)
        row = self.session.execute(stmt).one()
        return PeriodTotals(
            income=int(row.income or 0),
            expenses=int(row.expenses or 0),
            remaining=int(row.remaining or 0),
        )

    def category_spend(
        self, window: Window, account_id: Optional[str] = None
    ) -> list[tuple[str, int]]:
        spend = func.sum(func.abs(Transaction.amount))
        stmt = (
            owned_transactions(
                self.owner_id, Category.name.label("name"), spend.label("value")
            )
            .join(Category, Category.id == Transaction.category_id)
            .where(Transaction.amount < 0)
            .group_by(Category.name)
            .order_by(spend.desc(), Category.name.asc())
        )
        stmt = _in_window(stmt, window, account_id)
        return [(row.name, int(row.value or 0)) for row in self.session.execute(stmt)]

    def active_days(
        self, window: Window, account_id: Optional[str] = None
    ) -> list[dict[str, object]]:
        stmt = (
            owned_transactions(
                self.owner_id,
                Transaction.date.label("date"),
                func.sum(
                    case((Transaction.amount > 0, Transaction.amount), else_=0)
                ).label("income"),
                func.sum(
                    case((Transaction.amount < 0, -Transaction.amount), else_=0)
                ).label("expenses"),
            )
            .group_by(Transaction.date)
            .order_by(Transaction.date)
        )
        stmt = _in_window(stmt, window, account_id)
        return [
            {
                "date": row.date,
                "income": int(row.income or 0),
                "expenses": int(row.expenses or 0),
            }
            for row in self.session.execute(stmt)
        ]

    def summary(
        self,
        start: Optional[str] = None,
        end: Optional[str] = None,
        account_id: Optional[str] = None,
        *,
        today: Optional[date] = None,
    ) -> SummaryOut:
        settings = get_settings()
        window = resolve_window(start, end, today=today)
        previous_window = window.preceding()

        with unit_of_work(self.session, "summary"):
            current = self.period_totals(window, account_id)
            previous = self.period_totals(previous_window, account_id)
            ranked = self.category_spend(window, account_id)
            active = self.active_days(window, account_id)

        return SummaryOut(
            remaining_amount=current.remaining,
            remaining_change=percent_change(current.remaining, previous.remaining),
            income_amount=current.income,
            income_change=percent_change(current.income, previous.income),
            expenses_amount=current.expenses,
            expenses_change=percent_change(current.expenses, previous.expenses),
            categories=rollup_categories(ranked, top=settings.top_categories),
            days=fill_missing_days(active, window),
        )
