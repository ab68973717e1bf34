from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from config import get_settings
from defaults import default_categories_flat
from models import (
    Account,
    Category,
    Project,
    Transaction,
    TransactionMonthOverride,
)
from periods import MonthKey, highlight_month, months_from, local_today, plan_window
from projection import (
    MonthGroup,
    OverrideMap,
    PlanTable,
    build_plan,
    category_filter_ids,
    is_recurring,
    list_by_month,
    normalize_override,
)
from projects import ProjectProgress, active_progress, global_percentage
from recurrence import contribution
from schemas import (
    AccountIn,
    CategoryIn,
    OverrideIn,
    ProjectIn,
    TransactionIn,
    TransferIn,
)
from transfers import TRANSFER_NOTE, TransferEntry, transfer_history


logger = logging.getLogger(__name__)


class NotFoundError(ValueError):
    pass


def get_current_profile_id() -> int:
    return 1


def normalize_name(name: str) -> str:
    return name.strip().lower()


class AccountService:
    def __init__(self, session: Session, profile_id: Optional[int] = None) -> None:
        self.session = session
        self.profile_id = profile_id or get_current_profile_id()

    def list_all(self, include_inactive: bool = False) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.profile_id == self.profile_id)
            .order_by(Account.name)
        )
        if not include_inactive:
            stmt = stmt.where(Account.is_active.is_(True))
        return self.session.scalars(stmt).all()

    def get(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account or account.profile_id != self.profile_id:
            raise NotFoundError("Account not found")
        return account

    def _check_name(self, name: str, account_id: Optional[int] = None) -> None:
        clean = normalize_name(name)
        if not clean:
            raise ValueError("Account name cannot be empty")
        for other in self.list_all():
            if other.id != account_id and normalize_name(other.name) == clean:
                raise ValueError("Account with this name already exists")

    def create(self, data: AccountIn) -> Account:
        self._check_name(data.name)
        account = Account(
            profile_id=self.profile_id,
            name=data.name.strip(),
            type=data.type,
            currency=data.currency.upper(),
            balance=data.balance,
            is_active=data.is_active,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def update(self, account_id: int, data: AccountIn) -> Account:
        account = self.get(account_id)
        self._check_name(data.name, account_id)
        account.name = data.name.strip()
        account.type = data.type
        account.currency = data.currency.upper()
        account.balance = data.balance
        account.is_active = data.is_active
        self.session.commit()
        self.session.refresh(account)
        logger.info(f"account_updated: id={account_id}")
        return account

    def close(self, account_id: int) -> bool:
        """Archive an account that has transactions, delete it otherwise.

        Returns True when the account was archived.
        """
        account = self.get(account_id)
        used = self.session.execute(
            select(func.count(Transaction.id)).where(
                Transaction.account_id == account_id
            )
        ).scalar_one()
        if used:
            account.is_active = False
            self.session.commit()
            logger.info(f"account_archived: id={account_id} transactions={used}")
            return True

        for column in (Project.source_account_id, Project.linked_account_id):
            self.session.execute(
                update(Project)
                .where(Project.profile_id == self.profile_id, column == account_id)
                .values({column.key: None})
            )
        self.session.delete(account)
        self.session.commit()
        logger.info(f"account_deleted: id={account_id}")
        return False


class CategoryService:
    def __init__(self, session: Session, profile_id: Optional[int] = None) -> None:
        self.session = session
        self.profile_id = profile_id or get_current_profile_id()

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.profile_id == self.profile_id)
            .order_by(Category.type, Category.name)
        )
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.profile_id != self.profile_id:
            raise NotFoundError("Category not found")
        return category

    def has_children(self, category_id: int) -> bool:
        stmt = select(func.count(Category.id)).where(
            Category.profile_id == self.profile_id,
            Category.parent_id == category_id,
        )
        return (self.session.execute(stmt).scalar_one() or 0) > 0

    def has_transactions(self, category_id: int) -> bool:
        stmt = select(func.count(Transaction.id)).where(
            Transaction.profile_id == self.profile_id,
            Transaction.category_id == category_id,
        )
        return (self.session.execute(stmt).scalar_one() or 0) > 0

    def _check_parent(self, data: CategoryIn) -> None:
        if data.parent_id is None:
            return
        parent = self.get(data.parent_id)
        if parent.parent_id is not None:
            raise ValueError("Sub-categories cannot have children")
        if parent.type != data.type:
            raise ValueError("Category type mismatch with parent")
        if self.has_transactions(parent.id):
            raise ValueError("A category holding transactions cannot get children")

    def _check_name(
        self, data: CategoryIn, category_id: Optional[int] = None
    ) -> None:
        # Names are unique per type across the whole tree, ignoring case.
        clean = normalize_name(data.name)
        if not clean:
            raise ValueError("Category name cannot be empty")
        stmt = select(Category).where(
            Category.profile_id == self.profile_id,
            Category.type == data.type,
        )
        for other in self.session.scalars(stmt):
            if other.id != category_id and normalize_name(other.name) == clean:
                raise ValueError("Category with this name already exists")

    def create(self, data: CategoryIn) -> Category:
        self._check_parent(data)
        self._check_name(data)

        category = Category(
            profile_id=self.profile_id,
            name=data.name.strip(),
            type=data.type,
            parent_id=data.parent_id,
            icon=data.icon,
            color=data.color,
            is_variable=data.is_variable,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryIn) -> Category:
        category = self.get(category_id)
        if data.parent_id == category_id:
            raise ValueError("A category cannot be its own parent")
        if self.has_children(category_id):
            if data.parent_id is not None:
                raise ValueError("Categories with children must stay top-level")
            if data.type != category.type:
                raise ValueError("Cannot change the type of a category with children")
        self._check_parent(data)
        self._check_name(data, category_id)

        category.name = data.name.strip()
        category.type = data.type
        category.parent_id = data.parent_id
        category.icon = data.icon
        category.color = data.color
        category.is_variable = data.is_variable
        self.session.commit()
        self.session.refresh(category)
        logger.info(f"category_updated: id={category_id}")
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        if self.has_children(category_id):
            raise ValueError("Delete the sub-categories first")
        if self.has_transactions(category_id):
            raise ValueError("Category is used by transactions")
        self.session.delete(category)
        self.session.commit()
        logger.info(f"category_deleted: id={category_id}")

    def seed_defaults(self) -> list[Category]:
        """Insert the default category tree, skipping names already taken."""
        existing = {
            (c.type, normalize_name(c.name)): c for c in self.list_all()
        }
        created: list[Category] = []
        for item in default_categories_flat():
            key = (item["type"], normalize_name(item["name"]))
            if key in existing:
                continue
            parent_id = None
            if item["parent_name"] is not None:
                parent = existing.get(
                    (item["type"], normalize_name(item["parent_name"]))
                )
                if (
                    parent is None
                    or parent.parent_id is not None
                    or self.has_transactions(parent.id)
                ):
                    continue
                parent_id = parent.id
            category = Category(
                profile_id=self.profile_id,
                name=item["name"],
                type=item["type"],
                parent_id=parent_id,
                is_variable=item["is_variable"],
            )
            self.session.add(category)
            self.session.flush()
            existing[key] = category
            created.append(category)
        self.session.commit()
        logger.info(f"categories_seeded: created={len(created)}")
        return created


class TransactionService:
    def __init__(self, session: Session, profile_id: Optional[int] = None) -> None:
        self.session = session
        self.profile_id = profile_id or get_current_profile_id()

    def _account(self, account_id: int) -> Account:
        return AccountService(self.session, self.profile_id).get(account_id)

    def _check_refs(self, data: TransactionIn) -> None:
        self._account(data.account_id)
        if data.category_id is not None:
            categories = CategoryService(self.session, self.profile_id)
            categories.get(data.category_id)
            if categories.has_children(data.category_id):
                raise ValueError("Pick a sub-category, not a category with children")
        if data.project_id is not None:
            ProjectService(self.session, self.profile_id).get(data.project_id)

    def list_all(self) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.profile_id == self.profile_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        return self.session.scalars(stmt).all()

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.profile_id != self.profile_id:
            raise NotFoundError("Transaction not found")
        return txn

    def _build(self, data: TransactionIn) -> Transaction:
        return Transaction(
            profile_id=self.profile_id,
            account_id=data.account_id,
            category_id=data.category_id,
            project_id=data.project_id,
            amount=data.amount,
            date=data.date,
            note=data.note,
            is_recurring=data.is_recurring,
            recurrence_rule=data.recurrence_rule,
            recurrence_end_date=data.recurrence_end_date,
        )

    def create(self, data: TransactionIn) -> Transaction:
        self._check_refs(data)
        txn = self._build(data)
        self.session.add(txn)
        account = self._account(data.account_id)
        account.balance = float(account.balance) + data.amount
        self.session.commit()
        self.session.refresh(txn)
        logger.info(f"transaction_created: id={txn.id} account={txn.account_id}")
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        self._check_refs(data)

        old_account = self._account(txn.account_id)
        old_account.balance = float(old_account.balance) - float(txn.amount)

        txn.account_id = data.account_id
        txn.category_id = data.category_id
        txn.project_id = data.project_id
        txn.amount = data.amount
        txn.date = data.date
        txn.note = data.note
        txn.is_recurring = data.is_recurring
        txn.recurrence_rule = data.recurrence_rule
        txn.recurrence_end_date = data.recurrence_end_date
        if not data.is_recurring:
            self.session.execute(
                delete(TransactionMonthOverride).where(
                    TransactionMonthOverride.transaction_id == txn.id
                )
            )

        new_account = self._account(data.account_id)
        new_account.balance = float(new_account.balance) + data.amount
        self.session.commit()
        self.session.refresh(txn)
        logger.info(f"transaction_updated: id={txn.id} account={txn.account_id}")
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        account = self._account(txn.account_id)
        account.balance = float(account.balance) - float(txn.amount)
        self.session.delete(txn)
        self.session.commit()
        logger.info(f"transaction_deleted: id={transaction_id}")


class OverrideService:
    def __init__(self, session: Session, profile_id: Optional[int] = None) -> None:
        self.session = session
        self.profile_id = profile_id or get_current_profile_id()

    def list_all(
        self, year: Optional[int] = None, month: Optional[int] = None
    ) -> list[TransactionMonthOverride]:
        stmt = select(TransactionMonthOverride).where(
            TransactionMonthOverride.profile_id == self.profile_id
        )
        if year is not None:
            stmt = stmt.where(TransactionMonthOverride.year == year)
        if month is not None:
            stmt = stmt.where(TransactionMonthOverride.month == month)
        return self.session.scalars(stmt).all()

    def as_map(self) -> OverrideMap:
        return OverrideMap(self.list_all())

    def _find(
        self, transaction_id: int, year: int, month: int
    ) -> Optional[TransactionMonthOverride]:
        return self.session.scalar(
            select(TransactionMonthOverride).where(
                TransactionMonthOverride.profile_id == self.profile_id,
                TransactionMonthOverride.transaction_id == transaction_id,
                TransactionMonthOverride.year == year,
                TransactionMonthOverride.month == month,
            )
        )

    def computed_amount(
        self, txn: Transaction, year: int, month: int, today: Optional[date] = None
    ) -> float:
        settings = get_settings()
        return contribution(
            txn, year, month, today or local_today(), settings.horizon_months
        )

    def set(
        self, data: OverrideIn, today: Optional[date] = None
    ) -> Optional[TransactionMonthOverride]:
        """Store an override, or drop it when the value matches the projection."""
        txn = TransactionService(self.session, self.profile_id).get(
            data.transaction_id
        )
        if not is_recurring(txn):
            raise ValueError("Overrides only apply to recurring transactions")

        original = self.computed_amount(txn, data.year, data.month, today)
        amount = normalize_override(
            original, data.override_amount, get_settings().override_epsilon
        )
        existing = self._find(data.transaction_id, data.year, data.month)

        if amount is None:
            if existing:
                self.session.delete(existing)
                self.session.commit()
                logger.info(
                    f"override_reset: txn={data.transaction_id} "
                    f"month={data.year}-{data.month:02d}"
                )
            return None

        if existing:
            existing.override_amount = amount
            self.session.commit()
            self.session.refresh(existing)
            return existing

        override = TransactionMonthOverride(
            profile_id=self.profile_id,
            transaction_id=data.transaction_id,
            year=data.year,
            month=data.month,
            override_amount=amount,
        )
        self.session.add(override)
        self.session.commit()
        self.session.refresh(override)
        logger.info(
            f"override_set: txn={data.transaction_id} "
            f"month={data.year}-{data.month:02d} amount={amount}"
        )
        return override

    def delete(self, transaction_id: int, year: int, month: int) -> None:
        existing = self._find(transaction_id, year, month)
        if not existing:
            raise NotFoundError("Override not found")
        self.session.delete(existing)
        self.session.commit()


class TransferService:
    def __init__(self, session: Session, profile_id: Optional[int] = None) -> None:
        self.session = session
        self.profile_id = profile_id or get_current_profile_id()

    def create(self, data: TransferIn) -> tuple[Transaction, Transaction]:
        accounts = AccountService(self.session, self.profile_id)
        source = accounts.get(data.from_account_id)
        target = accounts.get(data.to_account_id)
        note = data.note or TRANSFER_NOTE
        amount = abs(data.amount)

        debit = Transaction(
            profile_id=self.profile_id,
            account_id=source.id,
            category_id=None,
            amount=-amount,
            date=data.date,
            note=note,
        )
        credit = Transaction(
            profile_id=self.profile_id,
            account_id=target.id,
            category_id=None,
            amount=amount,
            date=data.date,
            note=note,
        )
        self.session.add_all([debit, credit])
        source.balance = float(source.balance) - amount
        target.balance = float(target.balance) + amount
        self.session.commit()
        self.session.refresh(debit)
        self.session.refresh(credit)
        logger.info(
            f"transfer_created: from={source.id} to={target.id} amount={amount}"
        )
        return debit, credit

    def history(self, account_id: int) -> list[TransferEntry]:
        accounts = AccountService(self.session, self.profile_id)
        accounts.get(account_id)
        stmt = select(Transaction).where(
            Transaction.profile_id == self.profile_id,
            Transaction.category_id.is_(None),
        )
        candidates = self.session.scalars(stmt).all()
        return transfer_history(
            account_id, candidates, accounts.list_all(include_inactive=True)
        )


class ProjectService:
    def __init__(self, session: Session, profile_id: Optional[int] = None) -> None:
        self.session = session
        self.profile_id = profile_id or get_current_profile_id()

    def list_all(self) -> list[Project]:
        stmt = (
            select(Project)
            .where(Project.profile_id == self.profile_id)
            .order_by(Project.name)
        )
        return self.session.scalars(stmt).all()

    def get(self, project_id: int) -> Project:
        project = self.session.get(Project, project_id)
        if not project or project.profile_id != self.profile_id:
            raise NotFoundError("Project not found")
        return project

    def _check_accounts(self, data: ProjectIn) -> None:
        accounts = AccountService(self.session, self.profile_id)
        for account_id in (data.source_account_id, data.linked_account_id):
            if account_id is not None:
                accounts.get(account_id)

    def create(self, data: ProjectIn) -> Project:
        self._check_accounts(data)
        project = Project(profile_id=self.profile_id, **data.model_dump())
        self.session.add(project)
        self.session.commit()
        self.session.refresh(project)
        return project

    def update(self, project_id: int, data: ProjectIn) -> Project:
        project = self.get(project_id)
        self._check_accounts(data)
        for field, value in data.model_dump().items():
            setattr(project, field, value)
        self.session.commit()
        self.session.refresh(project)
        logger.info(f"project_updated: id={project_id}")
        return project

    def delete(self, project_id: int) -> None:
        project = self.get(project_id)
        self.session.execute(
            update(Transaction)
            .where(
                Transaction.profile_id == self.profile_id,
                Transaction.project_id == project.id,
            )
            .values(project_id=None)
        )
        self.session.delete(project)
        self.session.commit()
        logger.info(f"project_deleted: id={project_id}")

    def progress(
        self, today: Optional[date] = None
    ) -> tuple[list[ProjectProgress], float]:
        today = today or local_today()
        stmt = select(Transaction).where(
            Transaction.profile_id == self.profile_id,
            Transaction.project_id.is_not(None),
        )
        items = active_progress(
            self.list_all(), self.session.scalars(stmt).all(), today
        )
        return items, global_percentage(items)


class TreasuryPlanService:
    def __init__(self, session: Session, profile_id: Optional[int] = None) -> None:
        self.session = session
        self.profile_id = profile_id or get_current_profile_id()

    def _transactions(self) -> list[Transaction]:
        return TransactionService(self.session, self.profile_id).list_all()

    def _overrides(self) -> OverrideMap:
        return OverrideService(self.session, self.profile_id).as_map()

    def plan_for_months(
        self, months: list[MonthKey], today: Optional[date] = None
    ) -> PlanTable:
        today = today or local_today()
        categories = CategoryService(self.session, self.profile_id).list_all()
        return build_plan(
            self._transactions(),
            categories,
            months,
            today,
            self._overrides(),
            horizon_months=get_settings().horizon_months,
        )

    def plan(
        self, period_filter: Optional[str] = None, today: Optional[date] = None
    ) -> tuple[PlanTable, MonthKey]:
        today = today or local_today()
        months = plan_window(period_filter, today=today)
        return (
            self.plan_for_months(months, today),
            highlight_month(period_filter, today=today),
        )

    def monthly_listing(
        self,
        offset: int = -2,
        count: int = 3,
        *,
        category_id: Optional[int] = None,
        today: Optional[date] = None,
    ) -> list[MonthGroup]:
        today = today or local_today()
        months = months_from(offset, count, today=today)
        ids = None
        if category_id is not None:
            categories = CategoryService(self.session, self.profile_id).list_all()
            ids = category_filter_ids(categories, category_id)
        return list_by_month(
            self._transactions(),
            months,
            today,
            self._overrides(),
            category_ids=ids,
            horizon_months=get_settings().horizon_months,
        )
