from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


def _money() -> Numeric:
    return Numeric(12, 2, asdecimal=False)


class CategoryType(str, Enum):
    income = "income"
    expense = "expense"


class RecurrenceRule(str, Enum):
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class AccountType(str, Enum):
    checking = "checking"
    savings = "savings"
    investment = "investment"
    other = "other"


class ProjectStatus(str, Enum):
    active = "active"
    completed = "completed"
    on_hold = "on_hold"
    archived = "archived"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    profile_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType), nullable=False, default=AccountType.checking
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    balance: Mapped[float] = mapped_column(_money(), nullable=False, default=0.0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="account"
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    profile_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[CategoryType] = mapped_column(SAEnum(CategoryType), nullable=False)
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    icon: Mapped[Optional[str]] = mapped_column(String(50))
    color: Mapped[Optional[str]] = mapped_column(String(9))
    is_variable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    parent: Mapped[Optional["Category"]] = relationship(
        "Category", remote_side=[id], back_populates="children"
    )
    children: Mapped[list["Category"]] = relationship(
        "Category", back_populates="parent"
    )
    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="category"
    )

    __table_args__ = (
        UniqueConstraint(
            "profile_id", "type", "parent_id", "name", name="uq_category_scope_name"
        ),
    )


class Project(Base, TimestampMixin):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    profile_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    target_amount: Mapped[float] = mapped_column(_money(), nullable=False)
    monthly_allocation: Mapped[Optional[float]] = mapped_column(_money())
    target_date: Mapped[Optional[date]] = mapped_column(Date)
    source_account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("accounts.id")
    )
    linked_account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("accounts.id")
    )
    current_accumulated: Mapped[float] = mapped_column(
        _money(), nullable=False, default=0.0
    )
    status: Mapped[ProjectStatus] = mapped_column(
        SAEnum(ProjectStatus), nullable=False, default=ProjectStatus.active
    )

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="project"
    )

    __table_args__ = (
        CheckConstraint("target_amount >= 0", name="ck_project_target_positive"),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    profile_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    project_id: Mapped[Optional[int]] = mapped_column(ForeignKey("projects.id"))
    amount: Mapped[float] = mapped_column(_money(), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurrence_rule: Mapped[Optional[RecurrenceRule]] = mapped_column(
        SAEnum(RecurrenceRule)
    )
    recurrence_end_date: Mapped[Optional[date]] = mapped_column(Date)

    account: Mapped["Account"] = relationship("Account", back_populates="transactions")
    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="transactions"
    )
    project: Mapped[Optional["Project"]] = relationship(
        "Project", back_populates="transactions"
    )
    overrides: Mapped[list["TransactionMonthOverride"]] = relationship(
        "TransactionMonthOverride",
        back_populates="transaction",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_transactions_profile_date", "profile_id", "date"),
        Index("ix_transactions_account_date", "account_id", "date"),
        Index("ix_transactions_category_date", "category_id", "date"),
    )


class TransactionMonthOverride(Base, TimestampMixin):
    __tablename__ = "transaction_month_overrides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    profile_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    override_amount: Mapped[float] = mapped_column(_money(), nullable=False)

    transaction: Mapped["Transaction"] = relationship(
        "Transaction", back_populates="overrides"
    )

    __table_args__ = (
        UniqueConstraint(
            "transaction_id", "year", "month", name="uq_override_transaction_month"
        ),
        CheckConstraint("month >= 1 AND month <= 12", name="ck_override_month_range"),
        Index("ix_override_profile_month", "profile_id", "year", "month"),
    )
