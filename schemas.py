from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import AccountType, CategoryType, ProjectStatus, RecurrenceRule


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType = AccountType.checking
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    balance: float = 0.0
    is_active: bool = True


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    parent_id: Optional[int] = None
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=9)
    is_variable: bool = False


class TransactionIn(BaseModel):
    account_id: int
    category_id: Optional[int] = None
    project_id: Optional[int] = None
    amount: float
    date: date
    note: Optional[str] = Field(default=None, max_length=200)
    is_recurring: bool = False
    recurrence_rule: Optional[RecurrenceRule] = None
    recurrence_end_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_recurrence(self) -> "TransactionIn":
        if self.is_recurring and self.recurrence_rule is None:
            raise ValueError("Recurring transactions need a recurrence rule")
        if not self.is_recurring:
            self.recurrence_rule = None
            self.recurrence_end_date = None
        if self.recurrence_end_date and self.recurrence_end_date < self.date:
            raise ValueError("Recurrence end date must not precede the start date")
        return self


class TransferIn(BaseModel):
    from_account_id: int
    to_account_id: int
    amount: float = Field(..., gt=0)
    date: date
    note: Optional[str] = Field(default=None, max_length=200)

    @model_validator(mode="after")
    def _check_accounts(self) -> "TransferIn":
        if self.from_account_id == self.to_account_id:
            raise ValueError("Transfer needs two different accounts")
        return self


class OverrideIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    transaction_id: int
    year: int = Field(..., ge=1970, le=3000)
    month: int = Field(..., ge=1, le=12)
    override_amount: float


class ProjectIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    target_amount: float = Field(..., ge=0)
    monthly_allocation: Optional[float] = Field(default=None, ge=0)
    target_date: Optional[date] = None
    source_account_id: Optional[int] = None
    linked_account_id: Optional[int] = None
    current_accumulated: float = 0.0
    status: ProjectStatus = ProjectStatus.active


class MonthValues(BaseModel):
    label: str
    kind: Literal["income", "expense", "balance"]
    category_id: Optional[int] = None
    values: dict[str, float]
    is_child: bool = False
    is_parent: bool = False
    is_total: bool = False
    is_section_header: bool = False
    is_block_start: bool = False


class TreasuryPlanOut(BaseModel):
    months: list[str]
    highlight_month: str
    rows: list[MonthValues]


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    category_id: Optional[int]
    project_id: Optional[int]
    amount: float
    date: date
    note: Optional[str]
    is_recurring: bool
    recurrence_rule: Optional[RecurrenceRule]
    recurrence_end_date: Optional[date]


class ListedTransactionOut(BaseModel):
    transaction: TransactionOut
    month: str
    date: date
    amount: float
    computed_amount: float
    is_recurring: bool
    is_overridden: bool


class MonthGroupOut(BaseModel):
    month: str
    total: float
    items: list[ListedTransactionOut]


class TransferOut(BaseModel):
    transaction_id: int
    date: date
    note: str
    amount: float
    direction: Literal["in", "out"]
    other_account_id: Optional[int]
    other_account_name: str


class ProjectProgressOut(BaseModel):
    id: int
    name: str
    target_amount: float
    monthly_allocation: Optional[float]
    accumulated: float
    progress_percentage: float
    months_to_complete: int
    status: ProjectStatus


class ProjectsOut(BaseModel):
    projects: list[ProjectProgressOut]
    global_percentage: float
