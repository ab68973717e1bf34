import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Response
from sqlalchemy.orm import Session

from database import get_db, init_db
from projection import MonthGroup, PlanTable
from schemas import (
    AccountIn,
    CategoryIn,
    ListedTransactionOut,
    MonthGroupOut,
    MonthValues,
    OverrideIn,
    ProjectIn,
    ProjectProgressOut,
    ProjectsOut,
    TransactionIn,
    TransactionOut,
    TransferIn,
    TransferOut,
    TreasuryPlanOut,
)
from services import (
    AccountService,
    CategoryService,
    NotFoundError,
    OverrideService,
    ProjectService,
    TransactionService,
    TransferService,
    TreasuryPlanService,
)


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Cash Plan")


@app.on_event("startup")
def startup_event():
    init_db()
    logger.info("Cash plan API started")


def _http_error(exc: ValueError) -> HTTPException:
    status_code = 404 if isinstance(exc, NotFoundError) else 400
    return HTTPException(status_code=status_code, detail=str(exc))


def plan_payload(table: PlanTable, highlight: str) -> TreasuryPlanOut:
    return TreasuryPlanOut(
        months=[m.key for m in table.months],
        highlight_month=highlight,
        rows=[
            MonthValues(
                label=row.label,
                kind=row.kind,
                category_id=row.category_id,
                values=row.values,
                is_child=row.is_child,
                is_parent=row.is_parent,
                is_total=row.is_total,
                is_section_header=row.is_section_header,
                is_block_start=row.is_block_start,
            )
            for row in table.rows
        ],
    )


def listing_payload(groups: list[MonthGroup]) -> list[MonthGroupOut]:
    return [
        MonthGroupOut(
            month=group.key,
            total=group.total,
            items=[
                ListedTransactionOut(
                    transaction=TransactionOut.model_validate(item.transaction),
                    month=item.key,
                    date=item.date,
                    amount=item.amount,
                    computed_amount=item.computed_amount,
                    is_recurring=item.is_recurring,
                    is_overridden=item.is_overridden,
                )
                for item in group.items
            ],
        )
        for group in groups
    ]


def account_payload(account) -> dict:
    return {
        "id": account.id,
        "name": account.name,
        "type": account.type.value,
        "currency": account.currency,
        "balance": account.balance,
        "is_active": account.is_active,
    }


def category_payload(category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "type": category.type.value,
        "parent_id": category.parent_id,
        "icon": category.icon,
        "color": category.color,
        "is_variable": category.is_variable,
    }


@app.get("/api/accounts")
def list_accounts(include_inactive: bool = False, db: Session = Depends(get_db)):
    accounts = AccountService(db).list_all(include_inactive=include_inactive)
    return [account_payload(a) for a in accounts]


@app.post("/api/accounts", status_code=201)
def create_account(data: AccountIn, db: Session = Depends(get_db)):
    try:
        account = AccountService(db).create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"id": account.id}


@app.put("/api/accounts/{account_id}")
def update_account(account_id: int, data: AccountIn, db: Session = Depends(get_db)):
    try:
        account = AccountService(db).update(account_id, data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return account_payload(account)


@app.delete("/api/accounts/{account_id}")
def close_account(account_id: int, db: Session = Depends(get_db)):
    try:
        archived = AccountService(db).close(account_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"archived": archived}


@app.get("/api/accounts/{account_id}/transfers", response_model=list[TransferOut])
def account_transfers(account_id: int, db: Session = Depends(get_db)):
    try:
        entries = TransferService(db).history(account_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return [
        TransferOut(
            transaction_id=e.transaction.id,
            date=e.date,
            note=e.note,
            amount=e.amount,
            direction=e.direction,
            other_account_id=e.other_account_id,
            other_account_name=e.other_account_name,
        )
        for e in entries
    ]


@app.post("/api/transfers", status_code=201)
def create_transfer(data: TransferIn, db: Session = Depends(get_db)):
    try:
        debit, credit = TransferService(db).create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"debit_id": debit.id, "credit_id": credit.id}


@app.get("/api/categories")
def list_categories(db: Session = Depends(get_db)):
    return [category_payload(c) for c in CategoryService(db).list_all()]


@app.post("/api/categories", status_code=201)
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        category = CategoryService(db).create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"id": category.id}


@app.post("/api/categories/defaults", status_code=201)
def seed_categories(db: Session = Depends(get_db)):
    created = CategoryService(db).seed_defaults()
    return {"created": len(created)}


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: int, data: CategoryIn, db: Session = Depends(get_db)
):
    try:
        category = CategoryService(db).update(category_id, data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return category_payload(category)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(category_id: int, db: Session = Depends(get_db)):
    try:
        CategoryService(db).delete(category_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/transactions", response_model=list[MonthGroupOut])
def list_transactions(
    offset: int = -2,
    count: int = 3,
    category_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    try:
        groups = TreasuryPlanService(db).monthly_listing(
            offset, count, category_id=category_id
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return listing_payload(groups)


@app.post("/api/transactions", status_code=201, response_model=TransactionOut)
def create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    try:
        txn = TransactionService(db).create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return TransactionOut.model_validate(txn)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int, data: TransactionIn, db: Session = Depends(get_db)
):
    try:
        txn = TransactionService(db).update(transaction_id, data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return TransactionOut.model_validate(txn)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        TransactionService(db).delete(transaction_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/treasury-plan", response_model=TreasuryPlanOut)
def treasury_plan(period: str = "current", db: Session = Depends(get_db)):
    try:
        table, highlight = TreasuryPlanService(db).plan(period)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return plan_payload(table, highlight.key)


@app.put("/api/overrides")
def set_override(data: OverrideIn, db: Session = Depends(get_db)):
    try:
        override = OverrideService(db).set(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    if override is None:
        return {"override": None}
    return {
        "override": {
            "transaction_id": override.transaction_id,
            "year": override.year,
            "month": override.month,
            "override_amount": override.override_amount,
        }
    }


@app.delete("/api/overrides/{transaction_id}/{year}/{month}", status_code=204)
def delete_override(
    transaction_id: int, year: int, month: int, db: Session = Depends(get_db)
):
    try:
        OverrideService(db).delete(transaction_id, year, month)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/projects", response_model=ProjectsOut)
def list_projects(db: Session = Depends(get_db)):
    items, overall = ProjectService(db).progress()
    return ProjectsOut(
        projects=[
            ProjectProgressOut(
                id=p.project.id,
                name=p.project.name,
                target_amount=p.project.target_amount,
                monthly_allocation=p.project.monthly_allocation,
                accumulated=p.accumulated,
                progress_percentage=p.progress_percentage,
                months_to_complete=p.months_to_complete,
                status=p.project.status,
            )
            for p in items
        ],
        global_percentage=overall,
    )


@app.post("/api/projects", status_code=201)
def create_project(data: ProjectIn, db: Session = Depends(get_db)):
    try:
        project = ProjectService(db).create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"id": project.id}


@app.put("/api/projects/{project_id}")
def update_project(project_id: int, data: ProjectIn, db: Session = Depends(get_db)):
    try:
        project = ProjectService(db).update(project_id, data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"id": project.id}


@app.delete("/api/projects/{project_id}", status_code=204)
def delete_project(project_id: int, db: Session = Depends(get_db)):
    try:
        ProjectService(db).delete(project_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)
