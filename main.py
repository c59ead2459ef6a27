import logging
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

from auth import verify_token
from config import get_settings
from csv_utils import parse_amount
from database import SessionLocal
from errors import AuthorizationError, NotFoundError, StorageError, ValidationError
from models import Budget, Expense
from periods import current_month, parse_month_token
from schemas import BudgetIn, ExpenseIn, ExpenseUpdate
from services import (
    BudgetGuard,
    BudgetService,
    ExpenseService,
    ReconciliationService,
    SpendingSummaryService,
    cents_to_units,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Budget Tracker")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_owner(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Not authorized, no token")
    owner = verify_token(token.strip())
    if owner is None:
        raise HTTPException(status_code=401, detail="Not authorized, token failed")
    return owner


def _message(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


@app.exception_handler(HTTPException)
async def http_error_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(_request: Request, exc: ValidationError):
    return _message(400, str(exc))


@app.exception_handler(NotFoundError)
async def not_found_handler(_request: Request, exc: NotFoundError):
    return _message(404, str(exc))


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(_request: Request, exc: AuthorizationError):
    return _message(403, str(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(_request: Request, exc: RequestValidationError):
    for error in exc.errors():
        if tuple(error.get("loc", ()))[-1:] == ("expense_id",):
            return _message(400, "Invalid expense ID.")
    return _message(400, "Invalid request")


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"request_failed: path={request.url.path} error={exc}", exc_info=exc)
    return _message(500, "Server error")


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Expected a JSON object")
    return payload


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def expense_payload(payload: dict[str, Any]) -> ExpenseIn:
    amount = payload.get("amount")
    if _missing(amount) or _missing(payload.get("category")) or _missing(
        payload.get("date")
    ):
        raise ValueError("Amount, category, and date are required.")
    return ExpenseIn(
        amount_cents=parse_amount(amount),
        category=payload["category"],
        occurred_on=payload["date"],
        notes=payload.get("notes"),
    )


def expense_patch_payload(payload: dict[str, Any]) -> ExpenseUpdate:
    fields: dict[str, Any] = {}
    if not _missing(payload.get("amount")):
        fields["amount_cents"] = parse_amount(payload["amount"])
    if not _missing(payload.get("category")):
        fields["category"] = payload["category"]
    if not _missing(payload.get("date")):
        fields["occurred_on"] = payload["date"]
    if "notes" in payload:
        fields["notes"] = payload["notes"]
    return ExpenseUpdate(**fields)


def budget_payload(payload: dict[str, Any]) -> BudgetIn:
    month = payload.get("month") or current_month(settings.timezone)
    parse_month_token(month)
    amount = payload.get("amount")
    if _missing(payload.get("category")) or _missing(amount):
        raise ValueError("Category and a non-negative amount are required.")
    return BudgetIn(
        category=payload["category"], month=month, amount_cents=parse_amount(amount)
    )


def expense_to_dict(expense: Expense) -> dict[str, object]:
    return {
        "id": expense.id,
        "amount": cents_to_units(expense.amount_cents),
        "category": expense.category,
        "date": expense.occurred_on.isoformat(),
        "notes": expense.notes,
    }


def budget_to_dict(budget: Budget) -> dict[str, object]:
    return {
        "id": budget.id,
        "category": budget.category,
        "month": budget.month,
        "amount": cents_to_units(budget.limit_amount_cents),
    }


@app.get("/health")
def health_check() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/budgets/summary")
def budget_summary(
    request: Request,
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    results = ReconciliationService(db, owner).reconcile(
        request.query_params.get("startDate"), request.query_params.get("endDate")
    )
    return [row.as_dict() for row in results]


@app.get("/api/budgets")
def list_budgets(
    request: Request,
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    month = request.query_params.get("month") or current_month(settings.timezone)
    budgets = BudgetService(db, owner).list_for_month(month)
    return [budget_to_dict(budget) for budget in budgets]


@app.post("/api/budgets")
async def set_budget(
    request: Request,
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    payload = await _json_body(request)
    try:
        data = budget_payload(payload)
    except Exception as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    budget = BudgetService(db, owner).upsert(data)
    return budget_to_dict(budget)


@app.delete("/api/budgets")
def delete_budget(
    request: Request,
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    category = request.query_params.get("category")
    month = request.query_params.get("month")
    if not category or not month:
        raise HTTPException(
            status_code=400,
            detail="Category and month are required to delete a budget.",
        )
    if not BudgetService(db, owner).delete_one(category, month):
        return {"message": "Budget not found or already deleted."}
    return {"message": f"Budget for {category} in {month} deleted successfully."}


@app.get("/api/expenses")
def list_expenses(owner: str = Depends(current_owner), db: Session = Depends(get_db)):
    return [expense_to_dict(e) for e in ExpenseService(db, owner).list_by_owner()]


@app.get("/api/expenses/summary")
def spending_summary(
    request: Request,
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    return SpendingSummaryService(db, owner).summary(
        request.query_params.get("startDate"), request.query_params.get("endDate")
    )


@app.get("/api/expenses/export.csv")
def export_expenses_endpoint(
    owner: str = Depends(current_owner), db: Session = Depends(get_db)
):
    csv_text = ExpenseService(db, owner).export_csv()
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="expenses.csv"'},
    )


@app.post("/api/expenses", status_code=201)
async def add_expense(
    request: Request,
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    payload = await _json_body(request)
    try:
        data = expense_payload(payload)
    except Exception as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if not _truthy(payload.get("overrideBudget")):
        decision = BudgetGuard(db, owner).check_budget(
            data.category, data.amount_cents, data.occurred_on
        )
        if not decision.allowed:
            raise HTTPException(status_code=409, detail=decision.reason)

    expense = ExpenseService(db, owner).create(data)
    return expense_to_dict(expense)


@app.put("/api/expenses/{expense_id}")
async def update_expense(
    expense_id: int,
    request: Request,
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    payload = await _json_body(request)
    try:
        patch = expense_patch_payload(payload)
    except Exception as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    service = ExpenseService(db, owner)
    data = service.merge_update(expense_id, patch)
    if not _truthy(payload.get("overrideBudget")):
        decision = BudgetGuard(db, owner).check_budget(
            data.category,
            data.amount_cents,
            data.occurred_on,
            exclude_expense_id=expense_id,
        )
        if not decision.allowed:
            raise HTTPException(status_code=409, detail=decision.reason)

    expense = service.update(expense_id, data)
    return expense_to_dict(expense)


@app.delete("/api/expenses/{expense_id}")
def delete_expense(
    expense_id: int,
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    ExpenseService(db, owner).delete(expense_id)
    return {"message": "Expense removed successfully."}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
