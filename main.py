import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import StorageFailure, get_db
from identity import owner_id_from_authorization
from models import Transaction
from periods import InvalidRange, resolve_window
from schemas import (
    AccountIn,
    BulkCreateIn,
    BulkDeleteIn,
    CategoryIn,
    TransactionIn,
    TransactionOut,
)
from services import (
    AccountService,
    CategoryService,
    MetricsService,
    NotFound,
    TransactionService,
    Unauthorized,
    require_owner,
)


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Ledger")


@app.exception_handler(Unauthorized)
def unauthorized_handler(request: Request, exc: Unauthorized) -> JSONResponse:
    return JSONResponse({"error": "Unauthorized"}, status_code=401)


@app.exception_handler(InvalidRange)
def invalid_range_handler(request: Request, exc: InvalidRange) -> JSONResponse:
    return JSONResponse({"error": str(exc), "field": exc.field}, status_code=400)


@app.exception_handler(NotFound)
def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=404)


@app.exception_handler(ValueError)
def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=400)


@app.exception_handler(StorageFailure)
def storage_failure_handler(request: Request, exc: StorageFailure) -> JSONResponse:
    logger.error(f"request_failed: path={request.url.path} error={exc}")
    return JSONResponse({"error": "Internal server error"}, status_code=500)


def current_owner(authorization: Optional[str] = Header(default=None)) -> str:
    return require_owner(owner_id_from_authorization(authorization))


def transaction_payload(txn: Transaction) -> dict[str, object]:
    return TransactionOut.model_validate(txn).model_dump(mode="json", by_alias=True)


@app.get("/api/summary")
def api_summary(
    request: Request,
    owner_id: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    params = request.query_params
    summary = MetricsService(db, owner_id).summary(
        params.get("from"), params.get("to"), params.get("accountId")
    )
    return {"data": summary.model_dump(mode="json", by_alias=True)}


@app.get("/api/accounts")
def api_accounts(
    owner_id: str = Depends(current_owner), db: Session = Depends(get_db)
):
    accounts = AccountService(db, owner_id).list_all()
    return {"data": [{"id": a.id, "name": a.name} for a in accounts]}


@app.post("/api/accounts")
def api_create_account(
    data: AccountIn,
    owner_id: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    account = AccountService(db, owner_id).create(data)
    return {"data": {"id": account.id, "name": account.name}}


@app.get("/api/categories")
def api_categories(
    owner_id: str = Depends(current_owner), db: Session = Depends(get_db)
):
    categories = CategoryService(db).list_all()
    return {"data": [{"id": c.id, "name": c.name} for c in categories]}


@app.post("/api/categories")
def api_create_category(
    data: CategoryIn,
    owner_id: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    category = CategoryService(db).create(data)
    return {"data": {"id": category.id, "name": category.name}}


@app.get("/api/transactions")
def api_transactions(
    request: Request,
    owner_id: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    params = request.query_params
    window = resolve_window(params.get("from"), params.get("to"))
    items = TransactionService(db, owner_id).list(window, params.get("accountId"))
    return {
        "data": [
            {
                **transaction_payload(txn),
                "category": txn.category.name if txn.category else None,
                "account": txn.account.name,
            }
            for txn in items
        ]
    }


@app.get("/api/transactions/{transaction_id}")
def api_transaction(
    transaction_id: str,
    owner_id: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, owner_id).get(transaction_id)
    return {"data": transaction_payload(txn)}


@app.post("/api/transactions")
def api_create_transaction(
    data: TransactionIn,
    owner_id: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, owner_id).create(data)
    return {"data": transaction_payload(txn)}


@app.post("/api/transactions/bulk-create")
def api_bulk_create_transactions(
    data: BulkCreateIn,
    owner_id: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    created = TransactionService(db, owner_id).bulk_create(data.transactions)
    return {"data": [transaction_payload(txn) for txn in created]}


@app.post("/api/transactions/bulk-delete")
def api_bulk_delete_transactions(
    data: BulkDeleteIn,
    owner_id: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    deleted = TransactionService(db, owner_id).bulk_delete(data.ids)
    return {"data": [{"id": txn_id} for txn_id in deleted]}


@app.patch("/api/transactions/{transaction_id}")
def api_update_transaction(
    transaction_id: str,
    data: TransactionIn,
    owner_id: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, owner_id).update(transaction_id, data)
    return {"data": transaction_payload(txn)}


@app.delete("/api/transactions/{transaction_id}")
def api_delete_transaction(
    transaction_id: str,
    owner_id: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    deleted_id = TransactionService(db, owner_id).delete(transaction_id)
    return {"data": {"id": deleted_id}}
