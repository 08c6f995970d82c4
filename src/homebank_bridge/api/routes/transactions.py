import datetime as dt
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Response

from homebank_bridge.api.dependencies import (
    get_importer,
    get_transaction_service,
    get_transactions,
    require_auth,
)
from homebank_bridge.api.schemas import (
    DuplicateCandidate,
    TransactionCreate,
    TransactionExportRequest,
    TransactionImportCheck,
    TransactionImportRequest,
    TransactionUpdate,
)
from homebank_bridge.domain import csv_codec
from homebank_bridge.logger import get_logger
from homebank_bridge.models import ImportResult, Transaction, TransferResult
from homebank_bridge.repositories.transaction_repository import TransactionRepository
from homebank_bridge.services.exporter import group_by_account
from homebank_bridge.services.importer import Importer
from homebank_bridge.services.transactions import TransactionService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/transactions", tags=["transactions"], dependencies=[Depends(require_auth)])


def _iso(value: dt.date | None) -> str | None:
    return value.isoformat() if value else None


@router.get("", response_model=list[Transaction])
async def list_transactions(
    transactions: Annotated[TransactionRepository, Depends(get_transactions)],
    account_id: Annotated[int | None, Query(alias="accountId")] = None,
    date_from: Annotated[dt.date | None, Query(alias="from")] = None,
    date_to: Annotated[dt.date | None, Query(alias="to")] = None,
) -> list[Transaction]:
    return transactions.list(account_id, _iso(date_from), _iso(date_to))


@router.post("", status_code=201)
async def create_transaction(
    req: TransactionCreate,
    service: Annotated[TransactionService, Depends(get_transaction_service)],
) -> dict[str, Any]:
    result = service.create(req)
    if isinstance(result, TransferResult):
        return {"message": "Transfer created", **result.model_dump()}
    return {"id": result}


@router.post("/import-check")
async def check_transaction_duplicates(
    req: TransactionImportCheck,
    service: Annotated[TransactionService, Depends(get_transaction_service)],
) -> dict[str, list[DuplicateCandidate]]:
    return {"duplicates": service.find_duplicates(req.candidates)}


@router.post("/import", status_code=201, response_model=ImportResult)
async def import_transactions(
    req: TransactionImportRequest,
    importer: Annotated[Importer, Depends(get_importer)],
) -> ImportResult:
    return importer.import_transactions(
        req.csv_data,
        req.account_id,
        skip_duplicates=req.skip_duplicates,
        date_format=req.date_format,
    )


@router.post("/export", response_model=None)
async def export_transactions(
    req: TransactionExportRequest,
    transactions: Annotated[TransactionRepository, Depends(get_transactions)],
) -> Response | dict[str, dict[str, Any]]:
    rows = transactions.export_rows(
        ids=req.ids,
        account_id=req.account_id,
        date_from=_iso(req.from_date),
        date_to=_iso(req.to_date),
        category_id=req.category_id,
        payee=req.payee,
    )
    logger.info("[EXPORT] %d transaction(s) selected (grouped=%s).", len(rows), req.grouped)

    if req.grouped:
        return group_by_account(rows, date_format=req.date_format, decimal_separator=req.decimal_separator)

    content = csv_codec.format_transactions(
        rows,
        date_format=req.date_format,
        decimal_separator=req.decimal_separator,
    )
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=transactions.csv"},
    )


@router.put("/{transaction_id}")
async def update_transaction(
    transaction_id: int,
    req: TransactionUpdate,
    service: Annotated[TransactionService, Depends(get_transaction_service)],
) -> dict[str, str]:
    service.update(transaction_id, req.changes())
    return {"message": "Transaction updated successfully"}


@router.delete("/{transaction_id}", status_code=204)
async def delete_transaction(
    transaction_id: int,
    service: Annotated[TransactionService, Depends(get_transaction_service)],
) -> Response:
    service.delete(transaction_id)
    return Response(status_code=204)
