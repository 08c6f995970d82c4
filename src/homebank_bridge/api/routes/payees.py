from typing import Annotated

from fastapi import APIRouter, Depends, Response

from homebank_bridge.api.dependencies import get_importer, get_payees, require_auth
from homebank_bridge.api.schemas import PayeeCandidate, PayeeCreate, PayeeImportCheck, PayeeImportRequest, PayeeUpdate
from homebank_bridge.models import ImportResult, Payee
from homebank_bridge.repositories.payee_repository import PayeeRepository
from homebank_bridge.services.exporter import export_payees
from homebank_bridge.services.importer import Importer

router = APIRouter(prefix="/api/payees", tags=["payees"], dependencies=[Depends(require_auth)])


@router.get("", response_model=list[Payee])
async def list_payees(
    payees: Annotated[PayeeRepository, Depends(get_payees)],
) -> list[Payee]:
    return payees.list_all()


@router.post("", status_code=201)
async def create_payee(
    req: PayeeCreate,
    payees: Annotated[PayeeRepository, Depends(get_payees)],
) -> dict[str, int]:
    return {"id": payees.create(req.name, req.default_category_id, req.default_payment_type)}


@router.get("/export")
async def export_payees_csv(
    payees: Annotated[PayeeRepository, Depends(get_payees)],
) -> Response:
    return Response(
        content=export_payees(payees),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=payees.csv"},
    )


@router.post("/import", status_code=201, response_model=ImportResult)
async def import_payees_csv(
    req: PayeeImportRequest,
    importer: Annotated[Importer, Depends(get_importer)],
) -> ImportResult:
    return importer.import_payees(req.csv_data, skip_duplicates=req.skip_duplicates)


@router.post("/import-check")
async def check_payee_duplicates(
    req: PayeeImportCheck,
    payees: Annotated[PayeeRepository, Depends(get_payees)],
) -> dict[str, list[PayeeCandidate]]:
    duplicates = [c for c in req.candidates if payees.find_id_by_name(c.name) is not None]
    return {"duplicates": duplicates}


@router.put("/{payee_id}")
async def update_payee(
    payee_id: int,
    req: PayeeUpdate,
    payees: Annotated[PayeeRepository, Depends(get_payees)],
) -> dict[str, str]:
    payees.update(payee_id, req.changes())
    return {"message": "Payee updated successfully"}


@router.delete("/{payee_id}", status_code=204)
async def delete_payee(
    payee_id: int,
    payees: Annotated[PayeeRepository, Depends(get_payees)],
) -> Response:
    payees.delete(payee_id)
    return Response(status_code=204)
