from typing import Annotated

from fastapi import APIRouter, Depends, Response

from homebank_bridge.api.dependencies import get_accounts, require_auth
from homebank_bridge.api.schemas import AccountCreate, AccountUpdate, CurrencyRename
from homebank_bridge.models import Account
from homebank_bridge.repositories.account_repository import AccountRepository

router = APIRouter(prefix="/api/accounts", tags=["accounts"], dependencies=[Depends(require_auth)])


@router.get("", response_model=list[Account])
async def list_accounts(
    accounts: Annotated[AccountRepository, Depends(get_accounts)],
) -> list[Account]:
    return accounts.list_all()


@router.post("", status_code=201)
async def create_account(
    req: AccountCreate,
    accounts: Annotated[AccountRepository, Depends(get_accounts)],
) -> dict[str, int]:
    return {"id": accounts.create(req.name, req.currency, req.initial_balance)}


@router.post("/rename-currency")
async def rename_currency(
    req: CurrencyRename,
    accounts: Annotated[AccountRepository, Depends(get_accounts)],
) -> dict[str, int | str]:
    renamed = accounts.rename_currency(req.old_code, req.new_code)
    return {"message": "Currency renamed successfully", "count": renamed}


@router.put("/{account_id}")
async def update_account(
    account_id: int,
    req: AccountUpdate,
    accounts: Annotated[AccountRepository, Depends(get_accounts)],
) -> dict[str, str]:
    accounts.update(account_id, req.changes())
    return {"message": "Account updated successfully"}


@router.delete("/{account_id}", status_code=204)
async def delete_account(
    account_id: int,
    accounts: Annotated[AccountRepository, Depends(get_accounts)],
) -> Response:
    accounts.delete(account_id)
    return Response(status_code=204)
