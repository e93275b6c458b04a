"""Account routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from loanledger.api.deps import get_store
from loanledger.api.schemas import AccountCreate, AccountResponse
from loanledger.data.store import LiabilityStore
from loanledger.exceptions import MissingAccount

router = APIRouter(prefix="/api/v1/accounts", tags=["accounts"])


@router.post("", response_model=AccountResponse, status_code=201)
def open_account(req: AccountCreate, store: LiabilityStore = Depends(get_store)):
    account_id = store.open_account(req.name, currency=req.currency, balance=req.balance)
    return _account_response(store, account_id)


@router.get("/{account_id}", response_model=AccountResponse)
def get_account(account_id: UUID, store: LiabilityStore = Depends(get_store)):
    return _account_response(store, account_id)


def _account_response(store: LiabilityStore, account_id: UUID) -> AccountResponse:
    try:
        account = store.get_account(account_id)
    except MissingAccount as e:
        raise HTTPException(status_code=404, detail=str(e))
    return AccountResponse(id=account.id, name=account.name, currency=account.currency, balance=account.balance)
