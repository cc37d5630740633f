"""
Bank account, balance, cached balance and reconciliation endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .dependencies import FinancialsXSystem, get_system, http_error, require_permission, user_id_of
from .schemas import ReconciliationDraftRequest
from ..auth import User
from ..exceptions import FinancialsXError


router = APIRouter()


@router.get("/{company}/accounts")
async def get_bank_accounts(
    company: str,
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        accounts = system.banking.get_bank_accounts(company)
        return {"accounts": accounts, "total": len(accounts)}
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/accounts/{account_number}/balance")
async def get_account_balance(
    company: str,
    account_number: str,
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        balance = system.banking.get_account_balance(company, account_number)
        return {
            "account_number": account_number,
            "balance": balance.to_number(),
            "formatted": balance.format(),
        }
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/outstanding-checks")
async def get_outstanding_checks(
    company: str,
    account_number: str = "",
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return system.banking.get_outstanding_checks(company, account_number)
    except FinancialsXError as e:
        raise http_error(e)


@router.post("/{company}/refresh-balances")
async def refresh_balances(
    company: str,
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return system.banking.refresh_all_balances(company)
    except FinancialsXError as e:
        raise http_error(e)


# Cached balances

@router.get("/{company}/cached-balances")
async def get_cached_balances(
    company: str,
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    balances = system.balances.get_cached_balances(company)
    return {"balances": balances, "total": len(balances)}


@router.post("/{company}/cached-balances/refresh")
async def refresh_cached_balances(
    company: str,
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        balances = system.balances.refresh_cached_balances(company, user_id=user_id_of(user))
        return {"balances": balances, "total": len(balances)}
    except FinancialsXError as e:
        raise http_error(e)


@router.post("/{company}/accounts/{account_number}/refresh-balance")
async def refresh_account_balance(
    company: str,
    account_number: str,
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return system.balances.refresh_account_balance(company, account_number,
                                                       user_id=user_id_of(user)).to_public()
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/accounts/{account_number}/balance-history")
async def get_balance_history(
    company: str,
    account_number: str,
    limit: int = 50,
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    history = system.balances.get_balance_history(company, account_number, limit)
    return {"history": history, "total": len(history)}


# Reconciliation

@router.get("/{company}/reconciliation/{account_number}/draft")
async def get_reconciliation_draft(
    company: str,
    account_number: str,
    user: Optional[User] = Depends(require_permission("reconciliation.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        draft = system.reconciliation.get_draft(company, account_number)
        return {"draft": draft.to_public() if draft else None}
    except FinancialsXError as e:
        raise http_error(e)


@router.put("/{company}/reconciliation/{account_number}/draft")
async def save_reconciliation_draft(
    company: str,
    account_number: str,
    request: ReconciliationDraftRequest,
    user: Optional[User] = Depends(require_permission("reconciliation.write")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        draft = system.reconciliation.save_draft(
            company, account_number, request.statement_date,
            statement_balance=request.statement_balance,
            statement_credits=request.statement_credits,
            statement_debits=request.statement_debits,
            beginning_balance=request.beginning_balance,
            selected_checks=[c.model_dump() for c in request.selected_checks],
            user_id=user_id_of(user),
        )
        return draft.to_public()
    except FinancialsXError as e:
        raise http_error(e)


@router.delete("/{company}/reconciliation/{account_number}/draft")
async def delete_reconciliation_draft(
    company: str,
    account_number: str,
    user: Optional[User] = Depends(require_permission("reconciliation.write")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        deleted = system.reconciliation.delete_draft(company, account_number,
                                                     user_id=user_id_of(user))
        return {"deleted": deleted}
    except FinancialsXError as e:
        raise http_error(e)


@router.post("/{company}/reconciliation/{account_number}/commit")
async def commit_reconciliation(
    company: str,
    account_number: str,
    user: Optional[User] = Depends(require_permission("reconciliation.write")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return system.reconciliation.commit_reconciliation(company, account_number,
                                                           user_id=user_id_of(user)).to_public()
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/reconciliation/{account_number}/history")
async def get_reconciliation_history(
    company: str,
    account_number: str,
    limit: int = 50,
    user: Optional[User] = Depends(require_permission("reconciliation.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        history = system.reconciliation.get_history(company, account_number, limit)
        return {"history": [r.to_public() for r in history], "total": len(history)}
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/reconciliation/{account_number}/last")
async def get_last_committed_reconciliation(
    company: str,
    account_number: str,
    user: Optional[User] = Depends(require_permission("reconciliation.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        last = system.reconciliation.get_last_committed(company, account_number)
        return {"reconciliation": last.to_public() if last else None}
    except FinancialsXError as e:
        raise http_error(e)
