"""
General ledger endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .dependencies import FinancialsXSystem, get_system, http_error, require_permission
from ..auth import User
from ..exceptions import FinancialsXError


router = APIRouter()


@router.get("/{company}/chart-of-accounts")
async def get_chart_of_accounts(
    company: str,
    sort_by: str = "number",
    include_inactive: bool = False,
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        accounts = system.gl.get_chart_of_accounts(company, sort_by=sort_by,
                                                   include_inactive=include_inactive)
        return {"accounts": accounts, "total": len(accounts)}
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/balances-by-year")
async def analyze_balances_by_year(
    company: str,
    account_number: str = "",
    user: Optional[User] = Depends(require_permission("database.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return system.gl.analyze_gl_balances_by_year(company, account_number)
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/validate")
async def validate_balances(
    company: str,
    account_number: str = "",
    user: Optional[User] = Depends(require_permission("database.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return system.gl.validate_gl_balances(company, account_number)
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/period-fields")
async def check_period_fields(
    company: str,
    user: Optional[User] = Depends(require_permission("database.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return system.gl.check_gl_period_fields(company)
    except FinancialsXError as e:
        raise http_error(e)
