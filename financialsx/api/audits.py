"""
Data integrity audit endpoints

Audit failures (missing tables, missing columns) are reported inside the
result with success false, so these endpoints answer 200 either way.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .dependencies import FinancialsXSystem, get_system, require_permission
from ..auth import User


router = APIRouter()


@router.get("/{company}/check-batches")
async def audit_check_batches(
    company: str,
    user: Optional[User] = Depends(require_permission("database.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    """Checks whose batch has no matching GL disbursement entry"""
    return system.audits.audit_check_batches(company).to_dict()


@router.get("/{company}/duplicate-cidchec")
async def audit_duplicate_cidchec(
    company: str,
    user: Optional[User] = Depends(require_permission("database.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    return system.audits.audit_duplicate_cidchec(company).to_dict()


@router.get("/{company}/void-checks")
async def audit_void_checks(
    company: str,
    user: Optional[User] = Depends(require_permission("database.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    return system.audits.audit_void_checks(company).to_dict()


@router.get("/{company}/payee-cid")
async def audit_payee_cid(
    company: str,
    user: Optional[User] = Depends(require_permission("database.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    return system.audits.audit_payee_cid_verification(company).to_dict()


@router.get("/{company}/check-gl-matching")
async def audit_check_gl_matching(
    company: str,
    account_number: str = "",
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user: Optional[User] = Depends(require_permission("database.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    """Dates are ISO strings; the range is inclusive"""
    return system.audits.audit_check_gl_matching(
        company, account_number, start_date=start_date, end_date=end_date
    ).to_dict()


@router.get("/{company}/bank-reconciliation")
async def audit_bank_reconciliation(
    company: str,
    user: Optional[User] = Depends(require_permission("database.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    return system.audits.audit_bank_reconciliation(company).to_dict()


@router.get("/{company}/bank-accounts/{account_number}")
async def audit_bank_account(
    company: str,
    account_number: str,
    user: Optional[User] = Depends(require_permission("database.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    return system.audits.audit_single_bank_account(company, account_number).to_dict()
