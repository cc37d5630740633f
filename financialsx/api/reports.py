"""
PDF report and owner statement endpoints
"""

from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from .dependencies import FinancialsXSystem, get_system, http_error, require_permission, user_id_of
from .schemas import ChartOfAccountsReportRequest
from ..auth import User
from ..exceptions import FinancialsXError


router = APIRouter()


def _generated(path: str) -> dict:
    return {"success": True, "file_path": path, "file_name": Path(path).name}


@router.post("/{company}/chart-of-accounts")
async def generate_chart_of_accounts(
    company: str,
    request: ChartOfAccountsReportRequest,
    user: Optional[User] = Depends(require_permission("reports.create")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        path = system.reports.generate_chart_of_accounts_pdf(
            company, sort_by=request.sort_by, include_inactive=request.include_inactive,
            user_id=user_id_of(user),
        )
        return _generated(path)
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/download/{file_name}")
async def download_report(
    file_name: str,
    user: Optional[User] = Depends(require_permission("reports.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    """Serve a previously generated PDF from the report output directory"""
    if Path(file_name).name != file_name or not file_name.lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Invalid report file name")
    path = system.reports.output_dir / file_name
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Report not found")
    return FileResponse(str(path), media_type="application/pdf", filename=file_name)


@router.get("/{company}/owner-statements/check")
async def check_owner_statement_files(
    company: str,
    user: Optional[User] = Depends(require_permission("reports.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    return system.reports.check_owner_statement_files(company)


@router.get("/{company}/owner-statements")
async def list_owner_statements(
    company: str,
    user: Optional[User] = Depends(require_permission("reports.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        statements = system.reports.get_owner_statements_list(company)
        return {"statements": statements, "total": len(statements)}
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/owner-statements/{file_name}/owners")
async def list_owners(
    company: str,
    file_name: str,
    user: Optional[User] = Depends(require_permission("reports.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        owners = system.reports.get_owners_list(company, file_name)
        return {"owners": owners, "total": len(owners)}
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/owner-statements/{file_name}/owners/{owner_key}")
async def get_owner_statement(
    company: str,
    file_name: str,
    owner_key: str,
    user: Optional[User] = Depends(require_permission("reports.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return system.reports.get_owner_statement_data(company, file_name, owner_key)
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/owner-statements/{file_name}/structure")
async def examine_owner_statement(
    company: str,
    file_name: str,
    user: Optional[User] = Depends(require_permission("reports.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return system.reports.examine_owner_statement_structure(company, file_name)
    except FinancialsXError as e:
        raise http_error(e)


@router.post("/{company}/owner-statements/{file_name}/pdf")
async def generate_owner_statement(
    company: str,
    file_name: str,
    user: Optional[User] = Depends(require_permission("reports.create")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        path = system.reports.generate_owner_statement_pdf(company, file_name,
                                                          user_id=user_id_of(user))
        return _generated(path)
    except FinancialsXError as e:
        raise http_error(e)
