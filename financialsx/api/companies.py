"""
Company discovery, company info and dashboard endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .dependencies import FinancialsXSystem, get_system, http_error, require_permission, user_id_of
from .schemas import CompanyInfoRequest, DataPathRequest
from ..auth import User
from ..exceptions import FinancialsXError


router = APIRouter()


@router.get("")
async def list_companies(
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    """Companies listed in compmast.dbf"""
    try:
        companies = system.companies.get_company_list()
        return {"companies": companies, "total": len(companies)}
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/data-path")
async def get_data_path(
    user: Optional[User] = Depends(require_permission("settings.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    return {"data_path": str(system.companies.data_path)}


@router.put("/data-path")
async def set_data_path(
    request: DataPathRequest,
    user: Optional[User] = Depends(require_permission("settings.write")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        path = system.companies.set_data_path(request.path, user_id=user_id_of(user))
        return {"data_path": path, "message": "Data path updated successfully"}
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/info")
async def get_company_info(
    company: str,
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return system.companies.get_company_info(company)
    except FinancialsXError as e:
        raise http_error(e)


@router.put("/{company}/info")
async def update_company_info(
    company: str,
    request: CompanyInfoRequest,
    user: Optional[User] = Depends(require_permission("dbf.write")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return system.companies.update_company_info(company, request.data, user_id=user_id_of(user))
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/dashboard")
async def get_dashboard(
    company: str,
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return system.companies.get_dashboard_data(company)
    except FinancialsXError as e:
        raise http_error(e)
