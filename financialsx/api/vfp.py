"""
Legacy Visual FoxPro integration endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .dependencies import FinancialsXSystem, get_system, http_error, require_permission, user_id_of
from .schemas import LaunchFormRequest, SetCompanyRequest, VFPSettingsRequest
from ..auth import User
from ..exceptions import FinancialsXError


router = APIRouter()


@router.get("/settings")
async def get_settings(
    user: Optional[User] = Depends(require_permission("settings.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    return system.vfp.get_settings().to_public()


@router.put("/settings")
async def save_settings(
    request: VFPSettingsRequest,
    user: Optional[User] = Depends(require_permission("settings.write")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        settings = system.vfp.save_settings(request.host, request.port, request.enabled,
                                            timeout=request.timeout, user_id=user_id_of(user))
        return settings.to_public()
    except FinancialsXError as e:
        raise http_error(e)


@router.post("/test")
async def test_connection(
    user: Optional[User] = Depends(require_permission("settings.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    """Probe the listener; failures come back as success false"""
    return system.vfp.test_connection()


@router.post("/launch")
async def launch_form(
    request: LaunchFormRequest,
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        message = system.vfp.launch_form(request.form_name, request.argument, request.company,
                                         user_id=user_id_of(user))
        return {"success": True, "message": message}
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/company")
async def get_vfp_company(
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return {"company": system.vfp.get_vfp_company()}
    except FinancialsXError as e:
        raise http_error(e)


@router.put("/company")
async def set_vfp_company(
    request: SetCompanyRequest,
    user: Optional[User] = Depends(require_permission("settings.write")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        system.vfp.set_vfp_company(request.company)
        return {"success": True, "company": request.company}
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/forms")
async def get_form_list(
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    return {"forms": system.vfp.get_form_list()}
