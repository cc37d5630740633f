"""
Vendor endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .dependencies import FinancialsXSystem, get_system, http_error, require_permission, user_id_of
from .schemas import UpdateVendorRequest
from ..auth import User
from ..exceptions import FinancialsXError


router = APIRouter()


@router.get("/{company}")
async def get_vendors(
    company: str,
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return system.vendors.get_vendors(company)
    except FinancialsXError as e:
        raise http_error(e)


@router.put("/{company}/{vendor_index}")
async def update_vendor(
    company: str,
    vendor_index: int,
    request: UpdateVendorRequest,
    user: Optional[User] = Depends(require_permission("dbf.write")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return system.vendors.update_vendor(company, vendor_index, request.data,
                                            user_id=user_id_of(user))
    except FinancialsXError as e:
        raise http_error(e)
