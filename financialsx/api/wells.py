"""
Well endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .dependencies import FinancialsXSystem, get_system, http_error, require_permission
from ..auth import User
from ..exceptions import FinancialsXError


router = APIRouter()


@router.get("/{company}")
async def get_wells(
    company: str,
    status: Optional[str] = None,
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    """Wells, optionally filtered by status name (Active, Plugged, Shut-in, Inactive)"""
    try:
        wells = system.wells.get_wells(company, status=status)
        return {"wells": [w.to_dict() for w in wells], "total": len(wells)}
    except FinancialsXError as e:
        raise http_error(e)
