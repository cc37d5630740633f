"""
Batch tracing endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .dependencies import FinancialsXSystem, get_system, http_error, require_permission
from ..auth import User
from ..exceptions import FinancialsXError


router = APIRouter()


@router.get("/{company}/batches/{batch_number}")
async def follow_batch_number(
    company: str,
    batch_number: str,
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    """Rows for a batch across checks, GL and AP payment/purchase tables"""
    try:
        return system.operations.follow_batch_number(company, batch_number)
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/search/{table}")
async def search_table(
    company: str,
    table: str,
    value: str,
    field: str = "CBATCH",
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    return system.operations.search_table(company, table, value, search_field=field).to_dict()
