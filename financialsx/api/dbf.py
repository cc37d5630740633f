"""
Raw DBF table endpoints: listing, browsing, editing and CSV export

Table names may include a subfolder, e.g. ``ownerstatements/dist2024``.
"""

from pathlib import PurePosixPath
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from .dependencies import FinancialsXSystem, get_system, http_error, require_permission, user_id_of
from .schemas import UpdateCellRequest
from ..auth import User
from ..exceptions import FinancialsXError


router = APIRouter()


@router.get("/{company}/files")
async def list_dbf_files(
    company: str,
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        files = system.companies.get_dbf_files(company)
        return {"files": files, "total": len(files)}
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/info/{table:path}")
async def get_table_info(
    company: str,
    table: str,
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    """Header, field descriptors and record counts"""
    try:
        return system.companies.get_table_info(company, table)
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/tables/{table:path}")
async def get_table_data(
    company: str,
    table: str,
    search: str = "",
    offset: int = Query(0, ge=0),
    limit: int = Query(0, ge=0, description="0 returns every matching row"),
    sort_column: str = "",
    sort_direction: str = "asc",
    user: Optional[User] = Depends(require_permission("dbf.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return system.companies.get_table_data(
            company, table, search=search, offset=offset, limit=limit,
            sort_column=sort_column, sort_direction=sort_direction,
        )
    except FinancialsXError as e:
        raise http_error(e)


@router.put("/{company}/tables/{table:path}")
async def update_record(
    company: str,
    table: str,
    request: UpdateCellRequest,
    user: Optional[User] = Depends(require_permission("dbf.write")),
    system: FinancialsXSystem = Depends(get_system)
):
    """Write one cell of an active row"""
    try:
        return system.companies.update_record(
            company, table, request.row_index, request.column_index, request.value,
            user_id=user_id_of(user),
        )
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/{company}/export/{table:path}")
async def export_table(
    company: str,
    table: str,
    user: Optional[User] = Depends(require_permission("dbf.export")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        content = system.companies.export_table_csv(company, table, user_id=user_id_of(user))
    except FinancialsXError as e:
        raise http_error(e)
    filename = PurePosixPath(table.replace("\\", "/")).stem.upper() + ".csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
