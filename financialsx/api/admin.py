"""
User administration and audit trail endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from .dependencies import FinancialsXSystem, get_system, http_error, require_permission, user_id_of
from .schemas import CreateUserRequest, ResetPasswordRequest, UpdateRoleRequest, UpdateStatusRequest
from ..auth import User
from ..exceptions import FinancialsXError


router = APIRouter()


@router.get("/users")
async def list_users(
    user: Optional[User] = Depends(require_permission("users.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    users = system.auth.get_all_users()
    return {"users": users, "total": len(users)}


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    user: Optional[User] = Depends(require_permission("users.create")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        created = system.auth.create_user(request.username, request.password, request.email,
                                          request.role_id, created_by=user_id_of(user))
        return {"user": system.auth.public_user(created), "message": "User created successfully"}
    except FinancialsXError as e:
        raise http_error(e)


@router.put("/users/{user_id}/role")
async def update_user_role(
    user_id: str,
    request: UpdateRoleRequest,
    user: Optional[User] = Depends(require_permission("users.manage_roles")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        updated = system.auth.update_user_role(user_id, request.role_id, changed_by=user_id_of(user))
        return {"user": system.auth.public_user(updated)}
    except FinancialsXError as e:
        raise http_error(e)


@router.put("/users/{user_id}/status")
async def update_user_status(
    user_id: str,
    request: UpdateStatusRequest,
    user: Optional[User] = Depends(require_permission("users.update")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        updated = system.auth.update_user_status(user_id, request.is_active, changed_by=user_id_of(user))
        return {"user": system.auth.public_user(updated)}
    except FinancialsXError as e:
        raise http_error(e)


@router.post("/users/{user_id}/reset-password")
async def reset_password(
    user_id: str,
    request: ResetPasswordRequest,
    user: Optional[User] = Depends(require_permission("users.update")),
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        system.auth.admin_reset_password(user_id, request.new_password, changed_by=user_id_of(user))
        return {"success": True, "message": "Password reset successfully"}
    except FinancialsXError as e:
        raise http_error(e)


@router.get("/roles")
async def list_roles(
    user: Optional[User] = Depends(require_permission("users.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    return {"roles": system.auth.get_all_roles()}


@router.post("/sessions/cleanup")
async def cleanup_sessions(
    user: Optional[User] = Depends(require_permission("database.maintain")),
    system: FinancialsXSystem = Depends(get_system)
):
    return {"removed": system.auth.cleanup_expired_sessions()}


@router.get("/audit/events")
async def list_audit_events(
    limit: int = 100,
    user: Optional[User] = Depends(require_permission("database.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    """Most recent audit events first"""
    if limit <= 0:
        raise HTTPException(status_code=400, detail="limit must be positive")
    events = system.audit_trail.get_all_events(limit=limit)
    return {
        "events": [e.to_dict() for e in reversed(events)],
        "total": system.audit_trail.count_events(),
    }


@router.get("/audit/verify")
async def verify_audit_trail(
    user: Optional[User] = Depends(require_permission("database.read")),
    system: FinancialsXSystem = Depends(get_system)
):
    return system.audit_trail.verify_integrity()
