"""
Authentication endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials

from .dependencies import (
    FinancialsXSystem, get_system, get_current_user, http_error, security
)
from .schemas import ChangePasswordRequest, LoginRequest, RegisterRequest
from ..auth import User
from ..exceptions import AuthError


router = APIRouter()


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    system: FinancialsXSystem = Depends(get_system)
):
    """Create an account; the first account becomes root"""
    try:
        user = system.auth.register(request.username, request.password, request.email)
        return {"user": system.auth.public_user(user), "message": "User registered successfully"}
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/login")
async def login(
    request: LoginRequest,
    system: FinancialsXSystem = Depends(get_system)
):
    try:
        return system.auth.login(request.username, request.password, request.company_name)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))


@router.post("/logout")
async def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: FinancialsXSystem = Depends(get_system)
):
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return {"success": system.auth.logout(credentials.credentials)}
    except AuthError as e:
        raise http_error(e)


@router.get("/me")
async def get_me(
    user: Optional[User] = Depends(get_current_user),
    system: FinancialsXSystem = Depends(get_system)
):
    """Current user and permissions"""
    if user is None:
        return {"user": None, "permissions": [], "auth_enabled": False}
    return {
        "user": system.auth.public_user(user),
        "permissions": system.auth.get_user_permissions(user),
        "auth_enabled": True,
    }


@router.post("/change-password")
async def change_password(
    request: ChangePasswordRequest,
    user: Optional[User] = Depends(get_current_user),
    system: FinancialsXSystem = Depends(get_system)
):
    if user is None:
        raise HTTPException(status_code=400, detail="Authentication is disabled")
    try:
        system.auth.change_password(user.id, request.old_password, request.new_password)
        return {"success": True, "message": "Password changed successfully"}
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))
