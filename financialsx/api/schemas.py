"""
Pydantic schemas for API requests
"""

from typing import Any, Dict, List
from pydantic import BaseModel, Field


# Auth schemas
class RegisterRequest(BaseModel):
    username: str
    password: str
    email: str = ""


class LoginRequest(BaseModel):
    username: str
    password: str
    company_name: str = ""


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str


# Admin schemas
class CreateUserRequest(BaseModel):
    username: str
    password: str
    email: str = ""
    role_id: int


class UpdateRoleRequest(BaseModel):
    role_id: int


class UpdateStatusRequest(BaseModel):
    is_active: bool


class ResetPasswordRequest(BaseModel):
    new_password: str


# Company schemas
class DataPathRequest(BaseModel):
    path: str


class CompanyInfoRequest(BaseModel):
    data: Dict[str, Any] = Field(..., description="Company info keys (name, address1, city, ...) or VERSION.DBF columns")


# DBF schemas
class UpdateCellRequest(BaseModel):
    row_index: int = Field(..., ge=0, description="Position among active (non-deleted) rows")
    column_index: int = Field(..., ge=0)
    value: Any = None


class UpdateVendorRequest(BaseModel):
    data: Dict[str, Any]


# Report schemas
class ChartOfAccountsReportRequest(BaseModel):
    sort_by: str = "number"
    include_inactive: bool = False


# VFP schemas
class VFPSettingsRequest(BaseModel):
    host: str
    port: int
    enabled: bool
    timeout: int = 5


class LaunchFormRequest(BaseModel):
    form_name: str
    argument: str = ""
    company: str = ""


class SetCompanyRequest(BaseModel):
    company: str


# Reconciliation schemas
class SelectedCheckModel(BaseModel):
    cidchec: str = ""
    check_number: str = ""
    amount: float = 0
    payee: str = ""
    check_date: str = ""
    row_index: int = 0


class ReconciliationDraftRequest(BaseModel):
    statement_date: str = Field(..., description="YYYY-MM-DD")
    statement_balance: float = 0
    statement_credits: float = 0
    statement_debits: float = 0
    beginning_balance: float = 0
    selected_checks: List[SelectedCheckModel] = Field(default_factory=list)
