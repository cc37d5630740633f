"""
Service container and authentication dependencies
"""

from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..audit import AuditTrail
from ..audits import AuditService
from ..auth import AuthManager, User
from ..balances import BalanceCache
from ..banking import BankingService
from ..companies import CompanyService
from ..config import get_config
from ..exceptions import AuthError, FinancialsXError, PermissionDenied, TableNotFoundError
from ..gl import GLService
from ..operations import OperationsService
from ..reconciliation import ReconciliationService
from ..reports import ReportService
from ..storage import InMemoryStorage, SQLiteStorage
from ..vendors import VendorService
from ..vfp import VFPClient
from ..wells import WellService


class FinancialsXSystem:
    """All FinancialsX services wired to one storage backend"""

    def __init__(self, use_sqlite: bool = True, data_path: Optional[str] = None):
        if use_sqlite:
            self.storage = SQLiteStorage(get_config().database_path)
        else:
            self.storage = InMemoryStorage()

        self.audit_trail = AuditTrail(self.storage)
        self.auth = AuthManager(self.storage, self.audit_trail)
        self.companies = CompanyService(self.audit_trail, data_path=data_path)
        self.vendors = VendorService(self.companies)
        self.wells = WellService(self.companies)
        self.banking = BankingService(self.companies)
        self.balances = BalanceCache(self.storage, self.companies, self.banking)
        self.reconciliation = ReconciliationService(self.storage, self.audit_trail)
        self.gl = GLService(self.companies)
        self.audits = AuditService(self.companies)
        self.operations = OperationsService(self.companies)
        self.reports = ReportService(self.companies, self.gl, self.audit_trail)
        self.vfp = VFPClient(self.storage, self.audit_trail)


# Global system instance
system = FinancialsXSystem(use_sqlite=True)

# Tests switch this off to call endpoints without a token
AUTH_ENABLED = get_config().auth_enabled

security = HTTPBearer(auto_error=False)


def get_system() -> FinancialsXSystem:
    return system


def http_error(error: FinancialsXError) -> HTTPException:
    """Translate a service error into the matching HTTP status"""
    if isinstance(error, PermissionDenied):
        return HTTPException(status_code=403, detail=str(error))
    if isinstance(error, AuthError):
        return HTTPException(status_code=401, detail=str(error))
    if isinstance(error, TableNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security),
                     system: FinancialsXSystem = Depends(get_system)) -> Optional[User]:
    """Dependency that validates the bearer token and returns the user"""
    if not AUTH_ENABLED:
        return None

    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return system.auth.validate_session(credentials.credentials)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))


def require_permission(permission: str):
    """Dependency factory for permission checking"""
    def check(user: Optional[User] = Depends(get_current_user),
              system: FinancialsXSystem = Depends(get_system)) -> Optional[User]:
        if not AUTH_ENABLED:
            return user
        if not system.auth.has_permission(user, permission):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user
    return check


def user_id_of(user: Optional[User]) -> Optional[str]:
    return user.id if user else None
