"""
Exception hierarchy shared by all FinancialsX services.
"""


class FinancialsXError(Exception):
    """Base class for all FinancialsX errors"""


class CurrencyError(FinancialsXError, ValueError):
    """Invalid monetary value or arithmetic"""


class DBFError(FinancialsXError):
    """Corrupt DBF file or a value that cannot be encoded"""


class CompanyError(FinancialsXError):
    """Company, data path or table could not be resolved"""


class TableNotFoundError(CompanyError):
    """A named DBF table does not exist in the company folder"""


class AuthError(FinancialsXError):
    """Authentication failure (credentials, session or token)"""


class PermissionDenied(AuthError):
    """Authenticated user lacks a required permission"""


class VFPError(FinancialsXError):
    """Legacy VFP integration failure"""


class ReportError(FinancialsXError):
    """Report could not be produced"""


class ReconciliationError(FinancialsXError):
    """Bank reconciliation draft or commit rejected"""
