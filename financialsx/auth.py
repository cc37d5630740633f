"""
Authentication and Authorization Module

Users, roles, permissions and sessions. Passwords are hashed with scrypt and a
per-user salt; sessions are handed to clients as signed JWTs carrying the
session id, so a logout or a deactivated user invalidates outstanding tokens.
"""

import hashlib
import hmac
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

import jwt

from .audit import AuditEventType, AuditTrail
from .config import get_config
from .exceptions import AuthError, PermissionDenied
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


logger = get_logger("financialsx.auth")

USERS_TABLE = "users"
ROLES_TABLE = "roles"
SESSIONS_TABLE = "sessions"


class Permission(Enum):
    """System permissions, named resource.action"""
    USERS_CREATE = "users.create"
    USERS_READ = "users.read"
    USERS_UPDATE = "users.update"
    USERS_DELETE = "users.delete"
    USERS_MANAGE_ROLES = "users.manage_roles"

    DBF_READ = "dbf.read"
    DBF_WRITE = "dbf.write"
    DBF_EXPORT = "dbf.export"
    DBF_IMPORT = "dbf.import"

    SETTINGS_READ = "settings.read"
    SETTINGS_WRITE = "settings.write"

    DATABASE_READ = "database.read"
    DATABASE_MAINTAIN = "database.maintain"

    REPORTS_READ = "reports.read"
    REPORTS_CREATE = "reports.create"

    RECONCILIATION_READ = "reconciliation.read"
    RECONCILIATION_WRITE = "reconciliation.write"


ROOT_ROLE_ID = 1
ADMIN_ROLE_ID = 2
READONLY_ROLE_ID = 3

SYSTEM_ROLES = {
    ROOT_ROLE_ID: ("root", "Root", "System administrator with full access",
                   [p for p in Permission]),
    ADMIN_ROLE_ID: ("admin", "Administrator", "Full access to manage users and data",
                    [p for p in Permission if p is not Permission.USERS_DELETE]),
    READONLY_ROLE_ID: ("readonly", "Read-Only", "Can view data but cannot modify anything",
                       [Permission.USERS_READ, Permission.DBF_READ, Permission.DBF_EXPORT,
                        Permission.SETTINGS_READ, Permission.DATABASE_READ,
                        Permission.REPORTS_READ, Permission.RECONCILIATION_READ]),
}


@dataclass
class Role(StorageRecord):
    """Role with its granted permissions"""
    role_id: int
    name: str
    display_name: str
    description: str = ""
    permissions: List[str] = field(default_factory=list)
    is_system_role: bool = False

    def to_public(self) -> Dict[str, Any]:
        return {
            "id": self.role_id,
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "permissions": sorted(self.permissions),
            "is_system_role": self.is_system_role,
        }


@dataclass
class User(StorageRecord):
    """Application user"""
    username: str
    email: str
    role_id: int = READONLY_ROLE_ID
    is_active: bool = True
    is_root: bool = False
    password_hash: str = ""
    password_salt: str = ""
    last_login: Optional[datetime] = None
    created_by: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        data = dict(data)
        if isinstance(data.get('last_login'), str):
            data['last_login'] = datetime.fromisoformat(data['last_login'])
        return super().from_dict(data)

    def to_public(self, role: Optional[Role] = None) -> Dict[str, Any]:
        """User fields safe to return to clients"""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role_id": self.role_id,
            "role_name": role.display_name if role else None,
            "is_active": self.is_active,
            "is_root": self.is_root,
            "created_at": self.created_at.isoformat(),
            "last_login": self.last_login.isoformat() if self.last_login else None,
        }


@dataclass
class Session(StorageRecord):
    """Login session"""
    user_id: str
    expires_at: datetime
    company_name: str = ""
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Session':
        data = dict(data)
        if isinstance(data.get('expires_at'), str):
            data['expires_at'] = datetime.fromisoformat(data['expires_at'])
        return super().from_dict(data)

    @property
    def is_valid(self) -> bool:
        return self.is_active and self.expires_at > datetime.now(timezone.utc)


def validate_password_strength(password: str, min_length: int = 8) -> None:
    """Raise AuthError unless the password is long enough and mixes upper, lower and digits"""
    if len(password) < min_length:
        raise AuthError(f"password too weak: password must be at least {min_length} characters")
    has_upper = any('A' <= c <= 'Z' for c in password)
    has_lower = any('a' <= c <= 'z' for c in password)
    has_digit = any('0' <= c <= '9' for c in password)
    if not (has_upper and has_lower and has_digit):
        raise AuthError("password too weak: password must contain uppercase, lowercase, and numbers")


class AuthManager:
    """User, role and session management"""

    def __init__(self, storage: StorageInterface, audit_trail: Optional[AuditTrail] = None):
        self.storage = storage
        self.audit = audit_trail or AuditTrail(storage)
        self._seed_roles()

    def _seed_roles(self) -> None:
        now = datetime.now(timezone.utc)
        for role_id, (name, display, description, permissions) in SYSTEM_ROLES.items():
            if self.storage.exists(ROLES_TABLE, str(role_id)):
                continue
            role = Role(
                id=str(role_id), created_at=now, updated_at=now,
                role_id=role_id, name=name, display_name=display,
                description=description,
                permissions=[p.value for p in permissions],
                is_system_role=True,
            )
            self.storage.save(ROLES_TABLE, role.id, role.to_dict())

    # Password hashing

    @staticmethod
    def _hash_password(password: str, salt: str) -> str:
        return hashlib.scrypt(password.encode(), salt=salt.encode(), n=16384, r=8, p=1).hex()

    def _set_password(self, user: User, password: str) -> None:
        validate_password_strength(password, get_config().password_min_length)
        user.password_salt = secrets.token_hex(16)
        user.password_hash = self._hash_password(password, user.password_salt)

    def _verify_password(self, user: User, password: str) -> bool:
        if not user.password_hash or not user.password_salt:
            return False
        expected = self._hash_password(password, user.password_salt)
        return hmac.compare_digest(expected, user.password_hash)

    # Lookups

    def get_role(self, role_id: int) -> Optional[Role]:
        data = self.storage.load(ROLES_TABLE, str(role_id))
        return Role.from_dict(data) if data else None

    def get_user(self, user_id: str) -> Optional[User]:
        data = self.storage.load(USERS_TABLE, user_id)
        return User.from_dict(data) if data else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        wanted = username.strip().lower()
        for data in self.storage.load_all(USERS_TABLE):
            if data.get('username', '').lower() == wanted:
                return User.from_dict(data)
        return None

    def _require_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        if not user:
            raise AuthError("user not found")
        return user

    def _save_user(self, user: User) -> None:
        user.updated_at = datetime.now(timezone.utc)
        self.storage.save(USERS_TABLE, user.id, user.to_dict())

    def get_user_permissions(self, user: User) -> List[str]:
        if not user.is_active:
            return []
        role = self.get_role(user.role_id)
        return sorted(role.permissions) if role else []

    def has_permission(self, user: User, permission) -> bool:
        name = permission.value if isinstance(permission, Permission) else str(permission)
        return name in self.get_user_permissions(user)

    def require_permission(self, user: User, permission) -> None:
        if not self.has_permission(user, permission):
            name = permission.value if isinstance(permission, Permission) else permission
            raise PermissionDenied(f"permission denied: {name}")

    def public_user(self, user: User) -> Dict[str, Any]:
        return user.to_public(self.get_role(user.role_id))

    # Registration and user administration

    def _new_user(self, username: str, password: str, email: str, role_id: int,
                  is_root: bool = False, created_by: Optional[str] = None) -> User:
        username = (username or "").strip()
        if not username:
            raise AuthError("username is required")
        if self.get_user_by_username(username):
            raise AuthError("user already exists")
        if not self.get_role(role_id):
            raise AuthError(f"role {role_id} does not exist")

        now = datetime.now(timezone.utc)
        user = User(
            id=str(uuid.uuid4()), created_at=now, updated_at=now,
            username=username, email=(email or "").strip(),
            role_id=role_id, is_root=is_root, created_by=created_by,
        )
        self._set_password(user, password)
        self._save_user(user)
        return user

    def register(self, username: str, password: str, email: str = "") -> User:
        """Self-registration; the first user of an install becomes root"""
        first_user = self.storage.count(USERS_TABLE) == 0
        role_id = ROOT_ROLE_ID if first_user else READONLY_ROLE_ID
        user = self._new_user(username, password, email, role_id, is_root=first_user)

        self.audit.log_event(AuditEventType.USER_REGISTERED, "user", user.id,
                             {"username": user.username, "role_id": role_id}, user_id=user.id)
        log_action(logger, "info", f"User registered: {user.username}",
                   user_id=user.id, action="register", resource="user")
        return user

    def create_user(self, username: str, password: str, email: str, role_id: int,
                    created_by: Optional[str] = None) -> User:
        user = self._new_user(username, password, email, role_id,
                              is_root=role_id == ROOT_ROLE_ID, created_by=created_by)
        self.audit.log_event(AuditEventType.USER_CREATED, "user", user.id,
                             {"username": user.username, "role_id": role_id}, user_id=created_by)
        return user

    def get_all_users(self) -> List[Dict[str, Any]]:
        users = [User.from_dict(d) for d in self.storage.load_all(USERS_TABLE)]
        return [self.public_user(u) for u in sorted(users, key=lambda u: u.username.lower())]

    def get_all_roles(self) -> List[Dict[str, Any]]:
        roles = [Role.from_dict(d) for d in self.storage.load_all(ROLES_TABLE)]
        return [r.to_public() for r in sorted(roles, key=lambda r: r.role_id)]

    def _active_root_count(self) -> int:
        return sum(
            1 for d in self.storage.load_all(USERS_TABLE)
            if d.get('role_id') == ROOT_ROLE_ID and d.get('is_active')
        )

    def update_user_role(self, user_id: str, role_id: int, changed_by: Optional[str] = None) -> User:
        user = self._require_user(user_id)
        if not self.get_role(role_id):
            raise AuthError(f"role {role_id} does not exist")
        if user.role_id == ROOT_ROLE_ID and role_id != ROOT_ROLE_ID and user.is_active \
                and self._active_root_count() <= 1:
            raise AuthError("cannot remove the last root user")

        old_role = user.role_id
        user.role_id = role_id
        user.is_root = role_id == ROOT_ROLE_ID
        self._save_user(user)
        self.audit.log_event(AuditEventType.USER_ROLE_CHANGED, "user", user.id,
                             {"old_role_id": old_role, "new_role_id": role_id}, user_id=changed_by)
        return user

    def update_user_status(self, user_id: str, is_active: bool, changed_by: Optional[str] = None) -> User:
        user = self._require_user(user_id)
        if not is_active and user.role_id == ROOT_ROLE_ID and user.is_active \
                and self._active_root_count() <= 1:
            raise AuthError("cannot deactivate the last root user")

        user.is_active = is_active
        self._save_user(user)
        if not is_active:
            self._invalidate_user_sessions(user.id)
        self.audit.log_event(AuditEventType.USER_STATUS_CHANGED, "user", user.id,
                             {"is_active": is_active}, user_id=changed_by)
        return user

    def change_password(self, user_id: str, old_password: str, new_password: str) -> None:
        user = self._require_user(user_id)
        if not self._verify_password(user, old_password):
            raise AuthError("invalid credentials")
        self._set_password(user, new_password)
        self._save_user(user)
        self.audit.log_event(AuditEventType.PASSWORD_CHANGED, "user", user.id, user_id=user.id)

    def admin_reset_password(self, user_id: str, new_password: str,
                             changed_by: Optional[str] = None) -> None:
        user = self._require_user(user_id)
        self._set_password(user, new_password)
        self._save_user(user)
        self._invalidate_user_sessions(user.id)
        self.audit.log_event(AuditEventType.PASSWORD_RESET, "user", user.id, user_id=changed_by)

    # Sessions

    def _issue_token(self, session: Session) -> str:
        cfg = get_config()
        payload = {
            "sub": session.user_id,
            "session_id": session.id,
            "iat": session.created_at,
            "exp": session.expires_at,
        }
        return jwt.encode(payload, cfg.jwt_secret, algorithm=cfg.jwt_algorithm)

    def _decode_token(self, token: str, verify_exp: bool = True) -> Dict[str, Any]:
        cfg = get_config()
        try:
            return jwt.decode(token, cfg.jwt_secret, algorithms=[cfg.jwt_algorithm],
                              options={"verify_exp": verify_exp})
        except jwt.ExpiredSignatureError:
            raise AuthError("session expired")
        except jwt.InvalidTokenError:
            raise AuthError("invalid token")

    def login(self, username: str, password: str, company_name: str = "") -> Dict[str, Any]:
        """
        Verify credentials and open a session.

        Returns:
            Dictionary with user, token, expires_at and permissions
        """
        user = self.get_user_by_username(username or "")
        if not user or not user.is_active or not self._verify_password(user, password):
            self.audit.log_event(AuditEventType.LOGIN_FAILED, "user",
                                 user.id if user else (username or ""),
                                 {"username": username}, company=company_name or None)
            log_action(logger, "warning", f"Failed login for {username}",
                       action="login_failed", resource="user", company=company_name or None)
            raise AuthError("invalid credentials")

        now = datetime.now(timezone.utc)
        user.last_login = now
        self._save_user(user)

        session = Session(
            id=str(uuid.uuid4()), created_at=now, updated_at=now,
            user_id=user.id,
            expires_at=now + timedelta(hours=get_config().jwt_expiry_hours),
            company_name=company_name or "",
        )
        self.storage.save(SESSIONS_TABLE, session.id, session.to_dict())
        token = self._issue_token(session)

        self.audit.log_event(AuditEventType.LOGIN_SUCCESS, "user", user.id,
                             {"session_id": session.id}, user_id=user.id,
                             company=company_name or None)
        log_action(logger, "info", f"User logged in: {user.username}",
                   user_id=user.id, action="login", resource="session",
                   company=company_name or None)

        return {
            "user": self.public_user(user),
            "token": token,
            "expires_at": session.expires_at.isoformat(),
            "permissions": self.get_user_permissions(user),
            "company_name": session.company_name,
        }

    def validate_session(self, token: str) -> User:
        """Return the active user behind a token or raise AuthError"""
        payload = self._decode_token(token)
        data = self.storage.load(SESSIONS_TABLE, payload.get("session_id", ""))
        if not data:
            raise AuthError("invalid token")
        session = Session.from_dict(data)
        if not session.is_valid:
            raise AuthError("session expired")
        user = self.get_user(session.user_id)
        if not user or not user.is_active or user.id != payload.get("sub"):
            raise AuthError("invalid token")
        return user

    def logout(self, token: str) -> bool:
        payload = self._decode_token(token, verify_exp=False)
        data = self.storage.load(SESSIONS_TABLE, payload.get("session_id", ""))
        if not data:
            return False
        session = Session.from_dict(data)
        session.is_active = False
        session.updated_at = datetime.now(timezone.utc)
        self.storage.save(SESSIONS_TABLE, session.id, session.to_dict())
        self.audit.log_event(AuditEventType.LOGOUT, "user", session.user_id,
                             {"session_id": session.id}, user_id=session.user_id)
        return True

    def _invalidate_user_sessions(self, user_id: str) -> None:
        for data in self.storage.find(SESSIONS_TABLE, {'user_id': user_id, 'is_active': True}):
            session = Session.from_dict(data)
            session.is_active = False
            self.storage.save(SESSIONS_TABLE, session.id, session.to_dict())

    def cleanup_expired_sessions(self) -> int:
        removed = 0
        for data in self.storage.load_all(SESSIONS_TABLE):
            if not Session.from_dict(data).is_valid:
                self.storage.delete(SESSIONS_TABLE, data['id'])
                removed += 1
        return removed
