"""
Tests for users, roles, permissions and sessions
"""

import pytest
from datetime import datetime, timezone, timedelta

from financialsx.audit import AuditEventType, AuditTrail
from financialsx.auth import (
    ADMIN_ROLE_ID, READONLY_ROLE_ID, ROOT_ROLE_ID, SESSIONS_TABLE,
    AuthManager, Permission, validate_password_strength,
)
from financialsx.exceptions import AuthError, PermissionDenied
from financialsx.storage import InMemoryStorage


PASSWORD = "Secret123"


@pytest.fixture
def auth():
    storage = InMemoryStorage()
    return AuthManager(storage, AuditTrail(storage))


@pytest.fixture
def root(auth):
    return auth.register("root", PASSWORD, "root@example.com")


class TestPasswordStrength:

    @pytest.mark.parametrize("password", ["Short1", "alllowercase1", "ALLUPPER123", "NoDigitsHere"])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(AuthError, match="password too weak"):
            validate_password_strength(password)

    def test_strong_password_accepted(self):
        validate_password_strength(PASSWORD)


class TestRoles:
    """System roles are seeded once"""

    def test_roles_seeded(self, auth):
        roles = auth.get_all_roles()
        assert [r["name"] for r in roles] == ["root", "admin", "readonly"]
        assert all(r["is_system_role"] for r in roles)

    def test_seeding_is_idempotent(self, auth):
        again = AuthManager(auth.storage, auth.audit)
        assert len(again.get_all_roles()) == 3

    def test_admin_cannot_delete_users(self, auth):
        admin = auth.get_role(ADMIN_ROLE_ID)
        assert Permission.USERS_DELETE.value not in admin.permissions
        assert Permission.USERS_CREATE.value in admin.permissions

    def test_readonly_has_no_write_permissions(self, auth):
        readonly = auth.get_role(READONLY_ROLE_ID)
        assert Permission.DBF_READ.value in readonly.permissions
        assert Permission.DBF_WRITE.value not in readonly.permissions
        assert Permission.SETTINGS_WRITE.value not in readonly.permissions


class TestRegistration:

    def test_first_user_becomes_root(self, auth, root):
        assert root.is_root
        assert root.role_id == ROOT_ROLE_ID

    def test_later_users_are_readonly(self, auth, root):
        user = auth.register("viewer", PASSWORD)
        assert not user.is_root
        assert user.role_id == READONLY_ROLE_ID

    def test_duplicate_username_rejected_case_insensitively(self, auth, root):
        with pytest.raises(AuthError, match="already exists"):
            auth.register("ROOT", PASSWORD)

    def test_blank_username_rejected(self, auth):
        with pytest.raises(AuthError, match="username is required"):
            auth.register("   ", PASSWORD)

    def test_password_is_not_stored(self, auth, root):
        stored = auth.storage.load("users", root.id)
        assert PASSWORD not in str(stored)
        assert "password_hash" not in auth.public_user(root)

    def test_registration_is_audited(self, auth, root):
        events = auth.audit.get_events_by_type(AuditEventType.USER_REGISTERED)
        assert [e.entity_id for e in events] == [root.id]

    def test_create_user_with_role(self, auth, root):
        user = auth.create_user("admin2", PASSWORD, "a@example.com", ADMIN_ROLE_ID, created_by=root.id)
        assert user.role_id == ADMIN_ROLE_ID
        assert user.created_by == root.id

    def test_create_user_unknown_role(self, auth, root):
        with pytest.raises(AuthError, match="does not exist"):
            auth.create_user("ghost", PASSWORD, "", 99)


class TestLogin:
    """Login, session validation and logout"""

    def test_login_returns_token_and_permissions(self, auth, root):
        result = auth.login("root", PASSWORD, "ACME")
        assert result["token"]
        assert result["company_name"] == "ACME"
        assert result["user"]["username"] == "root"
        assert Permission.USERS_DELETE.value in result["permissions"]
        assert auth.get_user(root.id).last_login is not None

    def test_validate_session(self, auth, root):
        token = auth.login("root", PASSWORD)["token"]
        assert auth.validate_session(token).id == root.id

    def test_wrong_password(self, auth, root):
        with pytest.raises(AuthError, match="invalid credentials"):
            auth.login("root", "Wrong1234")
        assert auth.audit.get_events_by_type(AuditEventType.LOGIN_FAILED)

    def test_unknown_user(self, auth):
        with pytest.raises(AuthError, match="invalid credentials"):
            auth.login("nobody", PASSWORD)

    def test_garbage_token(self, auth):
        with pytest.raises(AuthError, match="invalid token"):
            auth.validate_session("not-a-jwt")

    def test_logout_invalidates_token(self, auth, root):
        token = auth.login("root", PASSWORD)["token"]
        assert auth.logout(token)
        with pytest.raises(AuthError, match="session expired"):
            auth.validate_session(token)

    def test_expired_session(self, auth, root):
        token = auth.login("root", PASSWORD)["token"]
        session = auth.storage.load_all(SESSIONS_TABLE)[0]
        session["expires_at"] = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
        auth.storage.save(SESSIONS_TABLE, session["id"], session)

        with pytest.raises(AuthError, match="session expired"):
            auth.validate_session(token)
        assert auth.cleanup_expired_sessions() == 1
        assert auth.storage.count(SESSIONS_TABLE) == 0

    def test_deactivated_user_cannot_login(self, auth, root):
        viewer = auth.register("viewer", PASSWORD)
        token = auth.login("viewer", PASSWORD)["token"]
        auth.update_user_status(viewer.id, False, changed_by=root.id)

        with pytest.raises(AuthError):
            auth.validate_session(token)
        with pytest.raises(AuthError, match="invalid credentials"):
            auth.login("viewer", PASSWORD)


class TestUserAdministration:

    def test_permissions_follow_role(self, auth, root):
        viewer = auth.register("viewer", PASSWORD)
        assert not auth.has_permission(viewer, Permission.DBF_WRITE)
        with pytest.raises(PermissionDenied):
            auth.require_permission(viewer, Permission.DBF_WRITE)

        auth.update_user_role(viewer.id, ADMIN_ROLE_ID, changed_by=root.id)
        promoted = auth.get_user(viewer.id)
        assert auth.has_permission(promoted, "dbf.write")

    def test_inactive_user_has_no_permissions(self, auth, root):
        viewer = auth.register("viewer", PASSWORD)
        auth.update_user_status(viewer.id, False)
        assert auth.get_user_permissions(auth.get_user(viewer.id)) == []

    def test_last_root_is_protected(self, auth, root):
        with pytest.raises(AuthError, match="last root"):
            auth.update_user_role(root.id, READONLY_ROLE_ID)
        with pytest.raises(AuthError, match="last root"):
            auth.update_user_status(root.id, False)

    def test_second_root_can_be_demoted(self, auth, root):
        other = auth.create_user("root2", PASSWORD, "", ROOT_ROLE_ID)
        demoted = auth.update_user_role(other.id, READONLY_ROLE_ID)
        assert not demoted.is_root

    def test_inactive_root_can_be_demoted(self, auth, root):
        """Only the last active root is protected"""
        other = auth.create_user("root2", PASSWORD, "", ROOT_ROLE_ID)
        auth.update_user_status(other.id, False)
        demoted = auth.update_user_role(other.id, READONLY_ROLE_ID)
        assert demoted.role_id == READONLY_ROLE_ID
        with pytest.raises(AuthError, match="last root"):
            auth.update_user_role(root.id, READONLY_ROLE_ID)

    def test_change_password(self, auth, root):
        auth.change_password(root.id, PASSWORD, "Another456")
        assert auth.login("root", "Another456")["token"]
        with pytest.raises(AuthError, match="invalid credentials"):
            auth.change_password(root.id, PASSWORD, "Third7890")

    def test_admin_reset_password_ends_sessions(self, auth, root):
        viewer = auth.register("viewer", PASSWORD)
        token = auth.login("viewer", PASSWORD)["token"]
        auth.admin_reset_password(viewer.id, "Reset1234", changed_by=root.id)

        with pytest.raises(AuthError):
            auth.validate_session(token)
        assert auth.login("viewer", "Reset1234")["token"]

    def test_users_listed_by_name(self, auth, root):
        auth.register("alice", PASSWORD)
        users = auth.get_all_users()
        assert [u["username"] for u in users] == ["alice", "root"]
        assert users[1]["role_name"] == "Root"
