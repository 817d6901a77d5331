"""
Test suite for login, access-key reset and role rules
File: tests/test_auth.py
"""

import pytest

from trucktrack import auth, i18n
from trucktrack.auth import AuthError, AuthService, PermissionDenied
from trucktrack.store import PRIMARY_ADMIN_ID


class TestPasswords:

    def test_hash_roundtrip(self):
        stored = auth.hash_password("Admin007", iterations=1000)
        assert stored.startswith("pbkdf2_sha256$1000$")
        assert auth.verify_password("Admin007", stored)
        assert not auth.verify_password("admin007", stored)

    def test_salted(self):
        assert auth.hash_password("x", iterations=1000) != auth.hash_password("x", iterations=1000)

    def test_garbage_hash(self):
        assert not auth.verify_password("x", "")
        assert not auth.verify_password("x", "md5$1$ab$cd")


class TestRoles:

    def test_trip_permissions(self):
        assert auth.can_create_trip("admin") and auth.can_create_trip("accountant")
        assert not auth.can_create_trip("viewer")
        assert auth.can_modify("accountant") and not auth.can_modify("viewer")
        assert auth.can_delete_trips("admin")
        assert not auth.can_delete_trips("accountant")

    def test_ops_and_backup(self):
        assert auth.can_manage_ops("accountant")
        assert not auth.can_manage_ops("viewer")
        assert auth.can_backup("admin")
        assert not auth.can_backup("accountant")
        assert not auth.can_backup(None)

    def test_user_management(self):
        assert auth.assignable_role("accountant", "admin") == "viewer"
        assert auth.assignable_role("admin", "accountant") == "accountant"
        assert not auth.can_add_users("viewer")
        assert auth.can_remove_user("admin", "u-1", PRIMARY_ADMIN_ID)
        assert not auth.can_remove_user("admin", PRIMARY_ADMIN_ID, PRIMARY_ADMIN_ID)
        assert not auth.can_remove_user("accountant", "u-1", PRIMARY_ADMIN_ID)

    def test_require(self):
        auth.require(True, "anything")
        with pytest.raises(PermissionDenied, match="delete trips"):
            auth.require(False, "delete trips")


class TestAuthService:

    def setup_method(self):
        self.email = "admin@trucktrack.local"

    def test_first_login_requires_reset(self, store):
        result = AuthService(store).login(self.email, "Admin007")
        assert result.user.id == PRIMARY_ADMIN_ID
        assert result.must_reset_password is True

    def test_email_is_case_insensitive(self, store):
        assert AuthService(store).login("ADMIN@TruckTrack.local", "Admin007").user.role == "admin"

    def test_wrong_key(self, store):
        with pytest.raises(AuthError) as exc:
            AuthService(store).login(self.email, "nope")
        assert str(exc.value) == i18n.t("en", "unauthorized")

    def test_wrong_key_arabic_message(self, store):
        with pytest.raises(AuthError) as exc:
            AuthService(store).login("nobody@x.y", "nope", "ar")
        assert str(exc.value) == i18n.t("ar", "unauthorized")

    def test_reset_then_login(self, store):
        service = AuthService(store)
        service.reset_password(PRIMARY_ADMIN_ID, "Fleet2024")
        result = service.login(self.email, "Fleet2024")
        assert result.must_reset_password is False
        with pytest.raises(AuthError):
            service.login(self.email, "Admin007")

    def test_reset_too_short(self, store):
        with pytest.raises(ValueError, match="at least 5"):
            AuthService(store).reset_password(PRIMARY_ADMIN_ID, "abcd")
        assert store.get_user(PRIMARY_ADMIN_ID).password_changed is False
