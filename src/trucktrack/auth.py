"""Login, access-key reset and role permissions."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass

from trucktrack import i18n

MIN_PASSWORD_LENGTH = 5
_PBKDF2_ITERATIONS = 200_000


class AuthError(Exception):
    """Raised when credentials are rejected."""


class PermissionDenied(Exception):
    """Raised when the current role may not perform an action."""


def hash_password(password: str, salt_hex: str | None = None, iterations: int = _PBKDF2_ITERATIONS) -> str:
    if salt_hex is None:
        salt_hex = secrets.token_bytes(16).hex()
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt_hex), iterations)
    return f"pbkdf2_sha256${iterations}${salt_hex}${dk.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        algo, iters, salt_hex, _hash = stored.split("$", 3)
    except ValueError:
        return False
    if algo != "pbkdf2_sha256":
        return False
    recomputed = hash_password(password, salt_hex=salt_hex, iterations=int(iters))
    return hmac.compare_digest(recomputed, stored)


# ── Role rules ───────────────────────────────────────────────────────────

def can_create_trip(role: str | None) -> bool:
    return role in ("admin", "accountant")


def can_modify(role: str | None) -> bool:
    """Edit existing trips."""
    return role in ("admin", "accountant")


def can_delete_trips(role: str | None) -> bool:
    return role == "admin"


def can_manage_ops(role: str | None) -> bool:
    """Drivers, trucks and cities."""
    return role in ("admin", "accountant")


def can_add_users(role: str | None) -> bool:
    return role in ("admin", "accountant")


def assignable_role(actor_role: str | None, requested: str) -> str:
    """Accountants can only create viewers."""
    if actor_role == "accountant":
        return "viewer"
    return requested


def can_remove_user(actor_role: str | None, target_id: str, primary_admin_id: str) -> bool:
    return actor_role == "admin" and target_id != primary_admin_id


def can_backup(role: str | None) -> bool:
    return role == "admin"


def require(allowed: bool, action: str) -> None:
    if not allowed:
        raise PermissionDenied(f"Access restricted: not allowed to {action}")


@dataclass
class LoginResult:
    user: object
    must_reset_password: bool


class AuthService:
    """Credential checks against the users held by a TripStore."""

    def __init__(self, store) -> None:
        self._store = store

    def login(self, email: str, password: str, language: str = "en") -> LoginResult:
        user = self._store.find_user_by_email(email)
        if user is None or not verify_password(password or "", user.password_hash):
            raise AuthError(i18n.t(language, "unauthorized"))
        return LoginResult(user=user, must_reset_password=not user.password_changed)

    def reset_password(self, user_id: str, new_password: str, language: str = "en"):
        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            raise ValueError(i18n.t(language, "passwordTooShort"))
        return self._store.update_user_password(user_id, new_password)
