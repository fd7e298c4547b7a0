"""Authentication and authorization.

Callers present a bearer JWT issued by the identity provider. The token
carries ``sub`` (user id), ``name`` and ``role``; a ``users/{uid}``
profile document, when present, takes precedence and may disable the user.
"""
from dataclasses import dataclass
import logging
import time

from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .config import settings
from .dependencies import get_store
from .schemas import Role
from .store import DocumentStore

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"

# Bearer token scheme
security = HTTPBearer()


@dataclass(frozen=True)
class CurrentUser:
    uid: str
    name: str
    role: str = Role.MEMBER.value


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(data: dict, expires_in_seconds: int = 3600) -> str:
    """Issue a token with the shared secret (local tooling and tests)."""
    to_encode = data.copy()
    now = int(time.time())
    to_encode.update({"exp": now + expires_in_seconds, "iat": now})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError:
        raise _credentials_error()

    now = int(time.time())
    exp = payload.get("exp")
    if exp is None:
        raise _credentials_error()
    try:
        exp_int = int(exp)
    except (TypeError, ValueError):
        raise _credentials_error()
    if now > exp_int + int(settings.JWT_LEEWAY_SECONDS):
        raise _credentials_error("Token expired")

    iat = payload.get("iat")
    if iat is not None:
        try:
            iat_int = int(iat)
        except (TypeError, ValueError):
            raise _credentials_error()
        # Reject tokens issued far in the future (clock skew / malicious tokens).
        if iat_int > now + int(settings.JWT_LEEWAY_SECONDS):
            raise _credentials_error()
    return payload


def user_from_claims(payload: dict, profile: dict | None = None) -> CurrentUser:
    sub = payload.get("sub")
    if not sub:
        raise _credentials_error()
    profile = profile or {}
    name = profile.get("name") or payload.get("name") or str(sub)
    role = profile.get("role") or payload.get("role") or Role.MEMBER.value
    if role not in ROLE_PERMISSIONS:
        logger.warning(f"Unknown role {role!r} for {sub}, treating as {Role.MEMBER.value}")
        role = Role.MEMBER.value
    return CurrentUser(uid=str(sub), name=name, role=role)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    store: DocumentStore = Depends(get_store),
) -> CurrentUser:
    """Get current authenticated user."""
    payload = decode_token(credentials.credentials)
    sub = payload.get("sub")
    if not sub:
        raise _credentials_error()

    profile = store.get(USERS_COLLECTION, str(sub))
    if profile.exists and profile.get("disabled") is True:
        raise _credentials_error("User not found or inactive")

    return user_from_claims(payload, profile.to_dict() if profile.exists else None)


# Permission checks
class PermissionChecker:
    """Check user permissions based on role."""

    def __init__(self, required_permission: str):
        self.required_permission = required_permission

    def __call__(self, current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        """Check if user has required permission."""
        if not check_permission(current_user, self.required_permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {self.required_permission} required"
            )
        return current_user


# Role permissions matrix
ROLE_PERMISSIONS = {
    Role.ADMIN.value: {
        "canSaveRequests": True,
        "canComment": True,
        "canEditInspections": True,
        "canManageSchedules": True,
        "canManageMasterData": True,
        "canDeleteData": True,
        "canDeleteProductionRequests": True,
        "canDeleteInspections": True,
    },
    Role.MANAGER.value: {
        "canSaveRequests": True,
        "canComment": True,
        "canEditInspections": True,
        "canManageSchedules": True,
        "canManageMasterData": True,
        "canDeleteData": True,
        "canDeleteProductionRequests": False,
        "canDeleteInspections": False,
    },
    Role.MEMBER.value: {
        "canSaveRequests": False,
        "canComment": False,
        "canEditInspections": False,
        "canManageSchedules": False,
        "canManageMasterData": False,
        "canDeleteData": False,
        "canDeleteProductionRequests": False,
        "canDeleteInspections": False,
    },
}


def check_permission(user: CurrentUser, permission: str) -> bool:
    """Check if user has specific permission."""
    permissions = ROLE_PERMISSIONS.get(user.role, {})
    return permissions.get(permission, False)
