from __future__ import annotations

import time

import pytest
from fastapi import HTTPException
from jose import jwt

from tms.auth import (
    ROLE_PERMISSIONS,
    CurrentUser,
    PermissionChecker,
    check_permission,
    create_access_token,
    decode_token,
    user_from_claims,
)
from tms.config import settings


@pytest.mark.parametrize(
    ("role", "expected"),
    [
        (
            "Admin",
            {
                "canSaveRequests": True,
                "canComment": True,
                "canEditInspections": True,
                "canManageSchedules": True,
                "canManageMasterData": True,
                "canDeleteData": True,
                "canDeleteProductionRequests": True,
                "canDeleteInspections": True,
            },
        ),
        (
            "Manager",
            {
                "canSaveRequests": True,
                "canComment": True,
                "canEditInspections": True,
                "canManageSchedules": True,
                "canManageMasterData": True,
                "canDeleteData": True,
                "canDeleteProductionRequests": False,
                "canDeleteInspections": False,
            },
        ),
        (
            "Member",
            {
                "canSaveRequests": False,
                "canComment": False,
                "canEditInspections": False,
                "canManageSchedules": False,
                "canManageMasterData": False,
                "canDeleteData": False,
                "canDeleteProductionRequests": False,
                "canDeleteInspections": False,
            },
        ),
    ],
)
def test_role_permission_matrix(role: str, expected: dict[str, bool]) -> None:
    assert ROLE_PERMISSIONS[role] == expected
    user = CurrentUser(uid="u", name="n", role=role)
    for permission, allowed in expected.items():
        assert check_permission(user, permission) is allowed


def test_unknown_permission_is_denied() -> None:
    assert check_permission(CurrentUser(uid="u", name="n", role="Admin"), "canLaunchRockets") is False


def test_token_round_trip() -> None:
    token = create_access_token({"sub": "u-1", "name": "김관리", "role": "Manager"})
    payload = decode_token(token)

    assert payload["sub"] == "u-1"
    assert user_from_claims(payload) == CurrentUser(uid="u-1", name="김관리", role="Manager")


def test_expired_token_is_rejected_after_leeway() -> None:
    token = create_access_token({"sub": "u-1"}, expires_in_seconds=-(settings.JWT_LEEWAY_SECONDS + 5))

    with pytest.raises(HTTPException) as exc_info:
        decode_token(token)
    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Token expired"


def test_token_issued_in_the_future_is_rejected() -> None:
    now = int(time.time())
    token = jwt.encode(
        {"sub": "u-1", "exp": now + 3600, "iat": now + 3600},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )
    with pytest.raises(HTTPException):
        decode_token(token)


def test_token_signed_with_another_key_is_rejected() -> None:
    token = jwt.encode({"sub": "u-1", "exp": int(time.time()) + 60}, "other-secret", algorithm="HS256")
    with pytest.raises(HTTPException) as exc_info:
        decode_token(token)
    assert exc_info.value.status_code == 401


def test_profile_overrides_claims_and_unknown_roles_fall_back() -> None:
    payload = {"sub": "u-1", "name": "claim name", "role": "Admin"}

    assert user_from_claims(payload, {"name": "프로필", "role": "Member"}).role == "Member"
    assert user_from_claims(payload, {"name": "프로필"}).name == "프로필"
    assert user_from_claims({"sub": "u-2", "role": "Owner"}).role == "Member"
    assert user_from_claims({"sub": "u-3"}).name == "u-3"


def test_permission_checker_raises_403() -> None:
    checker = PermissionChecker("canDeleteInspections")

    assert checker(CurrentUser(uid="a", name="a", role="Admin")).uid == "a"
    with pytest.raises(HTTPException) as exc_info:
        checker(CurrentUser(uid="m", name="m", role="Manager"))
    assert exc_info.value.status_code == 403
