"""Current-user endpoints: profile, preferences, push tokens."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from ..auth import ROLE_PERMISSIONS, CurrentUser, get_current_user
from ..dependencies import get_store
from ..schemas import PushTokenRegister, UserPreferences
from ..store import DocumentStore
from ..use_cases.user_settings import (
    get_preferences_use_case,
    remove_push_token_use_case,
    save_push_token_use_case,
    update_preferences_use_case,
)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me")
def get_me(current_user: CurrentUser = Depends(get_current_user)):
    return {
        "uid": current_user.uid,
        "name": current_user.name,
        "role": current_user.role,
        "permissions": ROLE_PERMISSIONS.get(current_user.role, {}),
    }


@router.get("/me/preferences")
def get_my_preferences(
    current_user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    return get_preferences_use_case(store=store, user_id=current_user.uid).to_document()


@router.patch("/me/preferences")
def update_my_preferences(
    payload: UserPreferences,
    current_user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    prefs = update_preferences_use_case(store=store, user_id=current_user.uid, payload=payload)
    return prefs.to_document()


@router.post("/me/push-tokens", status_code=status.HTTP_201_CREATED)
def register_push_token(
    payload: PushTokenRegister,
    current_user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    return save_push_token_use_case(store=store, user_id=current_user.uid, payload=payload)


@router.delete("/me/push-tokens/{token}", status_code=status.HTTP_204_NO_CONTENT)
def remove_push_token(
    token: str,
    current_user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    remove_push_token_use_case(store=store, user_id=current_user.uid, token=token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
