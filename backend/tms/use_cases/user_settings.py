"""Per-user preferences and push token registration."""
from __future__ import annotations

import logging
from datetime import datetime

from ..domain_errors import DomainError, remote_write_failed
from ..schemas import PushTokenRegister, UserPreferences
from ..services.ledger import iso_timestamp
from ..store import DocumentStore, StoreError

logger = logging.getLogger(__name__)

PREFERENCES_COLLECTION = "user-preferences"
PUSH_TOKENS_COLLECTION = "push-tokens"


def get_preferences_use_case(*, store: DocumentStore, user_id: str) -> UserPreferences:
    snapshot = store.get(PREFERENCES_COLLECTION, user_id)
    return UserPreferences.model_validate(snapshot.to_dict())


def update_preferences_use_case(
    *,
    store: DocumentStore,
    user_id: str,
    payload: UserPreferences,
) -> UserPreferences:
    """Merge the given settings; per-type notification switches merge key by key."""
    changes = payload.model_dump(mode="json", by_alias=True, exclude_unset=True)
    try:
        store.set(PREFERENCES_COLLECTION, user_id, changes, merge=True)
    except StoreError as e:
        logger.error(f"Failed to save preferences for {user_id}: {e}", exc_info=True)
        raise remote_write_failed("설정 저장에 실패했습니다.")
    return get_preferences_use_case(store=store, user_id=user_id)


def save_push_token_use_case(
    *,
    store: DocumentStore,
    user_id: str,
    payload: PushTokenRegister,
    at: datetime | None = None,
) -> dict:
    document = {
        "userId": user_id,
        "token": payload.token,
        "deviceType": payload.device_type,
        "lastUsed": iso_timestamp(at),
        "enabled": True,
    }
    try:
        store.set(PUSH_TOKENS_COLLECTION, payload.token, document)
    except StoreError as e:
        logger.error(f"Failed to save push token for {user_id}: {e}", exc_info=True)
        raise remote_write_failed("알림 토큰 저장에 실패했습니다.")
    logger.info(f"Push token registered for {user_id} ({payload.device_type})")
    return document


def remove_push_token_use_case(*, store: DocumentStore, user_id: str, token: str) -> None:
    snapshot = store.get(PUSH_TOKENS_COLLECTION, token)
    if not snapshot.exists:
        return
    if snapshot.get("userId") != user_id:
        raise DomainError(
            code="PUSH_TOKEN_FORBIDDEN",
            http_status=403,
            message="Push token belongs to another user",
        )
    store.delete(PUSH_TOKENS_COLLECTION, token)
