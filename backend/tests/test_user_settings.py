from __future__ import annotations

from datetime import datetime, timezone

import pytest

from tms.domain_errors import DomainError
from tms.schemas import PushTokenRegister, UserPreferences
from tms.use_cases.user_settings import (
    PUSH_TOKENS_COLLECTION,
    get_preferences_use_case,
    remove_push_token_use_case,
    save_push_token_use_case,
    update_preferences_use_case,
)

AT = datetime(2025, 3, 7, 1, 0, tzinfo=timezone.utc)


def test_preferences_merge_per_notification_type(store) -> None:
    assert get_preferences_use_case(store=store, user_id="u1") == UserPreferences()

    update_preferences_use_case(store=store, user_id="u1", payload=UserPreferences(theme="dark"))
    update_preferences_use_case(
        store=store, user_id="u1", payload=UserPreferences(notification_prefs={"jig": False})
    )
    prefs = update_preferences_use_case(
        store=store, user_id="u1", payload=UserPreferences(notification_prefs={"quality": True})
    )

    assert prefs.theme == "dark"
    assert {k.value: v for k, v in prefs.notification_prefs.items()} == {"jig": False, "quality": True}


def test_push_tokens_are_keyed_by_token(store) -> None:
    document = save_push_token_use_case(
        store=store, user_id="u1", payload=PushTokenRegister(token="tok-1", device_type="android"), at=AT
    )

    assert document == {
        "userId": "u1",
        "token": "tok-1",
        "deviceType": "android",
        "lastUsed": "2025-03-07T01:00:00.000Z",
        "enabled": True,
    }
    assert store.get(PUSH_TOKENS_COLLECTION, "tok-1").to_dict() == document


def test_only_the_owner_can_remove_a_token(store) -> None:
    save_push_token_use_case(store=store, user_id="u1", payload=PushTokenRegister(token="tok-1"))

    with pytest.raises(DomainError) as exc_info:
        remove_push_token_use_case(store=store, user_id="u2", token="tok-1")
    assert exc_info.value.http_status == 403

    remove_push_token_use_case(store=store, user_id="u1", token="tok-1")
    assert store.get(PUSH_TOKENS_COLLECTION, "tok-1").exists is False
    # unknown tokens are ignored
    remove_push_token_use_case(store=store, user_id="u1", token="tok-1")
