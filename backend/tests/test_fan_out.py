from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

import tms.celery_app as worker
from tms.celery_app import deliver_notification, prune_push_tokens, push_tokens_for, send_push_message
from tms.config import settings
from tms.services.ledger import iso_timestamp
from tms.use_cases.user_settings import PREFERENCES_COLLECTION, PUSH_TOKENS_COLLECTION

NOW = datetime(2025, 3, 7, 9, 0, tzinfo=timezone.utc)


def _token(store, token: str, user_id: str, *, last_used=NOW, enabled=True) -> None:
    store.set(
        PUSH_TOKENS_COLLECTION,
        token,
        {"userId": user_id, "token": token, "deviceType": "web", "lastUsed": iso_timestamp(last_used), "enabled": enabled},
    )


@pytest.fixture
def population(store, notifier):
    store.set("users", "u1", {"name": "김관리"})
    store.set("users", "u2", {"name": "이사원"})
    store.set("users", "u3", {"name": "퇴사자", "disabled": True})
    _token(store, "tok-u1", "u1")
    _token(store, "tok-u2", "u2")
    _token(store, "tok-u3", "u3")
    return notifier.notify("jig", "신규 요청 '테이프지그'이(가) 등록되었습니다.", "T20", at=NOW)


class FakeSender:
    def __init__(self, errors: dict[str, str] | None = None) -> None:
        self.errors = errors or {}
        self.calls = []

    def __call__(self, token, title, body, data):
        self.calls.append((token, title, body, data))
        error = self.errors.get(token)
        return (error is None, error)


def test_delivers_to_enabled_users(store, population) -> None:
    send = FakeSender()

    result = deliver_notification(store, population, send=send, now=NOW)

    assert result == {"tokens": 2, "sent": 2, "failed": 0, "removed": 0}
    assert {call[0] for call in send.calls} == {"tok-u1", "tok-u2"}
    token, title, body, data = send.calls[0]
    assert title == "TMS - jig"
    assert body == "신규 요청 '테이프지그'이(가) 등록되었습니다."
    assert data == {"requestId": "T20", "type": "jig", "url": "/"}


def test_explicit_opt_out_is_respected(store, population) -> None:
    store.set(PREFERENCES_COLLECTION, "u2", {"notificationPrefs": {"jig": False, "quality": True}})
    store.set(PREFERENCES_COLLECTION, "u1", {"notificationPrefs": {"quality": False}})
    send = FakeSender()

    deliver_notification(store, population, send=send, now=NOW)

    assert [call[0] for call in send.calls] == ["tok-u1"]


def test_unregistered_tokens_are_removed(store, population) -> None:
    send = FakeSender({"tok-u2": "UNREGISTERED"})

    result = deliver_notification(store, population, send=send, now=NOW)

    assert result == {"tokens": 2, "sent": 1, "failed": 0, "removed": 1}
    assert store.get(PUSH_TOKENS_COLLECTION, "tok-u2").exists is False


def test_other_failures_keep_the_token(store, population) -> None:
    send = FakeSender({"tok-u1": "RATE_LIMIT:60"})

    result = deliver_notification(store, population, send=send, now=NOW)

    assert result["failed"] == 1
    assert store.get(PUSH_TOKENS_COLLECTION, "tok-u1").exists


def test_missing_notification_sends_nothing(store) -> None:
    send = FakeSender()
    assert deliver_notification(store, "gone", send=send, now=NOW)["tokens"] == 0
    assert send.calls == []


def test_stale_and_disabled_tokens_are_skipped(store) -> None:
    _token(store, "fresh", "u1")
    _token(store, "old", "u1", last_used=NOW - timedelta(days=settings.PUSH_TOKEN_MAX_AGE_DAYS + 1))
    _token(store, "off", "u1", enabled=False)
    _token(store, "other", "u9")

    assert push_tokens_for(store, ["u1"], now=NOW) == ["fresh"]
    assert push_tokens_for(store, [], now=NOW) == []


def test_prune_removes_only_stale_tokens(store) -> None:
    _token(store, "fresh", "u1")
    _token(store, "old", "u1", last_used=NOW - timedelta(days=settings.PUSH_TOKEN_MAX_AGE_DAYS + 1))

    assert prune_push_tokens(store, now=NOW) == 1
    assert [s.id for s in store.query(PUSH_TOKENS_COLLECTION)] == ["fresh"]
    assert prune_push_tokens(store, now=NOW) == 0


def test_send_push_message_requires_configuration(monkeypatch) -> None:
    monkeypatch.setattr(settings, "FCM_PROJECT_ID", None)
    assert send_push_message("tok", "title", "body", {}) == (False, "FCM_NOT_CONFIGURED")


@pytest.mark.parametrize(
    ("response", "expected"),
    [
        (SimpleNamespace(status_code=200, text="{}", headers={}), (True, None)),
        (SimpleNamespace(status_code=404, text="not found", headers={}), (False, "UNREGISTERED")),
        (SimpleNamespace(status_code=400, text='{"errorCode": "UNREGISTERED"}', headers={}), (False, "UNREGISTERED")),
        (SimpleNamespace(status_code=429, text="", headers={"Retry-After": "30"}), (False, "RATE_LIMIT:30")),
        (SimpleNamespace(status_code=500, text="boom", headers={}), (False, "HTTP_500: boom")),
    ],
)
def test_send_push_message_maps_fcm_responses(monkeypatch, response, expected) -> None:
    monkeypatch.setattr(settings, "FCM_PROJECT_ID", "tms-plant")
    monkeypatch.setattr(settings, "FCM_ACCESS_TOKEN", "access")
    calls = []

    def fake_post(url, json, headers, timeout):
        calls.append((url, json, headers))
        return response

    monkeypatch.setattr(worker.requests, "post", fake_post)

    assert send_push_message("tok", "TMS - jig", "body", {"url": "/"}) == expected
    url, payload, headers = calls[0]
    assert url == "https://fcm.googleapis.com/v1/projects/tms-plant/messages:send"
    assert payload["message"]["token"] == "tok"
    assert headers == {"Authorization": "Bearer access"}


def test_send_push_message_reports_transport_errors(monkeypatch) -> None:
    monkeypatch.setattr(settings, "FCM_PROJECT_ID", "tms-plant")
    monkeypatch.setattr(settings, "FCM_ACCESS_TOKEN", "access")

    def refused(*_args, **_kwargs):
        raise ConnectionError("refused")

    monkeypatch.setattr(worker.requests, "post", refused)

    ok, error = send_push_message("tok", "title", "body", {})
    assert ok is False
    assert error.startswith("EXCEPTION: ")
