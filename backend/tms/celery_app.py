"""
Celery worker delivering notifications as push messages (FCM HTTP v1).
"""
from celery import Celery
from datetime import datetime, timedelta
from functools import lru_cache
import requests
import logging
from .config import settings
from .database import SessionLocal
from .schemas import Notification
from .services.ledger import iso_timestamp, now_utc, parse_timestamp
from .services.notifier import NOTIFICATIONS_COLLECTION
from .store import DocumentStore, StoreError
from .use_cases.user_settings import PREFERENCES_COLLECTION, PUSH_TOKENS_COLLECTION

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"

celery_app = Celery(
    "tms",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
)


@lru_cache()
def get_worker_store() -> DocumentStore:
    return DocumentStore(
        SessionLocal,
        max_attempts=settings.STORE_TRANSACTION_MAX_ATTEMPTS,
        backoff_seconds=settings.STORE_TRANSACTION_BACKOFF_SECONDS,
    )


def send_push_message(token: str, title: str, body: str, data: dict[str, str]) -> tuple[bool, str | None]:
    """Send one push message via FCM HTTP v1."""
    if not settings.FCM_PROJECT_ID or not settings.FCM_ACCESS_TOKEN:
        return False, "FCM_NOT_CONFIGURED"

    url = f"https://fcm.googleapis.com/v1/projects/{settings.FCM_PROJECT_ID}/messages:send"
    message = {
        "token": token,
        "notification": {"title": title, "body": body},
        "data": data,
        "webpush": {"fcm_options": {"link": data.get("url", "/")}},
    }

    try:
        response = requests.post(
            url,
            json={"message": message},
            headers={"Authorization": f"Bearer {settings.FCM_ACCESS_TOKEN}"},
            timeout=10
        )

        if response.status_code == 200:
            return True, None
        elif response.status_code == 404 or "UNREGISTERED" in response.text:
            # Token expired or the app was uninstalled
            return False, "UNREGISTERED"
        elif response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "60")
            return False, f"RATE_LIMIT:{retry_after}"
        else:
            return False, f"HTTP_{response.status_code}: {response.text[:200]}"

    except Exception as e:
        return False, f"EXCEPTION: {str(e)}"


def _allows(store: DocumentStore, user_id: str, notification_type: str) -> bool:
    """Only an explicit ``false`` switch opts a user out."""
    try:
        snapshot = store.get(PREFERENCES_COLLECTION, user_id)
    except StoreError as e:
        logger.warning(f"⚠️ Could not read preferences of {user_id}, sending anyway: {e}")
        return True
    prefs = snapshot.get("notificationPrefs") or {}
    return prefs.get(notification_type) is not False


def target_user_ids(store: DocumentStore, notification_type: str) -> list[str]:
    users = store.query(USERS_COLLECTION)
    return [
        user.id
        for user in users
        if user.get("disabled") is not True and _allows(store, user.id, notification_type)
    ]


def push_tokens_for(store: DocumentStore, user_ids: list[str], *, now: datetime | None = None) -> list[str]:
    """Enabled, recently used tokens of the given users, without duplicates."""
    if not user_ids:
        return []
    cutoff = (now or now_utc()) - timedelta(days=settings.PUSH_TOKEN_MAX_AGE_DAYS)
    tokens: dict[str, None] = {}
    for snapshot in store.query(PUSH_TOKENS_COLLECTION, filters=[("userId", "in", user_ids)]):
        if snapshot.get("enabled") is False:
            continue
        last_used = snapshot.get("lastUsed")
        if last_used and parse_timestamp(last_used) < cutoff:
            continue
        tokens[snapshot.get("token") or snapshot.id] = None
    return list(tokens)


def deliver_notification(store: DocumentStore, notification_id: str, *, send=send_push_message, now=None) -> dict:
    """Push one stored notification to every opted-in user's devices."""
    snapshot = store.get(NOTIFICATIONS_COLLECTION, notification_id)
    if not snapshot.exists:
        logger.warning(f"⏭️ Notification {notification_id} no longer exists")
        return {"tokens": 0, "sent": 0, "failed": 0, "removed": 0}

    notification = Notification.from_snapshot(snapshot)
    notification_type = notification.type.value
    tokens = push_tokens_for(store, target_user_ids(store, notification_type), now=now)

    title = f"TMS - {notification_type}"
    data = {"requestId": notification.request_id, "type": notification_type, "url": "/"}
    sent = failed = removed = 0
    for token in tokens:
        success, error = send(token, title, notification.message, data)
        if success:
            sent += 1
        elif error == "UNREGISTERED":
            store.delete(PUSH_TOKENS_COLLECTION, token)
            removed += 1
            logger.warning(f"🚫 Removed unregistered push token {token[:12]}...")
        else:
            failed += 1
            logger.warning(f"🔄 Push to {token[:12]}... failed: {error}")

    return {"tokens": len(tokens), "sent": sent, "failed": failed, "removed": removed}


def prune_push_tokens(store: DocumentStore, *, now: datetime | None = None) -> int:
    cutoff = iso_timestamp((now or now_utc()) - timedelta(days=settings.PUSH_TOKEN_MAX_AGE_DAYS))
    stale = store.query(PUSH_TOKENS_COLLECTION, filters=[("lastUsed", "<", cutoff)])
    if not stale:
        return 0
    batch = store.batch()
    for snapshot in stale:
        batch.delete(PUSH_TOKENS_COLLECTION, snapshot.id)
    batch.commit()
    return len(stale)


@celery_app.task(name="fan_out_notification")
def fan_out_notification(notification_id: str):
    """Deliver a freshly created notification as push messages."""
    try:
        result = deliver_notification(get_worker_store(), notification_id)
        logger.info(f"✅ Fan-out {notification_id}: {result['sent']}/{result['tokens']} delivered")
        return result
    except Exception as e:
        logger.error(f"❌ Error fanning out notification {notification_id}: {e}", exc_info=True)
        raise


@celery_app.task(name="prune_stale_push_tokens")
def prune_stale_push_tokens():
    try:
        removed = prune_push_tokens(get_worker_store())
        logger.info(f"🧹 Removed {removed} stale push tokens")
        return {"removed": removed}
    except Exception as e:
        logger.error(f"❌ Error pruning push tokens: {e}", exc_info=True)
        raise


def enqueue_fan_out(notification_id: str) -> None:
    fan_out_notification.delay(notification_id)


celery_app.conf.beat_schedule = {
    'prune-push-tokens-daily': {
        'task': 'prune_stale_push_tokens',
        'schedule': 24 * 60 * 60.0,
    },
}
