"""Status/history ledger for tracked records.

Every function returns a new record; inputs are never mutated. History and
comments only ever grow at the end.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, TypeVar

from ..domain_errors import DomainError
from ..schemas import Comment, HistoryEntry, JigRequest, JigStatus, MutableRecord

R = TypeVar("R", bound=MutableRecord)

DEFAULT_STATUS_REASON = "상태 업데이트됨"
CREATED_REASON = "생성됨"
EDITED_REASON = "사용자에 의해 수정됨"

_RECEIVING_STATUSES: set[str] = {
    JigStatus.IN_PROGRESS.value,
    JigStatus.RECEIVING.value,
    JigStatus.COMPLETED.value,
}

# Only enforced when strict transitions are switched on.
_ALLOWED_TRANSITIONS: dict[str, dict[str, set[str]]] = {
    "jig": {
        "요청": {"보류", "진행중", "반려"},
        "보류": {"요청", "진행중", "반려"},
        "진행중": {"입고중", "완료", "보류", "반려"},
        "입고중": {"진행중", "완료", "보류"},
        "완료": {"입고중"},
        "반려": {"요청"},
    },
    "sample": {
        "접수": {"진행중", "보류", "반려"},
        "진행중": {"완료", "보류", "반려"},
        "보류": {"접수", "진행중", "반려"},
        "완료": {"진행중"},
        "반려": {"접수"},
    },
    "production": {
        "요청": {"진행중", "보류", "반려"},
        "진행중": {"완료", "보류", "반려"},
        "보류": {"요청", "진행중", "반려"},
        "완료": {"진행중"},
        "반려": {"요청"},
    },
    "quality": {
        "생성됨": {"합격", "불합격", "한도대기"},
        "불합격": {"한도대기", "반출", "합격"},
        "한도대기": {"한도승인", "불합격"},
        "한도승인": {"반출", "합격"},
        "합격": {"반출", "불합격"},
        "반출": set(),
    },
    "shortage": {
        "requested": {"completed"},
        "completed": {"requested"},
    },
}


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(at: datetime | None = None) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    ts = (at or now_utc()).astimezone(timezone.utc)
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def epoch_millis(at: datetime | None = None) -> int:
    return int((at or now_utc()).timestamp() * 1000)


def _require_actor(actor: str) -> None:
    if not actor or not actor.strip():
        raise ValueError("Ledger entries require a non-empty actor")


def history_entry(status: str, actor: str, reason: str | None = None, *, at: datetime | None = None) -> HistoryEntry:
    _require_actor(actor)
    return HistoryEntry(status=status, date=iso_timestamp(at), user=actor, reason=reason)


def initial_history(status: str, actor: str, reason: str = CREATED_REASON, *, at: datetime | None = None) -> list[HistoryEntry]:
    return [history_entry(status, actor, reason, at=at)]


def validate_status_transition(*, kind: str, current_status: str, next_status: str) -> str:
    if next_status == current_status:
        return next_status
    allowed = _ALLOWED_TRANSITIONS.get(kind, {}).get(current_status)
    if allowed is None or next_status in allowed:
        return next_status
    raise DomainError(
        code="INVALID_STATUS_TRANSITION",
        http_status=409,
        message=f"Invalid {kind} status transition: {current_status} -> {next_status}",
        details={"from": current_status, "to": next_status},
    )


def transition_status(
    record: R,
    new_status: Any,
    actor: str,
    reason: str | None = None,
    *,
    at: datetime | None = None,
    strict: bool = False,
) -> R:
    status = record.coerce_status(new_status)
    if strict:
        validate_status_transition(kind=record.KIND, current_status=record.status, next_status=status)
    entry = history_entry(status, actor, reason or DEFAULT_STATUS_REASON, at=at)
    return record.model_copy(update={"status": status, "history": [*record.history, entry]})


def derive_receiving_status(current_status: str, received: int, quantity: int) -> str:
    if current_status not in _RECEIVING_STATUSES:
        return current_status
    if received >= quantity:
        return JigStatus.COMPLETED.value
    if received > 0:
        return JigStatus.RECEIVING.value
    return JigStatus.IN_PROGRESS.value


def receipt_reason(delta: int, received: int, quantity: int, *, completed_now: bool) -> str:
    totals = f"(총 {received}/{quantity})"
    if delta > 0:
        if completed_now:
            return f"모든 품목 입고 완료. {totals}"
        return f"수량 {abs(delta)}개 입고됨. {totals}"
    return f"수량 {abs(delta)}개 반출됨. {totals}"


def receive_quantity(request: JigRequest, delta: int, actor: str, *, at: datetime | None = None) -> JigRequest:
    """Apply a receipt (positive) or a return (negative) to a jig request.

    The status only follows the received total while the request is in
    progress, receiving or completed; otherwise the quantity changes alone.
    A history entry is appended either way.
    """
    received = request.received_quantity + delta
    status = derive_receiving_status(request.status, received, request.quantity)
    completed_now = status == JigStatus.COMPLETED.value and request.status != JigStatus.COMPLETED.value
    reason = receipt_reason(delta, received, request.quantity, completed_now=completed_now)
    entry = history_entry(status, actor, reason, at=at)
    return request.model_copy(
        update={
            "received_quantity": received,
            "status": status,
            "history": [*request.history, entry],
        }
    )


def new_comment(record: MutableRecord, actor: str, text: str, *, at: datetime | None = None) -> Comment:
    _require_actor(actor)
    ts = at or now_utc()
    return Comment(
        id=f"{record.COMMENT_PREFIX}{epoch_millis(ts)}",
        user=actor,
        date=iso_timestamp(ts),
        text=text,
        read_by=[],
    )


def add_comment(record: R, actor: str, text: str, *, at: datetime | None = None) -> tuple[R, Comment]:
    comment = new_comment(record, actor, text, at=at)
    return record.model_copy(update={"comments": [*record.comments, comment]}), comment


def record_edit(
    record: R,
    actor: str,
    reason: str = EDITED_REASON,
    *,
    at: datetime | None = None,
    updates: dict[str, Any] | None = None,
    status: Any = None,
) -> R:
    """Apply field edits and log them under the record's (possibly new) status."""
    changed = dict(updates or {})
    next_status = record.coerce_status(status) if status is not None else record.status
    entry = history_entry(next_status, actor, reason, at=at)
    changed.update({"status": next_status, "history": [*record.history, entry]})
    edited = type(record).model_validate({**record.model_dump(), **changed})
    return edited


def mark_comments_read(record: R, user_id: str) -> R:
    if all(user_id in comment.read_by for comment in record.comments):
        return record
    comments = [
        comment if user_id in comment.read_by else comment.model_copy(update={"read_by": [*comment.read_by, user_id]})
        for comment in record.comments
    ]
    return record.model_copy(update={"comments": comments})


def has_unread_comments(record: MutableRecord, user_id: str) -> bool:
    return any(user_id not in comment.read_by for comment in record.comments)
