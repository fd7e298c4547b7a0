"""Mutations shared by every tracked record kind."""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from ..auth import CurrentUser
from ..config import settings
from ..domain_errors import DomainError, not_found, remote_write_failed
from ..schemas import RECORD_TYPES, MutableRecord
from ..services.id_allocator import allocate_id
from ..services.ledger import (
    EDITED_REASON,
    add_comment,
    mark_comments_read,
    record_edit,
    transition_status,
)
from ..services.notifier import Notifier
from ..services.workspace import Workspace
from ..store import StoreError, array_union
from .optimistic import MutationResult, apply_optimistic

logger = logging.getLogger(__name__)

STATUS_FAILED = "상태 업데이트에 실패했습니다. 변경사항이 되돌려집니다."
COMMENT_ADDED = "댓글이 추가되었습니다."
COMMENT_FAILED = "댓글 추가에 실패했습니다. 변경사항이 되돌려집니다."
READ_FAILED = "댓글 읽음 처리에 실패했습니다."
SAVE_FAILED = "요청 저장에 실패했습니다."
SAVED = "요청이 성공적으로 수정되었습니다."
DELETE_FAILED = "요청 삭제에 실패했습니다."
DELETED = "요청이 삭제되었습니다."

MessageFn = Callable[[MutableRecord], str]


def status_changed_message(record: MutableRecord) -> str:
    return f"상태가 '{record.status}'(으)로 업데이트되었습니다."


def coerce_status_or_422(kind: str, status: Any) -> str:
    try:
        return RECORD_TYPES[kind].coerce_status(status)
    except ValueError as e:
        raise DomainError(code="INVALID_STATUS", http_status=422, message=str(e))


def get_record_or_404(*, workspace: Workspace, kind: str, record_id: str) -> MutableRecord:
    record = workspace.find(kind, record_id)
    if record is None:
        raise not_found(
            f"{kind.upper()}_NOT_FOUND",
            f"{RECORD_TYPES[kind].__name__} {record_id} not found",
        )
    return record


def require_result(result: MutationResult | None, *, kind: str, record_id: str) -> MutationResult:
    """HTTP view of a mutation: missing record is 404, a rolled-back write is 503."""
    if result is None:
        raise not_found(
            f"{kind.upper()}_NOT_FOUND",
            f"{RECORD_TYPES[kind].__name__} {record_id} not found",
        )
    if not result.ok:
        raise remote_write_failed(result.notice.message if result.notice else SAVE_FAILED, entity_id=record_id)
    return result


def _dump_fields(record: MutableRecord, names: Iterable[str]) -> dict[str, Any]:
    names = set(names)
    if not names:
        return {}
    return record.model_dump(mode="json", by_alias=True, include=names)


def _apply_updates(record: MutableRecord, updates: dict[str, Any] | None) -> MutableRecord:
    if not updates:
        return record
    return type(record).model_validate({**record.model_dump(), **updates})


def persist_delta(
    workspace: Workspace,
    original: MutableRecord,
    updated: MutableRecord,
    fields: dict[str, Any],
) -> None:
    """Write changed fields; new history entries and comments go in as array unions."""
    document = dict(fields)
    new_entries = [entry.to_document() for entry in updated.history[len(original.history):]]
    if new_entries:
        document["history"] = array_union(*new_entries)
    new_comments = [comment.to_document() for comment in updated.comments[len(original.comments):]]
    if new_comments:
        document["comments"] = array_union(*new_comments)
    workspace.store.update(updated.COLLECTION, updated.id, document)


def change_status(
    *,
    workspace: Workspace,
    notifier: Notifier,
    kind: str,
    record_id: str,
    status: Any,
    current_user: CurrentUser,
    reason: str | None = None,
    extra_updates: dict[str, Any] | None = None,
    notify_message: MessageFn | None = None,
    force: bool = False,
    at: datetime | None = None,
) -> MutationResult | None:
    status_value = coerce_status_or_422(kind, status)
    strict = settings.STRICT_STATUS_TRANSITIONS and not force

    def change(record: MutableRecord) -> MutableRecord:
        updated = transition_status(record, status_value, current_user.name, reason, at=at, strict=strict)
        return _apply_updates(updated, extra_updates)

    def persist(original: MutableRecord, updated: MutableRecord) -> None:
        fields = {"status": updated.status, **_dump_fields(updated, extra_updates or {})}
        persist_delta(workspace, original, updated, fields)

    result = apply_optimistic(
        workspace,
        kind=kind,
        record_id=record_id,
        change=change,
        persist=persist,
        failure_message=STATUS_FAILED,
        success_message=status_changed_message,
    )
    if result is not None and result.ok and notify_message is not None:
        notifier.notify(result.record.NOTIFICATION_TYPE, notify_message(result.record), record_id, at=at)
    return result


def post_comment(
    *,
    workspace: Workspace,
    notifier: Notifier,
    kind: str,
    record_id: str,
    text: str,
    current_user: CurrentUser,
    notify_message: MessageFn | None = None,
    notify_request_id: str | None = None,
    at: datetime | None = None,
) -> MutationResult | None:
    def change(record: MutableRecord) -> MutableRecord:
        updated, _ = add_comment(record, current_user.name, text, at=at)
        return updated

    def persist(original: MutableRecord, updated: MutableRecord) -> None:
        persist_delta(workspace, original, updated, {})

    result = apply_optimistic(
        workspace,
        kind=kind,
        record_id=record_id,
        change=change,
        persist=persist,
        failure_message=COMMENT_FAILED,
        success_message=COMMENT_ADDED,
    )
    if result is not None and result.ok and notify_message is not None:
        notifier.notify(
            result.record.NOTIFICATION_TYPE,
            notify_message(result.record),
            notify_request_id or record_id,
            at=at,
        )
    return result


def edit_record(
    *,
    workspace: Workspace,
    kind: str,
    record_id: str,
    updates: dict[str, Any],
    current_user: CurrentUser,
    reason: str | Callable[[MutableRecord], str] = EDITED_REASON,
    status: Any = None,
    success_message: str = SAVED,
    failure_message: str = SAVE_FAILED,
    at: datetime | None = None,
) -> MutationResult | None:
    """Apply field edits with a history entry under the current (or given) status."""
    status_value = coerce_status_or_422(kind, status) if status is not None else None

    def change(record: MutableRecord) -> MutableRecord:
        entry_reason = reason(record) if callable(reason) else reason
        return record_edit(record, current_user.name, entry_reason, at=at, updates=updates, status=status_value)

    def persist(original: MutableRecord, updated: MutableRecord) -> None:
        fields = {"status": updated.status, **_dump_fields(updated, updates)}
        persist_delta(workspace, original, updated, fields)

    return apply_optimistic(
        workspace,
        kind=kind,
        record_id=record_id,
        change=change,
        persist=persist,
        failure_message=failure_message,
        success_message=success_message,
    )


def read_comments(
    *,
    workspace: Workspace,
    kind: str,
    record_id: str,
    current_user: CurrentUser,
) -> MutationResult | None:
    """Add the caller to every comment's ``readBy`` and store the whole thread."""
    original = workspace.find(kind, record_id)
    if original is None:
        return None
    if mark_comments_read(original, current_user.uid) is original:
        return MutationResult(ok=True, record=original)

    def persist(_original: MutableRecord, updated: MutableRecord) -> None:
        comments = [comment.to_document() for comment in updated.comments]
        workspace.store.update(updated.COLLECTION, updated.id, {"comments": comments})

    return apply_optimistic(
        workspace,
        kind=kind,
        record_id=record_id,
        change=lambda record: mark_comments_read(record, current_user.uid),
        persist=persist,
        failure_message=READ_FAILED,
    )


def create_sequential_record(
    *,
    workspace: Workspace,
    notifier: Notifier,
    kind: str,
    counter_key: str,
    format_id: Callable[[int], str],
    build: Callable[[str], MutableRecord],
    notify_message: MessageFn,
    success_message: str,
    failure_message: str = SAVE_FAILED,
    at: datetime | None = None,
) -> MutableRecord:
    """Allocate the next id, store the record built for it and announce it.

    Failures publish an error notice and propagate so the caller can retry.
    """
    model = RECORD_TYPES[kind]
    built: dict[str, MutableRecord] = {}

    def build_document(new_id: str) -> dict[str, Any]:
        record = build(new_id)
        built[new_id] = record
        return record.to_document()

    try:
        new_id = allocate_id(
            workspace.store,
            counter_key=counter_key,
            collection=model.COLLECTION,
            format_id=format_id,
            build_document=build_document,
        )
    except StoreError as e:
        logger.error(f"Failed to create {kind} record: {e}", exc_info=True)
        workspace.publish(failure_message, level="error")
        raise

    record = built[new_id]
    if workspace.find(kind, new_id) is None:
        workspace.insert(kind, record)
    notifier.notify(model.NOTIFICATION_TYPE, notify_message(record), new_id, at=at)
    workspace.publish(success_message, level="success")
    return record


def delete_record(
    *,
    workspace: Workspace,
    kind: str,
    record_id: str,
    success_message: str = DELETED,
    failure_message: str = DELETE_FAILED,
) -> bool:
    if workspace.find(kind, record_id) is None:
        return False
    try:
        workspace.store.delete(RECORD_TYPES[kind].COLLECTION, record_id)
    except StoreError as e:
        logger.error(f"Failed to delete {kind}/{record_id}: {e}", exc_info=True)
        workspace.publish(failure_message, level="error")
        raise remote_write_failed(failure_message, entity_id=record_id)
    workspace.remove(kind, record_id)
    workspace.publish(success_message, level="success")
    return True
