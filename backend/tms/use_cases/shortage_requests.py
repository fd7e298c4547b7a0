"""Shortage request use-cases.

A shortage request asks for the quantity a packaging run came up short.
It starts as ``requested`` and is closed as ``completed``; its history logs
creation (``생성``) and every edit of the reason or quantity (``수정``).
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime

from ..auth import CurrentUser
from ..schemas import (
    ShortageRequest,
    ShortageRequestCreate,
    ShortageRequestUpdate,
    ShortageStatus,
    UserRef,
)
from ..services.ledger import history_entry, iso_timestamp
from ..services.notifier import Notifier
from ..services.workspace import Workspace
from ..store import StoreError
from .optimistic import MutationResult, apply_optimistic
from .record_mutations import change_status, delete_record, persist_delta, post_comment, read_comments

logger = logging.getLogger(__name__)

KIND = ShortageRequest.KIND
COLLECTION = ShortageRequest.COLLECTION
CREATED_ENTRY = "생성"
CREATED_REASON = "부족분 신청 생성됨"
EDITED_ENTRY = "수정"
EDITED_REASON = "사유 또는 수량 수정됨"
SAVE_FAILED = "부족분 신청 저장 중 오류가 발생했습니다."


def create_shortage_request_use_case(
    *,
    workspace: Workspace,
    payload: ShortageRequestCreate,
    current_user: CurrentUser,
    at: datetime | None = None,
) -> ShortageRequest:
    record = ShortageRequest(
        **payload.model_dump(),
        id=uuid.uuid4().hex,
        status=ShortageStatus.REQUESTED,
        created_at=iso_timestamp(at),
        author=UserRef(uid=current_user.uid, display_name=current_user.name),
        history=[history_entry(CREATED_ENTRY, current_user.name, CREATED_REASON, at=at)],
        comments=[],
    )
    try:
        workspace.store.add(COLLECTION, record.to_document(), doc_id=record.id)
    except StoreError as e:
        logger.error(f"Failed to create shortage request for {record.source_report_id!r}: {e}", exc_info=True)
        workspace.publish(SAVE_FAILED, level="error")
        raise

    if workspace.find(KIND, record.id) is None:
        workspace.insert(KIND, record)
    workspace.publish("부족분 신청이 완료되었습니다.", level="success")
    return record


def edit_shortage_request_use_case(
    *,
    workspace: Workspace,
    request_id: str,
    payload: ShortageRequestUpdate,
    current_user: CurrentUser,
    at: datetime | None = None,
) -> MutationResult | None:
    """Change the reason or quantity; the status stays where it is."""
    updates = payload.model_dump(exclude_unset=True, exclude_none=True)

    def change(record: ShortageRequest) -> ShortageRequest:
        entry = history_entry(EDITED_ENTRY, current_user.name, EDITED_REASON, at=at)
        return ShortageRequest.model_validate(
            {**record.model_dump(), **updates, "history": [*record.history, entry]}
        )

    def persist(original: ShortageRequest, updated: ShortageRequest) -> None:
        fields = updated.model_dump(mode="json", by_alias=True, include=set(updates))
        persist_delta(workspace, original, updated, fields)

    return apply_optimistic(
        workspace,
        kind=KIND,
        record_id=request_id,
        change=change,
        persist=persist,
        failure_message=SAVE_FAILED,
        success_message="부족분 신청이 수정되었습니다.",
    )


def update_shortage_status_use_case(
    *,
    workspace: Workspace,
    notifier: Notifier,
    request_id: str,
    status: str,
    current_user: CurrentUser,
    reason: str | None = None,
    force: bool = False,
    at: datetime | None = None,
) -> MutationResult | None:
    return change_status(
        workspace=workspace,
        notifier=notifier,
        kind=KIND,
        record_id=request_id,
        status=status,
        current_user=current_user,
        reason=reason,
        force=force,
        at=at,
    )


def add_shortage_comment_use_case(
    *,
    workspace: Workspace,
    notifier: Notifier,
    request_id: str,
    text: str,
    current_user: CurrentUser,
    at: datetime | None = None,
) -> MutationResult | None:
    return post_comment(
        workspace=workspace,
        notifier=notifier,
        kind=KIND,
        record_id=request_id,
        text=text,
        current_user=current_user,
        at=at,
    )


def mark_shortage_comments_read_use_case(
    *,
    workspace: Workspace,
    request_id: str,
    current_user: CurrentUser,
) -> MutationResult | None:
    return read_comments(workspace=workspace, kind=KIND, record_id=request_id, current_user=current_user)


def delete_shortage_request_use_case(*, workspace: Workspace, request_id: str) -> bool:
    return delete_record(
        workspace=workspace,
        kind=KIND,
        record_id=request_id,
        success_message="부족분 신청 내역이 삭제되었습니다.",
        failure_message="삭제 중 오류가 발생했습니다.",
    )


def shortage_for_report(workspace: Workspace, report_id: str) -> ShortageRequest | None:
    """The request filed for a packaging report, if one exists."""
    return next((r for r in workspace.records(KIND) if r.source_report_id == report_id), None)
