"""Jig request use-cases."""
from __future__ import annotations

from datetime import datetime

from ..auth import CurrentUser
from ..schemas import JigRequest, JigRequestCreate, JigRequestUpdate, JigStatus
from ..services.id_allocator import JIG_COUNTER, format_jig_id
from ..services.ledger import EDITED_REASON, initial_history, iso_timestamp, receive_quantity
from ..services.notifier import Notifier
from ..services.workspace import Workspace
from .optimistic import MutationResult, apply_optimistic
from .record_mutations import (
    change_status,
    create_sequential_record,
    delete_record,
    edit_record,
    persist_delta,
    post_comment,
)

KIND = JigRequest.KIND


def create_jig_request_use_case(
    *,
    workspace: Workspace,
    notifier: Notifier,
    payload: JigRequestCreate,
    current_user: CurrentUser,
    at: datetime | None = None,
) -> JigRequest:
    """Register a new request as ``T{n}`` in the 요청 state."""
    fields = payload.model_dump()
    fields["request_date"] = payload.request_date or iso_timestamp(at)

    def build(new_id: str) -> JigRequest:
        return JigRequest(
            **fields,
            id=new_id,
            status=JigStatus.REQUEST,
            history=initial_history(JigStatus.REQUEST.value, current_user.name, at=at),
            comments=[],
            received_quantity=0,
        )

    return create_sequential_record(
        workspace=workspace,
        notifier=notifier,
        kind=KIND,
        counter_key=JIG_COUNTER,
        format_id=format_jig_id,
        build=build,
        notify_message=lambda r: f"신규 요청 '{r.item_name}'이(가) 등록되었습니다.",
        success_message="신규 요청이 성공적으로 등록되었습니다.",
        at=at,
    )


def update_jig_status_use_case(
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
        notify_message=lambda r: f"요청 '{r.item_name}'의 상태가 '{r.status}'(으)로 변경되었습니다.",
        force=force,
        at=at,
    )


def receive_jig_items_use_case(
    *,
    workspace: Workspace,
    request_id: str,
    quantity_change: int,
    current_user: CurrentUser,
    at: datetime | None = None,
) -> MutationResult | None:
    """Record a receipt (positive) or a return (negative) against the ordered quantity."""

    def persist(original: JigRequest, updated: JigRequest) -> None:
        fields = {"receivedQuantity": updated.received_quantity, "status": updated.status}
        persist_delta(workspace, original, updated, fields)

    return apply_optimistic(
        workspace,
        kind=KIND,
        record_id=request_id,
        change=lambda r: receive_quantity(r, quantity_change, current_user.name, at=at),
        persist=persist,
        failure_message="입고 처리에 실패했습니다. 변경사항이 되돌려집니다.",
        success_message=lambda r: r.history[-1].reason,
    )


def add_jig_comment_use_case(
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
        notify_message=lambda r: f"요청 '{r.item_name}'에 {current_user.name}님이 새 댓글을 남겼습니다.",
        at=at,
    )


def edit_jig_request_use_case(
    *,
    workspace: Workspace,
    request_id: str,
    payload: JigRequestUpdate,
    current_user: CurrentUser,
    at: datetime | None = None,
) -> MutationResult | None:
    return edit_record(
        workspace=workspace,
        kind=KIND,
        record_id=request_id,
        updates=payload.model_dump(exclude_unset=True),
        current_user=current_user,
        reason=EDITED_REASON,
        at=at,
    )


def delete_jig_request_use_case(*, workspace: Workspace, request_id: str) -> bool:
    return delete_record(workspace=workspace, kind=KIND, record_id=request_id)
