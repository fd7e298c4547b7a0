"""Production request use-cases."""
from __future__ import annotations

from datetime import datetime
from functools import partial

from ..auth import CurrentUser
from ..schemas import (
    ProductionRequest,
    ProductionRequestCreate,
    ProductionRequestUpdate,
    ProductionStatus,
    UserRef,
)
from ..services.id_allocator import PRODUCTION_COUNTER, format_production_id, plant_date
from ..services.ledger import initial_history, iso_timestamp
from ..services.notifier import Notifier
from ..services.workspace import Workspace
from .optimistic import MutationResult
from .record_mutations import (
    change_status,
    create_sequential_record,
    delete_record,
    edit_record,
    post_comment,
    read_comments,
)

KIND = ProductionRequest.KIND
EDITED_REASON = "요청 내용 수정됨"


def create_production_request_use_case(
    *,
    workspace: Workspace,
    notifier: Notifier,
    payload: ProductionRequestCreate,
    current_user: CurrentUser,
    at: datetime | None = None,
) -> ProductionRequest:
    fields = payload.model_dump()
    created_at = iso_timestamp(at)

    def build(new_id: str) -> ProductionRequest:
        return ProductionRequest(
            **fields,
            id=new_id,
            status=ProductionStatus.REQUESTED,
            created_at=created_at,
            author=UserRef(uid=current_user.uid, display_name=current_user.name),
            history=initial_history(ProductionStatus.REQUESTED.value, current_user.name, at=at),
            comments=[],
        )

    return create_sequential_record(
        workspace=workspace,
        notifier=notifier,
        kind=KIND,
        counter_key=PRODUCTION_COUNTER,
        format_id=partial(format_production_id, on=plant_date(at)),
        build=build,
        notify_message=lambda r: f"신규 생산 요청 '{r.product_name}'이(가) 등록되었습니다.",
        success_message="신규 생산 요청이 성공적으로 등록되었습니다.",
        failure_message="생산 요청 저장에 실패했습니다.",
        at=at,
    )


def update_production_status_use_case(
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
        notify_message=lambda r: f"생산 요청 '{r.product_name}'의 상태가 '{r.status}'로 변경되었습니다.",
        force=force,
        at=at,
    )


def edit_production_request_use_case(
    *,
    workspace: Workspace,
    request_id: str,
    payload: ProductionRequestUpdate,
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
        success_message="생산 요청이 성공적으로 수정되었습니다.",
        failure_message="생산 요청 저장에 실패했습니다.",
        at=at,
    )


def add_production_comment_use_case(
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


def mark_production_comments_read_use_case(
    *,
    workspace: Workspace,
    request_id: str,
    current_user: CurrentUser,
) -> MutationResult | None:
    return read_comments(workspace=workspace, kind=KIND, record_id=request_id, current_user=current_user)


def delete_production_request_use_case(*, workspace: Workspace, request_id: str) -> bool:
    return delete_record(
        workspace=workspace,
        kind=KIND,
        record_id=request_id,
        success_message="생산 요청이 삭제되었습니다.",
        failure_message="생산 요청 삭제에 실패했습니다.",
    )
