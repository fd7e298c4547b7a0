"""Sample request use-cases."""
from __future__ import annotations

from datetime import datetime
from functools import partial

from ..auth import CurrentUser
from ..schemas import (
    SampleRequest,
    SampleRequestCreate,
    SampleRequestUpdate,
    SampleStatus,
    SampleWorkData,
    UserRef,
)
from ..services.id_allocator import SAMPLE_COUNTER, format_sample_id, plant_date
from ..services.ledger import EDITED_REASON, initial_history, iso_timestamp
from ..services.notifier import Notifier
from ..services.workspace import Workspace
from .optimistic import MutationResult
from .record_mutations import (
    change_status,
    create_sequential_record,
    delete_record,
    edit_record,
    post_comment,
)

KIND = SampleRequest.KIND
WORK_DATA_REASON = "작업 데이터가 수정/추가되었습니다."


def create_sample_request_use_case(
    *,
    workspace: Workspace,
    notifier: Notifier,
    payload: SampleRequestCreate,
    current_user: CurrentUser,
    at: datetime | None = None,
) -> SampleRequest:
    fields = payload.model_dump()
    created_at = iso_timestamp(at)

    def build(new_id: str) -> SampleRequest:
        return SampleRequest(
            **fields,
            id=new_id,
            status=SampleStatus.RECEIVED,
            created_at=created_at,
            requester_info=UserRef(uid=current_user.uid, display_name=current_user.name),
            history=initial_history(SampleStatus.RECEIVED.value, current_user.name, at=at),
            comments=[],
        )

    return create_sequential_record(
        workspace=workspace,
        notifier=notifier,
        kind=KIND,
        counter_key=SAMPLE_COUNTER,
        format_id=partial(format_sample_id, on=plant_date(at)),
        build=build,
        notify_message=lambda r: f"신규 샘플 요청 '{r.product_name}'이(가) 등록되었습니다.",
        success_message="신규 샘플 요청이 성공적으로 등록되었습니다.",
        failure_message="샘플 요청 저장에 실패했습니다.",
        at=at,
    )


def update_sample_status_use_case(
    *,
    workspace: Workspace,
    notifier: Notifier,
    request_id: str,
    status: str,
    current_user: CurrentUser,
    reason: str | None = None,
    work_data: SampleWorkData | None = None,
    force: bool = False,
    at: datetime | None = None,
) -> MutationResult | None:
    """Change status, optionally recording the work data captured with it."""
    return change_status(
        workspace=workspace,
        notifier=notifier,
        kind=KIND,
        record_id=request_id,
        status=status,
        current_user=current_user,
        reason=reason,
        extra_updates={"work_data": work_data} if work_data is not None else None,
        notify_message=lambda r: f"샘플 요청 '{r.product_name}'의 상태가 '{r.status}'로 변경되었습니다.",
        force=force,
        at=at,
    )


def update_sample_work_data_use_case(
    *,
    workspace: Workspace,
    notifier: Notifier,
    request_id: str,
    work_data: SampleWorkData,
    current_user: CurrentUser,
    at: datetime | None = None,
) -> MutationResult | None:
    result = edit_record(
        workspace=workspace,
        kind=KIND,
        record_id=request_id,
        updates={"work_data": work_data},
        current_user=current_user,
        reason=WORK_DATA_REASON,
        success_message="작업 데이터가 저장되었습니다.",
        failure_message="작업 데이터 저장에 실패했습니다. 변경사항이 되돌려집니다.",
        at=at,
    )
    if result is not None and result.ok:
        notifier.notify(
            SampleRequest.NOTIFICATION_TYPE,
            f"샘플 요청 '{result.record.product_name}'의 작업 데이터가 업데이트되었습니다.",
            request_id,
            at=at,
        )
    return result


def add_sample_comment_use_case(
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


def edit_sample_request_use_case(
    *,
    workspace: Workspace,
    request_id: str,
    payload: SampleRequestUpdate,
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
        failure_message="샘플 요청 저장에 실패했습니다.",
        success_message="샘플 요청이 성공적으로 수정되었습니다.",
        at=at,
    )


def delete_sample_request_use_case(*, workspace: Workspace, request_id: str) -> bool:
    return delete_record(
        workspace=workspace,
        kind=KIND,
        record_id=request_id,
        success_message="샘플 요청이 삭제되었습니다.",
        failure_message="샘플 요청 삭제에 실패했습니다.",
    )
