"""Sample request endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from ..auth import CurrentUser, PermissionChecker, get_current_user
from ..dependencies import get_notifier, get_workspace
from ..domain_errors import not_found
from ..schemas import (
    CommentCreate,
    SampleRequest,
    SampleRequestCreate,
    SampleRequestUpdate,
    SampleStatusChange,
    SampleWorkData,
)
from ..services.notifier import Notifier
from ..services.workspace import Workspace
from ..use_cases.record_mutations import require_result
from ..use_cases.sample_requests import (
    add_sample_comment_use_case,
    create_sample_request_use_case,
    delete_sample_request_use_case,
    edit_sample_request_use_case,
    update_sample_status_use_case,
    update_sample_work_data_use_case,
)

router = APIRouter(prefix="/sample-requests", tags=["sample-requests"])

KIND = SampleRequest.KIND


@router.get("")
def list_sample_requests(
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
):
    return [r.to_document() for r in workspace.records(KIND)]


@router.get("/{request_id}")
def get_sample_request(
    request_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
):
    record = workspace.open_detail(current_user.uid, KIND, request_id)
    if record is None:
        raise not_found("SAMPLE_NOT_FOUND", f"SampleRequest {request_id} not found")
    return record.to_document()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_sample_request(
    payload: SampleRequestCreate,
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
    notifier: Notifier = Depends(get_notifier),
):
    record = create_sample_request_use_case(
        workspace=workspace, notifier=notifier, payload=payload, current_user=current_user
    )
    return record.to_document()


@router.patch("/{request_id}")
def edit_sample_request(
    request_id: str,
    payload: SampleRequestUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
):
    result = edit_sample_request_use_case(
        workspace=workspace, request_id=request_id, payload=payload, current_user=current_user
    )
    return require_result(result, kind=KIND, record_id=request_id).record.to_document()


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_sample_request(
    request_id: str,
    current_user: CurrentUser = Depends(PermissionChecker("canDeleteData")),
    workspace: Workspace = Depends(get_workspace),
):
    if not delete_sample_request_use_case(workspace=workspace, request_id=request_id):
        raise not_found("SAMPLE_NOT_FOUND", f"SampleRequest {request_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{request_id}/status")
def update_sample_status(
    request_id: str,
    payload: SampleStatusChange,
    force: bool = Query(False),
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
    notifier: Notifier = Depends(get_notifier),
):
    result = update_sample_status_use_case(
        workspace=workspace,
        notifier=notifier,
        request_id=request_id,
        status=payload.status,
        reason=payload.reason,
        work_data=payload.work_data,
        current_user=current_user,
        force=force,
    )
    return require_result(result, kind=KIND, record_id=request_id).record.to_document()


@router.put("/{request_id}/work-data")
def update_sample_work_data(
    request_id: str,
    payload: SampleWorkData,
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
    notifier: Notifier = Depends(get_notifier),
):
    result = update_sample_work_data_use_case(
        workspace=workspace,
        notifier=notifier,
        request_id=request_id,
        work_data=payload,
        current_user=current_user,
    )
    return require_result(result, kind=KIND, record_id=request_id).record.to_document()


@router.post("/{request_id}/comments", status_code=status.HTTP_201_CREATED)
def add_sample_comment(
    request_id: str,
    payload: CommentCreate,
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
    notifier: Notifier = Depends(get_notifier),
):
    result = add_sample_comment_use_case(
        workspace=workspace,
        notifier=notifier,
        request_id=request_id,
        text=payload.text,
        current_user=current_user,
    )
    record = require_result(result, kind=KIND, record_id=request_id).record
    return record.comments[-1].to_document()
