"""Jig request endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from ..auth import CurrentUser, PermissionChecker, get_current_user
from ..dependencies import get_notifier, get_workspace
from ..domain_errors import not_found
from ..schemas import (
    CommentCreate,
    JigRequest,
    JigRequestCreate,
    JigRequestUpdate,
    QuantityReceipt,
    StatusChange,
)
from ..services.notifier import Notifier
from ..services.workspace import Workspace
from ..use_cases.jig_requests import (
    add_jig_comment_use_case,
    create_jig_request_use_case,
    delete_jig_request_use_case,
    edit_jig_request_use_case,
    receive_jig_items_use_case,
    update_jig_status_use_case,
)
from ..use_cases.record_mutations import require_result

router = APIRouter(prefix="/jig-requests", tags=["jig-requests"])

KIND = JigRequest.KIND


@router.get("")
def list_jig_requests(
    status_filter: str | None = Query(None, alias="status"),
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
):
    """Newest requests first."""
    records = workspace.records(KIND)
    if status_filter:
        records = [r for r in records if r.status == status_filter]
    return [r.to_document() for r in records]


@router.get("/{request_id}")
def get_jig_request(
    request_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
):
    """Open the request in the caller's detail view."""
    record = workspace.open_detail(current_user.uid, KIND, request_id)
    if record is None:
        raise not_found("JIG_NOT_FOUND", f"JigRequest {request_id} not found")
    return record.to_document()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_jig_request(
    payload: JigRequestCreate,
    current_user: CurrentUser = Depends(PermissionChecker("canSaveRequests")),
    workspace: Workspace = Depends(get_workspace),
    notifier: Notifier = Depends(get_notifier),
):
    record = create_jig_request_use_case(
        workspace=workspace, notifier=notifier, payload=payload, current_user=current_user
    )
    return record.to_document()


@router.patch("/{request_id}")
def edit_jig_request(
    request_id: str,
    payload: JigRequestUpdate,
    current_user: CurrentUser = Depends(PermissionChecker("canSaveRequests")),
    workspace: Workspace = Depends(get_workspace),
):
    result = edit_jig_request_use_case(
        workspace=workspace, request_id=request_id, payload=payload, current_user=current_user
    )
    return require_result(result, kind=KIND, record_id=request_id).record.to_document()


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_jig_request(
    request_id: str,
    current_user: CurrentUser = Depends(PermissionChecker("canDeleteData")),
    workspace: Workspace = Depends(get_workspace),
):
    if not delete_jig_request_use_case(workspace=workspace, request_id=request_id):
        raise not_found("JIG_NOT_FOUND", f"JigRequest {request_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{request_id}/status")
def update_jig_status(
    request_id: str,
    payload: StatusChange,
    force: bool = Query(False),
    current_user: CurrentUser = Depends(PermissionChecker("canSaveRequests")),
    workspace: Workspace = Depends(get_workspace),
    notifier: Notifier = Depends(get_notifier),
):
    result = update_jig_status_use_case(
        workspace=workspace,
        notifier=notifier,
        request_id=request_id,
        status=payload.status,
        reason=payload.reason,
        current_user=current_user,
        force=force,
    )
    return require_result(result, kind=KIND, record_id=request_id).record.to_document()


@router.post("/{request_id}/receive")
def receive_jig_items(
    request_id: str,
    payload: QuantityReceipt,
    current_user: CurrentUser = Depends(PermissionChecker("canSaveRequests")),
    workspace: Workspace = Depends(get_workspace),
):
    """Book received (positive) or returned (negative) quantity."""
    result = receive_jig_items_use_case(
        workspace=workspace,
        request_id=request_id,
        quantity_change=payload.quantity_change,
        current_user=current_user,
    )
    return require_result(result, kind=KIND, record_id=request_id).record.to_document()


@router.post("/{request_id}/comments", status_code=status.HTTP_201_CREATED)
def add_jig_comment(
    request_id: str,
    payload: CommentCreate,
    current_user: CurrentUser = Depends(PermissionChecker("canComment")),
    workspace: Workspace = Depends(get_workspace),
    notifier: Notifier = Depends(get_notifier),
):
    result = add_jig_comment_use_case(
        workspace=workspace,
        notifier=notifier,
        request_id=request_id,
        text=payload.text,
        current_user=current_user,
    )
    record = require_result(result, kind=KIND, record_id=request_id).record
    return record.comments[-1].to_document()
