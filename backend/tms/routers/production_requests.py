"""Production request endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from ..auth import CurrentUser, PermissionChecker, get_current_user
from ..dependencies import get_notifier, get_workspace
from ..domain_errors import not_found
from ..schemas import (
    CommentCreate,
    ProductionRequest,
    ProductionRequestCreate,
    ProductionRequestUpdate,
    StatusChange,
)
from ..services.ledger import has_unread_comments
from ..services.notifier import Notifier
from ..services.workspace import Workspace
from ..use_cases.production_requests import (
    add_production_comment_use_case,
    create_production_request_use_case,
    delete_production_request_use_case,
    edit_production_request_use_case,
    mark_production_comments_read_use_case,
    update_production_status_use_case,
)
from ..use_cases.record_mutations import require_result

router = APIRouter(prefix="/production-requests", tags=["production-requests"])

KIND = ProductionRequest.KIND


def _with_unread(record: ProductionRequest, user_id: str) -> dict:
    document = record.to_document()
    document["hasUnreadComments"] = has_unread_comments(record, user_id)
    return document


@router.get("")
def list_production_requests(
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
):
    return [_with_unread(r, current_user.uid) for r in workspace.records(KIND)]


@router.get("/{request_id}")
def get_production_request(
    request_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
):
    record = workspace.open_detail(current_user.uid, KIND, request_id)
    if record is None:
        raise not_found("PRODUCTION_NOT_FOUND", f"ProductionRequest {request_id} not found")
    return _with_unread(record, current_user.uid)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_production_request(
    payload: ProductionRequestCreate,
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
    notifier: Notifier = Depends(get_notifier),
):
    record = create_production_request_use_case(
        workspace=workspace, notifier=notifier, payload=payload, current_user=current_user
    )
    return record.to_document()


@router.patch("/{request_id}")
def edit_production_request(
    request_id: str,
    payload: ProductionRequestUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
):
    result = edit_production_request_use_case(
        workspace=workspace, request_id=request_id, payload=payload, current_user=current_user
    )
    return require_result(result, kind=KIND, record_id=request_id).record.to_document()


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_production_request(
    request_id: str,
    current_user: CurrentUser = Depends(PermissionChecker("canDeleteProductionRequests")),
    workspace: Workspace = Depends(get_workspace),
):
    if not delete_production_request_use_case(workspace=workspace, request_id=request_id):
        raise not_found("PRODUCTION_NOT_FOUND", f"ProductionRequest {request_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{request_id}/status")
def update_production_status(
    request_id: str,
    payload: StatusChange,
    force: bool = Query(False),
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
    notifier: Notifier = Depends(get_notifier),
):
    result = update_production_status_use_case(
        workspace=workspace,
        notifier=notifier,
        request_id=request_id,
        status=payload.status,
        reason=payload.reason,
        current_user=current_user,
        force=force,
    )
    return require_result(result, kind=KIND, record_id=request_id).record.to_document()


@router.post("/{request_id}/comments", status_code=status.HTTP_201_CREATED)
def add_production_comment(
    request_id: str,
    payload: CommentCreate,
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
    notifier: Notifier = Depends(get_notifier),
):
    result = add_production_comment_use_case(
        workspace=workspace,
        notifier=notifier,
        request_id=request_id,
        text=payload.text,
        current_user=current_user,
    )
    record = require_result(result, kind=KIND, record_id=request_id).record
    return record.comments[-1].to_document()


@router.post("/{request_id}/comments/read")
def mark_production_comments_read(
    request_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
):
    result = mark_production_comments_read_use_case(
        workspace=workspace, request_id=request_id, current_user=current_user
    )
    record = require_result(result, kind=KIND, record_id=request_id).record
    return _with_unread(record, current_user.uid)
