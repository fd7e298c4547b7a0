"""Quality inspection endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from ..auth import CurrentUser, PermissionChecker, get_current_user
from ..dependencies import get_notifier, get_workspace
from ..domain_errors import not_found
from ..schemas import (
    CommentCreate,
    QualityInspection,
    QualityInspectionCreate,
    QualityInspectionUpdate,
    StatusChange,
)
from ..services.notifier import Notifier
from ..services.workspace import Workspace
from ..use_cases.quality_inspections import (
    add_inspection_group_comment_use_case,
    create_quality_inspection_use_case,
    delete_inspection_group_use_case,
    update_quality_inspection_use_case,
    update_quality_status_use_case,
)
from ..use_cases.record_mutations import require_result

router = APIRouter(prefix="/quality-inspections", tags=["quality-inspections"])

KIND = QualityInspection.KIND


@router.get("")
def list_quality_inspections(
    order_number: str | None = Query(None, alias="orderNumber"),
    inspection_type: str | None = Query(None, alias="inspectionType"),
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
):
    records = workspace.records(KIND)
    if order_number is not None:
        records = [r for r in records if r.order_number == order_number]
    if inspection_type is not None:
        records = [r for r in records if r.inspection_type.value == inspection_type]
    return [r.to_document() for r in records]


@router.get("/{inspection_id}")
def get_quality_inspection(
    inspection_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
):
    record = workspace.open_detail(current_user.uid, KIND, inspection_id)
    if record is None:
        raise not_found("QUALITY_NOT_FOUND", f"QualityInspection {inspection_id} not found")
    return record.to_document()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_quality_inspection(
    payload: QualityInspectionCreate,
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
    notifier: Notifier = Depends(get_notifier),
):
    record = create_quality_inspection_use_case(
        workspace=workspace, notifier=notifier, payload=payload, current_user=current_user
    )
    return record.to_document()


@router.patch("/{inspection_id}")
def update_quality_inspection(
    inspection_id: str,
    payload: QualityInspectionUpdate,
    reason: str | None = Query(None),
    current_user: CurrentUser = Depends(PermissionChecker("canEditInspections")),
    workspace: Workspace = Depends(get_workspace),
):
    result = update_quality_inspection_use_case(
        workspace=workspace,
        inspection_id=inspection_id,
        payload=payload,
        reason=reason,
        current_user=current_user,
    )
    return require_result(result, kind=KIND, record_id=inspection_id).record.to_document()


@router.post("/{inspection_id}/status")
def update_quality_status(
    inspection_id: str,
    payload: StatusChange,
    force: bool = Query(False),
    current_user: CurrentUser = Depends(PermissionChecker("canEditInspections")),
    workspace: Workspace = Depends(get_workspace),
    notifier: Notifier = Depends(get_notifier),
):
    result = update_quality_status_use_case(
        workspace=workspace,
        notifier=notifier,
        inspection_id=inspection_id,
        status=payload.status,
        reason=payload.reason,
        current_user=current_user,
        force=force,
    )
    return require_result(result, kind=KIND, record_id=inspection_id).record.to_document()


@router.post("/groups/{order_number}/comments", status_code=status.HTTP_201_CREATED)
def add_inspection_group_comment(
    order_number: str,
    payload: CommentCreate,
    current_user: CurrentUser = Depends(PermissionChecker("canComment")),
    workspace: Workspace = Depends(get_workspace),
    notifier: Notifier = Depends(get_notifier),
):
    """Comment on an order's inspections; stored on the most recent one."""
    result = add_inspection_group_comment_use_case(
        workspace=workspace,
        notifier=notifier,
        order_number=order_number,
        text=payload.text,
        current_user=current_user,
    )
    if result is None:
        raise not_found("QUALITY_GROUP_NOT_FOUND", f"No inspection found for order {order_number}")
    record = require_result(result, kind=KIND, record_id=order_number).record
    return record.comments[-1].to_document()


@router.delete("/groups/{order_number}", status_code=status.HTTP_204_NO_CONTENT)
def delete_inspection_group(
    order_number: str,
    current_user: CurrentUser = Depends(PermissionChecker("canDeleteInspections")),
    workspace: Workspace = Depends(get_workspace),
):
    if delete_inspection_group_use_case(workspace=workspace, order_number=order_number) == 0:
        raise not_found("QUALITY_GROUP_NOT_FOUND", f"No inspection found for order {order_number}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
