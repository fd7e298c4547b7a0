"""Jig catalogue endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from ..auth import CurrentUser, PermissionChecker, get_current_user
from ..dependencies import get_workspace
from ..schemas import JigMasterCreate, JigMasterUpdate
from ..services.workspace import Workspace
from ..use_cases.jig_masters import (
    create_jig_master_use_case,
    delete_jig_master_use_case,
    get_jig_master_or_404,
    update_jig_master_use_case,
)

router = APIRouter(prefix="/jig-masters", tags=["jig-masters"])


@router.get("")
def list_jig_masters(
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
):
    """Newest catalogue entries first."""
    return [item.to_document() for item in workspace.jig_masters]


@router.get("/{item_id}")
def get_jig_master(
    item_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
):
    return get_jig_master_or_404(workspace=workspace, item_id=item_id).to_document()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_jig_master(
    payload: JigMasterCreate,
    current_user: CurrentUser = Depends(PermissionChecker("canSaveRequests")),
    workspace: Workspace = Depends(get_workspace),
):
    return create_jig_master_use_case(workspace=workspace, payload=payload, current_user=current_user).to_document()


@router.patch("/{item_id}")
def update_jig_master(
    item_id: str,
    payload: JigMasterUpdate,
    current_user: CurrentUser = Depends(PermissionChecker("canSaveRequests")),
    workspace: Workspace = Depends(get_workspace),
):
    return update_jig_master_use_case(workspace=workspace, item_id=item_id, payload=payload).to_document()


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_jig_master(
    item_id: str,
    current_user: CurrentUser = Depends(PermissionChecker("canDeleteData")),
    workspace: Workspace = Depends(get_workspace),
):
    delete_jig_master_use_case(workspace=workspace, item_id=item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
