"""Master data endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..auth import CurrentUser, PermissionChecker, get_current_user
from ..dependencies import get_workspace
from ..schemas import MasterDataItem, MasterDataListReplace
from ..services.workspace import Workspace
from ..use_cases.master_data import (
    add_master_item_use_case,
    delete_master_item_use_case,
    edit_master_item_use_case,
    get_master_data_use_case,
    replace_master_list_use_case,
)

router = APIRouter(prefix="/master-data", tags=["master-data"])


@router.get("")
def get_master_data(
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
):
    return get_master_data_use_case(workspace=workspace).to_document()


@router.put("/{list_name}")
def replace_master_list(
    list_name: str,
    payload: MasterDataListReplace,
    current_user: CurrentUser = Depends(PermissionChecker("canManageMasterData")),
    workspace: Workspace = Depends(get_workspace),
):
    return replace_master_list_use_case(workspace=workspace, list_name=list_name, items=payload.items)


@router.post("/{list_name}/items")
def add_master_item(
    list_name: str,
    payload: MasterDataItem,
    current_user: CurrentUser = Depends(PermissionChecker("canManageMasterData")),
    workspace: Workspace = Depends(get_workspace),
):
    return add_master_item_use_case(workspace=workspace, list_name=list_name, item=payload.item)


@router.put("/{list_name}/items/{index}")
def edit_master_item(
    list_name: str,
    index: int,
    payload: MasterDataItem,
    current_user: CurrentUser = Depends(PermissionChecker("canManageMasterData")),
    workspace: Workspace = Depends(get_workspace),
):
    return edit_master_item_use_case(workspace=workspace, list_name=list_name, index=index, item=payload.item)


@router.delete("/{list_name}/items/{index}")
def delete_master_item(
    list_name: str,
    index: int,
    current_user: CurrentUser = Depends(PermissionChecker("canManageMasterData")),
    workspace: Workspace = Depends(get_workspace),
):
    return delete_master_item_use_case(workspace=workspace, list_name=list_name, index=index)
