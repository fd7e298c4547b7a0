"""Master data use-cases.

Every change rewrites one whole list and merges it into the singleton
document, so concurrent edits of different lists never clobber each other.
"""
from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from ..domain_errors import DomainError, remote_write_failed
from ..schemas import MASTER_DATA_LISTS, MasterData
from ..services.workspace import MASTER_DATA_COLLECTION, MASTER_DATA_DOC, Workspace
from ..store import StoreError

logger = logging.getLogger(__name__)

UPDATED = "마스터 데이터가 업데이트되었습니다."
UPDATE_FAILED = "마스터 데이터 업데이트에 실패했습니다."


def _list_model(list_name: str):
    model = MASTER_DATA_LISTS.get(list_name)
    if model is None:
        raise DomainError(
            code="MASTER_DATA_LIST_NOT_FOUND",
            http_status=404,
            message=f"Unknown master data list: {list_name}",
        )
    return model


def _validate_item(list_name: str, item: Any) -> Any:
    model = _list_model(list_name)
    if model is str:
        if not isinstance(item, str) or not item.strip():
            raise DomainError(
                code="INVALID_MASTER_DATA_ITEM",
                http_status=422,
                message=f"{list_name} entries must be non-empty strings",
            )
        return item.strip()
    try:
        return model.model_validate(item).to_document()
    except ValidationError as e:
        raise DomainError(
            code="INVALID_MASTER_DATA_ITEM",
            http_status=422,
            message=f"Invalid {list_name} entry",
            details={"errors": e.errors(include_url=False, include_context=False)},
        )


def get_master_data_use_case(*, workspace: Workspace) -> MasterData:
    snapshot = workspace.store.get(MASTER_DATA_COLLECTION, MASTER_DATA_DOC)
    return MasterData.model_validate(snapshot.to_dict())


def _current_list(workspace: Workspace, list_name: str) -> list[Any]:
    _list_model(list_name)
    snapshot = workspace.store.get(MASTER_DATA_COLLECTION, MASTER_DATA_DOC)
    return list(snapshot.get(list_name) or [])


def replace_master_list_use_case(*, workspace: Workspace, list_name: str, items: list[Any]) -> list[Any]:
    validated = [_validate_item(list_name, item) for item in items]
    try:
        workspace.store.set(MASTER_DATA_COLLECTION, MASTER_DATA_DOC, {list_name: validated}, merge=True)
    except StoreError as e:
        logger.error(f"Failed to update master data list {list_name}: {e}", exc_info=True)
        workspace.publish(UPDATE_FAILED, level="error")
        raise remote_write_failed(UPDATE_FAILED)
    workspace.publish(UPDATED, level="success")
    return validated


def _index_or_404(items: list[Any], index: int, list_name: str) -> None:
    if not 0 <= index < len(items):
        raise DomainError(
            code="MASTER_DATA_ITEM_NOT_FOUND",
            http_status=404,
            message=f"{list_name} has no item at index {index}",
        )


def add_master_item_use_case(*, workspace: Workspace, list_name: str, item: Any) -> list[Any]:
    items = _current_list(workspace, list_name)
    return replace_master_list_use_case(workspace=workspace, list_name=list_name, items=[*items, item])


def edit_master_item_use_case(*, workspace: Workspace, list_name: str, index: int, item: Any) -> list[Any]:
    items = _current_list(workspace, list_name)
    _index_or_404(items, index, list_name)
    items[index] = item
    return replace_master_list_use_case(workspace=workspace, list_name=list_name, items=items)


def delete_master_item_use_case(*, workspace: Workspace, list_name: str, index: int) -> list[Any]:
    items = _current_list(workspace, list_name)
    _index_or_404(items, index, list_name)
    del items[index]
    return replace_master_list_use_case(workspace=workspace, list_name=list_name, items=items)
