"""Jig catalogue use-cases.

Catalogue entries describe the jigs new requests are built from; they
carry no status or history.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime

from ..auth import CurrentUser
from ..domain_errors import not_found, remote_write_failed
from ..schemas import JigMasterCreate, JigMasterItem, JigMasterUpdate, UserRef
from ..services.ledger import iso_timestamp
from ..services.workspace import JIG_MASTERS_COLLECTION, Workspace
from ..store import StoreError

logger = logging.getLogger(__name__)


def get_jig_master_or_404(*, workspace: Workspace, item_id: str) -> JigMasterItem:
    item = workspace.find_jig_master(item_id)
    if item is None:
        raise not_found("JIG_MASTER_NOT_FOUND", f"JigMasterItem {item_id} not found")
    return item


def create_jig_master_use_case(
    *,
    workspace: Workspace,
    payload: JigMasterCreate,
    current_user: CurrentUser,
    at: datetime | None = None,
) -> JigMasterItem:
    item = JigMasterItem(
        **payload.model_dump(),
        id=uuid.uuid4().hex,
        created_at=iso_timestamp(at),
        created_by=UserRef(uid=current_user.uid, display_name=current_user.name),
    )
    try:
        workspace.store.add(JIG_MASTERS_COLLECTION, item.to_document(), doc_id=item.id)
    except StoreError as e:
        logger.error(f"Failed to register jig {item.item_name!r}: {e}", exc_info=True)
        workspace.publish("신규 지그 등록에 실패했습니다.", level="error")
        raise remote_write_failed("신규 지그 등록에 실패했습니다.")
    workspace.publish("신규 지그가 성공적으로 등록되었습니다.", level="success")
    return item


def update_jig_master_use_case(
    *,
    workspace: Workspace,
    item_id: str,
    payload: JigMasterUpdate,
) -> JigMasterItem:
    current = get_jig_master_or_404(workspace=workspace, item_id=item_id)
    updates = payload.model_dump(exclude_unset=True, exclude_none=True)
    updated = JigMasterItem.model_validate({**current.model_dump(), **updates})
    if not updates:
        return updated
    fields = updated.model_dump(mode="json", by_alias=True, include=set(updates))
    try:
        workspace.store.update(JIG_MASTERS_COLLECTION, item_id, fields)
    except StoreError as e:
        logger.error(f"Failed to update jig master {item_id}: {e}", exc_info=True)
        workspace.publish("지그 정보 업데이트에 실패했습니다.", level="error")
        raise remote_write_failed("지그 정보 업데이트에 실패했습니다.", entity_id=item_id)
    workspace.publish("지그 정보가 성공적으로 업데이트되었습니다.", level="success")
    return updated


def delete_jig_master_use_case(*, workspace: Workspace, item_id: str) -> None:
    get_jig_master_or_404(workspace=workspace, item_id=item_id)
    try:
        workspace.store.delete(JIG_MASTERS_COLLECTION, item_id)
    except StoreError as e:
        logger.error(f"Failed to delete jig master {item_id}: {e}", exc_info=True)
        workspace.publish("지그 삭제에 실패했습니다.", level="error")
        raise remote_write_failed("지그 삭제에 실패했습니다.", entity_id=item_id)
    workspace.publish("지그가 삭제되었습니다.", level="success")
