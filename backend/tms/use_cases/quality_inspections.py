"""Quality inspection use-cases.

Inspections of the same order number form a group that shares one
``sequentialId``; group-level actions (comments, deletion) address the
order number rather than a single inspection.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime

from ..auth import CurrentUser
from ..domain_errors import remote_write_failed
from ..schemas import (
    InspectionStatus,
    QualityInspection,
    QualityInspectionCreate,
    QualityInspectionUpdate,
)
from ..services.id_allocator import COUNTERS_COLLECTION, QUALITY_COUNTER, read_counter
from ..services.ledger import EDITED_REASON, initial_history, iso_timestamp, parse_timestamp
from ..services.notifier import Notifier
from ..services.workspace import Workspace
from ..store import DocumentStore, StoreError, Transaction
from .optimistic import MutationResult
from .record_mutations import change_status, edit_record, post_comment

logger = logging.getLogger(__name__)

KIND = QualityInspection.KIND
COLLECTION = QualityInspection.COLLECTION
# One marker per order number; concurrent first inspections collide on it.
GROUPS_COLLECTION = "quality-order-groups"
CREATED_REASON = "신규 검사 등록"
# Order number typed while the real one is still unknown.
PLACEHOLDER_ORDER_NUMBER = "T"


def group_sequential_id(store: DocumentStore, order_number: str) -> tuple[bool, int | None]:
    """Whether inspections of ``order_number`` exist, and the number they share.

    A group registered without a number stays unnumbered.
    """
    members = store.query(COLLECTION, filters=[("orderNumber", "==", order_number)])
    for snapshot in members:
        sequential_id = snapshot.get("sequentialId")
        if sequential_id is not None:
            return True, int(sequential_id)
    return bool(members), None


def create_quality_inspection_use_case(
    *,
    workspace: Workspace,
    notifier: Notifier,
    payload: QualityInspectionCreate,
    current_user: CurrentUser,
    at: datetime | None = None,
) -> QualityInspection:
    """Register an inspection; a new order number draws the next group number."""
    store = workspace.store
    fields = payload.model_dump()
    fields["order_number"] = payload.order_number.strip()
    order_number = fields["order_number"]
    created_at = iso_timestamp(at)
    doc_id = uuid.uuid4().hex

    def build(sequential_id: int | None) -> QualityInspection:
        return QualityInspection(
            **fields,
            id=doc_id,
            status=InspectionStatus.CREATED,
            created_at=created_at,
            inspector=current_user.name,
            sequential_id=sequential_id,
            history=initial_history(InspectionStatus.CREATED.value, current_user.name, CREATED_REASON, at=at),
            comments=[],
        )

    def register(transaction: Transaction) -> int | None:
        transaction.get(GROUPS_COLLECTION, order_number)
        exists, sequential_id = group_sequential_id(store, order_number)
        if not exists:
            sequential_id = read_counter(transaction, QUALITY_COUNTER) + 1
            transaction.set(COUNTERS_COLLECTION, QUALITY_COUNTER, {"count": sequential_id})
            transaction.set(GROUPS_COLLECTION, order_number, {"sequentialId": sequential_id})
        transaction.create(COLLECTION, doc_id, build(sequential_id).to_document())
        return sequential_id

    try:
        if order_number and order_number != PLACEHOLDER_ORDER_NUMBER:
            sequential_id = store.run_transaction(register)
        else:
            sequential_id = None
            store.add(COLLECTION, build(None).to_document(), doc_id=doc_id)
    except StoreError as e:
        logger.error(f"Failed to create quality inspection for {order_number!r}: {e}", exc_info=True)
        workspace.publish("검사 정보 등록에 실패했습니다.", level="error")
        raise

    record = build(sequential_id)
    if workspace.find(KIND, doc_id) is None:
        workspace.insert(KIND, record)
    notifier.notify(
        QualityInspection.NOTIFICATION_TYPE,
        f"신규 {record.inspection_type.value} 품질검사 '{record.product_name}'이(가) 등록되었습니다.",
        order_number,
        at=at,
    )
    workspace.publish("검사 정보가 성공적으로 등록되었습니다.", level="success")
    return record


def update_quality_inspection_use_case(
    *,
    workspace: Workspace,
    inspection_id: str,
    payload: QualityInspectionUpdate,
    current_user: CurrentUser,
    reason: str | None = None,
    at: datetime | None = None,
) -> MutationResult | None:
    """Edit an inspection; a changed result is spelled out in the history."""
    updates = payload.model_dump(exclude_unset=True)
    new_status = updates.pop("status", None)
    new_value = InspectionStatus(new_status).value if new_status is not None else None

    def describe(record: QualityInspection) -> str:
        if new_value is not None and record.status != new_value:
            return f"결과: '{record.status}'에서 '{new_value}'(으)로 변경"
        return reason or EDITED_REASON

    return edit_record(
        workspace=workspace,
        kind=KIND,
        record_id=inspection_id,
        updates=updates,
        current_user=current_user,
        reason=describe,
        status=new_value,
        success_message="검사 정보가 성공적으로 업데이트되었습니다.",
        failure_message="검사 정보 업데이트에 실패했습니다. 변경사항이 되돌려집니다.",
        at=at,
    )


def update_quality_status_use_case(
    *,
    workspace: Workspace,
    notifier: Notifier,
    inspection_id: str,
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
        record_id=inspection_id,
        status=status,
        current_user=current_user,
        reason=reason,
        force=force,
        at=at,
    )


def latest_inspection(workspace: Workspace, order_number: str) -> QualityInspection | None:
    group = [r for r in workspace.records(KIND) if r.order_number == order_number]
    if not group:
        return None
    return max(group, key=lambda r: parse_timestamp(r.created_at))


def add_inspection_group_comment_use_case(
    *,
    workspace: Workspace,
    notifier: Notifier,
    order_number: str,
    text: str,
    current_user: CurrentUser,
    at: datetime | None = None,
) -> MutationResult | None:
    """Comment on the group; the thread lives on its most recent inspection."""
    latest = latest_inspection(workspace, order_number)
    if latest is None:
        return None
    return post_comment(
        workspace=workspace,
        notifier=notifier,
        kind=KIND,
        record_id=latest.id,
        text=text,
        current_user=current_user,
        notify_message=lambda r: f"품질검사 '{r.product_name}'에 새 댓글이 달렸습니다.",
        notify_request_id=order_number,
        at=at,
    )


def delete_inspection_group_use_case(*, workspace: Workspace, order_number: str) -> int:
    """Delete every inspection of an order number in one batch; returns the count."""
    store = workspace.store
    failure_message = "검사 기록 삭제에 실패했습니다."
    try:
        snapshots = store.query(COLLECTION, filters=[("orderNumber", "==", order_number)])
        if not snapshots:
            workspace.publish("삭제할 검사 기록이 없습니다.", level="info")
            return 0
        batch = store.batch()
        for snapshot in snapshots:
            batch.delete(COLLECTION, snapshot.id)
        batch.delete(GROUPS_COLLECTION, order_number)
        batch.commit()
    except StoreError as e:
        logger.error(f"Failed to delete inspection group {order_number!r}: {e}", exc_info=True)
        workspace.publish(failure_message, level="error")
        raise remote_write_failed(failure_message, entity_id=order_number)

    for snapshot in snapshots:
        workspace.remove(KIND, snapshot.id)
    workspace.publish(f"'{order_number}' 검사 기록이 삭제되었습니다.", level="success")
    return len(snapshots)
