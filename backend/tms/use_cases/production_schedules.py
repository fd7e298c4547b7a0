"""Production schedule use-cases."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime

from ..domain_errors import remote_write_failed
from ..schemas import ProductionSchedule
from ..services.ledger import iso_timestamp
from ..services.workspace import SCHEDULES_COLLECTION, Workspace
from ..store import StoreError, Transaction

logger = logging.getLogger(__name__)


def replace_schedules_use_case(
    *,
    workspace: Workspace,
    schedules: list[ProductionSchedule],
    at: datetime | None = None,
) -> list[ProductionSchedule]:
    """Replace every schedule of the uploaded plan dates with the uploaded rows.

    Rows of other plan dates are untouched. Deletion and insertion commit
    together.
    """
    store = workspace.store
    failure_message = "생산일정 저장에 실패했습니다."
    plan_dates = sorted({schedule.plan_date for schedule in schedules})
    if not plan_dates:
        return []

    ts = iso_timestamp(at)
    rows = [
        schedule.model_copy(update={"id": uuid.uuid4().hex, "created_at": ts, "updated_at": ts})
        for schedule in schedules
    ]

    try:
        stale_ids = [
            snapshot.id
            for snapshot in store.query(SCHEDULES_COLLECTION, filters=[("planDate", "in", plan_dates)])
        ]

        def replace(transaction: Transaction) -> None:
            for doc_id in stale_ids:
                transaction.delete(SCHEDULES_COLLECTION, doc_id)
            for row in rows:
                transaction.set(SCHEDULES_COLLECTION, row.id, row.to_document())

        store.run_transaction(replace)
    except StoreError as e:
        logger.error(f"Failed to replace schedules for {plan_dates}: {e}", exc_info=True)
        workspace.publish(failure_message, level="error")
        raise remote_write_failed(failure_message)

    logger.info(f"Replaced {len(stale_ids)} schedules with {len(rows)} for {len(plan_dates)} plan dates")
    workspace.publish(f"생산일정 {len(rows)}건이 저장되었습니다.", level="success")
    return rows


def delete_schedule_use_case(*, workspace: Workspace, schedule_id: str) -> None:
    failure_message = "생산일정 삭제에 실패했습니다."
    try:
        workspace.store.delete(SCHEDULES_COLLECTION, schedule_id)
    except StoreError as e:
        logger.error(f"Failed to delete schedule {schedule_id}: {e}", exc_info=True)
        workspace.publish(failure_message, level="error")
        raise remote_write_failed(failure_message, entity_id=schedule_id)
    workspace.publish("생산일정이 삭제되었습니다.", level="success")
