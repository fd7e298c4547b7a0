from __future__ import annotations

from datetime import datetime, timezone

import pytest

from tms.schemas import JigRequestCreate
from tms.services.notifier import NOTIFICATIONS_COLLECTION, Notifier
from tms.services.workspace import Workspace
from tms.store import DocumentStore, StoreError
from tms.use_cases.jig_requests import (
    add_jig_comment_use_case,
    create_jig_request_use_case,
    receive_jig_items_use_case,
    update_jig_status_use_case,
)
from tms.use_cases.optimistic import apply_optimistic

AT = datetime(2025, 3, 7, 1, 0, tzinfo=timezone.utc)


class FlakyStore(DocumentStore):
    """Store whose single-document updates can be switched to fail."""

    fail_updates = False

    def update(self, collection, doc_id, fields):
        if self.fail_updates:
            raise StoreError("write rejected")
        super().update(collection, doc_id, fields)


@pytest.fixture
def flaky_store(session_factory) -> FlakyStore:
    return FlakyStore(session_factory, backoff_seconds=0)


@pytest.fixture
def flaky_workspace(flaky_store):
    with Workspace(flaky_store, poll_seconds=0) as ws:
        yield ws


@pytest.fixture
def jig(flaky_workspace, flaky_store, manager):
    return create_jig_request_use_case(
        workspace=flaky_workspace,
        notifier=Notifier(flaky_store),
        payload=JigRequestCreate(item_name="테이프지그", quantity=100),
        current_user=manager,
        at=AT,
    )


def _notification_count(store) -> int:
    return len(store.query(NOTIFICATIONS_COLLECTION))


def test_successful_write_keeps_the_change(flaky_workspace, flaky_store, jig, manager) -> None:
    result = update_jig_status_use_case(
        workspace=flaky_workspace,
        notifier=Notifier(flaky_store),
        request_id=jig.id,
        status="진행중",
        current_user=manager,
        at=AT,
    )

    assert result.ok
    assert result.notice.level == "success"
    assert flaky_workspace.find("jig", jig.id).status == "진행중"
    assert flaky_store.get("jig-requests", jig.id).get("status") == "진행중"


def test_failed_status_write_restores_list_and_detail(flaky_workspace, flaky_store, jig, manager) -> None:
    flaky_workspace.open_detail(manager.uid, "jig", jig.id)
    before = flaky_workspace.find("jig", jig.id)
    notifications_before = _notification_count(flaky_store)
    flaky_store.fail_updates = True

    result = update_jig_status_use_case(
        workspace=flaky_workspace,
        notifier=Notifier(flaky_store),
        request_id=jig.id,
        status="진행중",
        current_user=manager,
        at=AT,
    )

    assert result.ok is False
    assert result.record == before
    assert flaky_workspace.find("jig", jig.id) == before
    assert flaky_workspace.detail(manager.uid) == before
    assert flaky_workspace.notices()[-1].level == "error"
    assert flaky_workspace.notices()[-1].message == "상태 업데이트에 실패했습니다. 변경사항이 되돌려집니다."
    assert _notification_count(flaky_store) == notifications_before


def test_failed_receipt_and_comment_roll_back(flaky_workspace, flaky_store, jig, manager) -> None:
    before = flaky_workspace.find("jig", jig.id)
    flaky_store.fail_updates = True

    receipt = receive_jig_items_use_case(
        workspace=flaky_workspace,
        request_id=jig.id,
        quantity_change=40,
        current_user=manager,
        at=AT,
    )
    comment = add_jig_comment_use_case(
        workspace=flaky_workspace,
        notifier=Notifier(flaky_store),
        request_id=jig.id,
        text="확인",
        current_user=manager,
        at=AT,
    )

    assert receipt.ok is False
    assert comment.ok is False
    assert flaky_workspace.find("jig", jig.id) == before
    assert flaky_store.get("jig-requests", jig.id).get("receivedQuantity") == 0


def test_missing_record_is_reported_as_none(flaky_workspace) -> None:
    result = apply_optimistic(
        flaky_workspace,
        kind="jig",
        record_id="T404",
        change=lambda r: r,
        persist=lambda original, updated: None,
        failure_message="failed",
    )
    assert result is None


def test_unexpected_errors_still_restore_and_propagate(flaky_workspace, jig) -> None:
    before = flaky_workspace.find("jig", jig.id)

    def persist(_original, _updated):
        raise RuntimeError("bug")

    with pytest.raises(RuntimeError):
        apply_optimistic(
            flaky_workspace,
            kind="jig",
            record_id=jig.id,
            change=lambda r: r.model_copy(update={"remarks": "changed"}),
            persist=persist,
            failure_message="failed",
        )
    assert flaky_workspace.find("jig", jig.id) == before
