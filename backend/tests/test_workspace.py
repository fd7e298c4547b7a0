from __future__ import annotations

import time

from tms.schemas import JigRequest
from tms.services.workspace import MASTER_DATA_COLLECTION, MASTER_DATA_DOC, SCHEDULES_COLLECTION, Workspace
from tms.store import DocumentStore

JIGS = JigRequest.COLLECTION


def _jig_doc(item_name: str, request_date: str, status: str = "요청") -> dict:
    return {
        "status": status,
        "requestDate": request_date,
        "itemName": item_name,
        "quantity": 10,
        "history": [{"status": status, "date": request_date, "user": "김관리", "reason": "생성됨"}],
    }


def test_open_and_close_manage_subscriptions(store) -> None:
    workspace = Workspace(store, poll_seconds=0)
    assert not workspace.is_open

    with workspace:
        assert workspace.is_open
        assert store.subscription_count() == 9
        assert store.subscription_count(JIGS) == 1

    assert not workspace.is_open
    assert store.subscription_count() == 0


def test_snapshots_keep_records_newest_first(store, workspace) -> None:
    store.set(JIGS, "T1", _jig_doc("older", "2025-03-01T00:00:00.000Z"))
    store.set(JIGS, "T2", _jig_doc("newer", "2025-03-02T00:00:00.000Z"))

    assert [r.id for r in workspace.records("jig")] == ["T2", "T1"]

    store.delete(JIGS, "T1")
    assert [r.id for r in workspace.records("jig")] == ["T2"]


def test_malformed_documents_are_skipped(store, workspace) -> None:
    store.set(JIGS, "T1", _jig_doc("ok", "2025-03-01T00:00:00.000Z"))
    store.set(JIGS, "T9", {"requestDate": "2025-03-02T00:00:00.000Z", "status": "알수없음"})

    assert [r.id for r in workspace.records("jig")] == ["T1"]


def test_remote_snapshot_overwrites_local_replacement(store, workspace) -> None:
    store.set(JIGS, "T1", _jig_doc("remote", "2025-03-01T00:00:00.000Z"))
    local = workspace.find("jig", "T1").model_copy(update={"item_name": "local"})

    workspace.replace("jig", local)
    assert workspace.find("jig", "T1").item_name == "local"

    store.update(JIGS, "T1", {"remarks": "changed elsewhere"})
    cached = workspace.find("jig", "T1")
    assert cached.item_name == "remote"
    assert cached.remarks == "changed elsewhere"


def test_detail_views_follow_their_record(store, workspace) -> None:
    store.set(JIGS, "T1", _jig_doc("first", "2025-03-01T00:00:00.000Z"))
    store.set(JIGS, "T2", _jig_doc("second", "2025-03-02T00:00:00.000Z"))

    assert workspace.open_detail("viewer-a", "jig", "T1").item_name == "first"
    assert workspace.open_detail("viewer-b", "jig", "T2").item_name == "second"
    assert workspace.open_detail("viewer-c", "jig", "T404") is None

    store.update(JIGS, "T1", {"status": "진행중"})
    assert workspace.detail("viewer-a").status == "진행중"
    assert workspace.detail("viewer-b").status == "요청"

    workspace.remove("jig", "T2")
    assert workspace.detail("viewer-b") is None

    workspace.close_detail("viewer-a")
    assert workspace.detail("viewer-a") is None


def test_schedules_and_master_data_are_cached(store, workspace) -> None:
    store.set(SCHEDULES_COLLECTION, "s1", {"planDate": "2025-03-07", "productName": "커버"})
    store.set(MASTER_DATA_COLLECTION, MASTER_DATA_DOC, {"requestTypes": ["신규", "수리"]})

    assert [s.product_name for s in workspace.schedules] == ["커버"]
    assert workspace.schedules[0].id == "s1"
    assert workspace.master_data.request_types == ["신규", "수리"]


def test_notice_log_is_bounded(store) -> None:
    workspace = Workspace(store, notice_log_size=2, poll_seconds=0)

    workspace.publish("one")
    workspace.publish("two", level="success")
    notice = workspace.publish("three", level="error")

    assert [n.message for n in workspace.notices()] == ["two", "three"]
    assert notice.level == "error"


def test_background_poll_brings_in_writes_from_other_processes(store, session_factory) -> None:
    elsewhere = DocumentStore(session_factory, backoff_seconds=0)

    with Workspace(store, poll_seconds=0.05) as workspace:
        elsewhere.set(JIGS, "T7", _jig_doc("worker", "2025-03-01T00:00:00.000Z"))
        deadline = time.monotonic() + 5
        while workspace.find("jig", "T7") is None and time.monotonic() < deadline:
            time.sleep(0.02)

        assert workspace.find("jig", "T7").item_name == "worker"
        poller = workspace._poller
        assert poller.is_alive()

    assert not poller.is_alive()
