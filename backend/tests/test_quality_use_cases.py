from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

from tms.schemas import QualityInspectionCreate, QualityInspectionUpdate
from tms.services.id_allocator import COUNTERS_COLLECTION, QUALITY_COUNTER
from tms.services.notifier import NOTIFICATIONS_COLLECTION, Notifier
from tms.services.workspace import Workspace
from tms.store import DocumentStore
from tms.use_cases.quality_inspections import (
    add_inspection_group_comment_use_case,
    create_quality_inspection_use_case,
    delete_inspection_group_use_case,
    latest_inspection,
    update_quality_inspection_use_case,
)

AT = datetime(2025, 3, 7, 1, 0, tzinfo=timezone.utc)


def _inspect(workspace, notifier, manager, order_number: str, *, at=AT, inspection_type="incoming"):
    return create_quality_inspection_use_case(
        workspace=workspace,
        notifier=notifier,
        payload=QualityInspectionCreate(
            inspection_type=inspection_type,
            order_number=order_number,
            product_name="하우징",
            details={"checklist": {"appearance": "ok"}},
        ),
        current_user=manager,
        at=at,
    )


def test_inspections_of_one_order_share_a_sequential_id(store, workspace, notifier, manager) -> None:
    first = _inspect(workspace, notifier, manager, "ORD-1")
    second = _inspect(workspace, notifier, manager, " ORD-1 ", inspection_type="outgoing")
    other = _inspect(workspace, notifier, manager, "ORD-2")

    assert first.sequential_id == 1
    assert second.sequential_id == 1
    assert second.order_number == "ORD-1"
    assert other.sequential_id == 2
    assert store.get(COUNTERS_COLLECTION, QUALITY_COUNTER).get("count") == 2
    assert first.status == "생성됨"
    assert first.inspector == "김관리"
    assert first.history[0].reason == "신규 검사 등록"
    assert store.get("quality-inspections", first.id).get("details") == {"checklist": {"appearance": "ok"}}


def test_placeholder_and_blank_order_numbers_draw_no_number(store, workspace, notifier, manager) -> None:
    placeholder = _inspect(workspace, notifier, manager, "T")
    blank = _inspect(workspace, notifier, manager, "")

    assert placeholder.sequential_id is None
    assert blank.sequential_id is None
    assert store.get(COUNTERS_COLLECTION, QUALITY_COUNTER).exists is False
    assert {r.id for r in workspace.records("quality")} == {placeholder.id, blank.id}


def test_creation_notifies_with_order_number(store, workspace, notifier, manager) -> None:
    _inspect(workspace, notifier, manager, "ORD-1")

    notification = store.query(NOTIFICATIONS_COLLECTION)[0]
    assert notification.get("type") == "quality"
    assert notification.get("requestId") == "ORD-1"
    assert notification.get("message") == "신규 incoming 품질검사 '하우징'이(가) 등록되었습니다."


def test_result_change_is_spelled_out(store, workspace, notifier, manager) -> None:
    inspection = _inspect(workspace, notifier, manager, "ORD-1")

    result = update_quality_inspection_use_case(
        workspace=workspace,
        inspection_id=inspection.id,
        payload=QualityInspectionUpdate(status="불합격", result_reason="도장 불량"),
        current_user=manager,
        at=AT,
    )
    assert result.record.status == "불합격"
    assert result.record.history[-1].reason == "결과: '생성됨'에서 '불합격'(으)로 변경"
    assert store.get("quality-inspections", inspection.id).get("resultReason") == "도장 불량"

    plain = update_quality_inspection_use_case(
        workspace=workspace,
        inspection_id=inspection.id,
        payload=QualityInspectionUpdate(part_name="프레임"),
        current_user=manager,
        at=AT + timedelta(minutes=1),
    )
    assert plain.record.status == "불합격"
    assert plain.record.history[-1].reason == "사용자에 의해 수정됨"


def test_group_comment_lands_on_latest_inspection(store, workspace, notifier, manager) -> None:
    older = _inspect(workspace, notifier, manager, "ORD-1")
    newer = _inspect(workspace, notifier, manager, "ORD-1", at=AT + timedelta(hours=1))
    assert latest_inspection(workspace, "ORD-1").id == newer.id

    result = add_inspection_group_comment_use_case(
        workspace=workspace, notifier=notifier, order_number="ORD-1", text="재검 필요", current_user=manager,
        at=AT + timedelta(hours=2),
    )

    assert result.record.id == newer.id
    assert store.get("quality-inspections", newer.id).get("comments")[0]["id"].startswith("QC-")
    assert store.get("quality-inspections", older.id).get("comments") == []
    latest_notification = store.query(NOTIFICATIONS_COLLECTION, order_by="date", descending=True)[0]
    assert latest_notification.get("message") == "품질검사 '하우징'에 새 댓글이 달렸습니다."
    assert latest_notification.get("requestId") == "ORD-1"

    assert (
        add_inspection_group_comment_use_case(
            workspace=workspace, notifier=notifier, order_number="ORD-404", text="x", current_user=manager
        )
        is None
    )


def test_delete_group_removes_every_inspection_of_the_order(store, workspace, notifier, manager) -> None:
    _inspect(workspace, notifier, manager, "ORD-1")
    _inspect(workspace, notifier, manager, "ORD-1")
    keep = _inspect(workspace, notifier, manager, "ORD-2")

    assert delete_inspection_group_use_case(workspace=workspace, order_number="ORD-1") == 2
    assert [s.id for s in store.query("quality-inspections")] == [keep.id]
    assert [r.id for r in workspace.records("quality")] == [keep.id]

    assert delete_inspection_group_use_case(workspace=workspace, order_number="ORD-1") == 0
    assert workspace.notices()[-1].message == "삭제할 검사 기록이 없습니다."


def test_existing_group_without_a_number_stays_unnumbered(store, workspace, notifier, manager) -> None:
    store.set("quality-inspections", "legacy", {
        "orderNumber": "ORD-9",
        "productName": "하우징",
        "status": "합격",
        "createdAt": "2025-03-01T00:00:00.000Z",
    })

    inspection = _inspect(workspace, notifier, manager, "ORD-9")

    assert inspection.sequential_id is None
    assert store.get(COUNTERS_COLLECTION, QUALITY_COUNTER).exists is False


def test_deleted_group_draws_a_fresh_number(store, workspace, notifier, manager) -> None:
    assert _inspect(workspace, notifier, manager, "ORD-1").sequential_id == 1
    delete_inspection_group_use_case(workspace=workspace, order_number="ORD-1")

    assert _inspect(workspace, notifier, manager, "ORD-1").sequential_id == 2


def test_parallel_first_inspections_of_an_order_share_one_number(session_factory, manager) -> None:
    store = DocumentStore(session_factory, max_attempts=20, backoff_seconds=0.005)
    notifier = Notifier(store)
    results = []
    errors = []
    start = threading.Barrier(4)

    def worker(workspace):
        start.wait()
        try:
            results.append(_inspect(workspace, notifier, manager, "ORD-7"))
        except Exception as e:
            errors.append(e)

    with Workspace(store, poll_seconds=0) as workspace:
        threads = [threading.Thread(target=worker, args=(workspace,)) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    assert errors == []
    assert {r.sequential_id for r in results} == {1}
    assert store.get(COUNTERS_COLLECTION, QUALITY_COUNTER).get("count") == 1
    assert len(store.query("quality-inspections")) == 4
