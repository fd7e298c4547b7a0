from __future__ import annotations

from datetime import datetime, timezone

import pytest

from tms.config import settings
from tms.domain_errors import DomainError
from tms.schemas import JigRequestCreate, JigRequestUpdate
from tms.services.id_allocator import COUNTERS_COLLECTION, JIG_COUNTER
from tms.services.notifier import NOTIFICATIONS_COLLECTION
from tms.use_cases.jig_requests import (
    add_jig_comment_use_case,
    create_jig_request_use_case,
    delete_jig_request_use_case,
    edit_jig_request_use_case,
    receive_jig_items_use_case,
    update_jig_status_use_case,
)

AT = datetime(2025, 3, 7, 1, 0, tzinfo=timezone.utc)


def _messages(store) -> list[str]:
    return [s.get("message") for s in store.query(NOTIFICATIONS_COLLECTION)]


@pytest.fixture
def tape_jig(store, workspace, notifier, manager):
    store.set(COUNTERS_COLLECTION, JIG_COUNTER, {"count": 19})
    return create_jig_request_use_case(
        workspace=workspace,
        notifier=notifier,
        payload=JigRequestCreate(item_name="테이프지그", quantity=50000, requester="생산1팀"),
        current_user=manager,
        at=AT,
    )


def test_create_allocates_next_id_and_notifies(store, workspace, tape_jig) -> None:
    assert tape_jig.id == "T20"
    assert tape_jig.status == "요청"
    assert tape_jig.received_quantity == 0
    assert tape_jig.request_date == "2025-03-07T01:00:00.000Z"
    assert [(h.status, h.user, h.reason) for h in tape_jig.history] == [("요청", "김관리", "생성됨")]

    assert store.get(COUNTERS_COLLECTION, JIG_COUNTER).get("count") == 20
    assert store.get("jig-requests", "T20").get("itemName") == "테이프지그"
    assert workspace.find("jig", "T20") is not None
    assert _messages(store) == ["신규 요청 '테이프지그'이(가) 등록되었습니다."]
    assert workspace.notices()[-1].message == "신규 요청이 성공적으로 등록되었습니다."


def test_status_change_is_logged_and_announced(store, workspace, notifier, manager, tape_jig) -> None:
    result = update_jig_status_use_case(
        workspace=workspace,
        notifier=notifier,
        request_id="T20",
        status="진행중",
        reason="제작 착수",
        current_user=manager,
        at=AT,
    )

    assert result.ok
    stored = store.get("jig-requests", "T20")
    assert stored.get("status") == "진행중"
    assert stored.get("history")[-1] == {
        "status": "진행중",
        "date": "2025-03-07T01:00:00.000Z",
        "user": "김관리",
        "reason": "제작 착수",
    }
    assert "요청 '테이프지그'의 상태가 '진행중'(으)로 변경되었습니다." in _messages(store)
    assert result.notice.message == "상태가 '진행중'(으)로 업데이트되었습니다."


def test_unknown_status_is_rejected(workspace, notifier, manager, tape_jig) -> None:
    with pytest.raises(DomainError) as exc_info:
        update_jig_status_use_case(
            workspace=workspace, notifier=notifier, request_id="T20", status="합격", current_user=manager
        )
    assert exc_info.value.http_status == 422


def test_strict_mode_can_be_forced(workspace, notifier, manager, tape_jig, monkeypatch) -> None:
    monkeypatch.setattr(settings, "STRICT_STATUS_TRANSITIONS", True)

    with pytest.raises(DomainError) as exc_info:
        update_jig_status_use_case(
            workspace=workspace, notifier=notifier, request_id="T20", status="완료", current_user=manager
        )
    assert exc_info.value.code == "INVALID_STATUS_TRANSITION"

    result = update_jig_status_use_case(
        workspace=workspace, notifier=notifier, request_id="T20", status="완료", current_user=manager, force=True
    )
    assert result.record.status == "완료"


def test_receipts_drive_the_status(store, workspace, notifier, manager, tape_jig) -> None:
    update_jig_status_use_case(
        workspace=workspace, notifier=notifier, request_id="T20", status="진행중", current_user=manager, at=AT
    )

    partial = receive_jig_items_use_case(
        workspace=workspace, request_id="T20", quantity_change=20000, current_user=manager, at=AT
    )
    assert partial.record.status == "입고중"
    assert partial.notice.message == "수량 20000개 입고됨. (총 20000/50000)"

    done = receive_jig_items_use_case(
        workspace=workspace, request_id="T20", quantity_change=30000, current_user=manager, at=AT
    )
    stored = store.get("jig-requests", "T20")
    assert done.record.status == "완료"
    assert stored.get("receivedQuantity") == 50000
    assert stored.get("status") == "완료"
    assert stored.get("history")[-1]["reason"] == "모든 품목 입고 완료. (총 50000/50000)"
    assert len(stored.get("history")) == 4


def test_comment_is_stored_and_announced(store, workspace, notifier, manager, tape_jig) -> None:
    result = add_jig_comment_use_case(
        workspace=workspace, notifier=notifier, request_id="T20", text="도면 첨부합니다", current_user=manager, at=AT
    )

    comments = store.get("jig-requests", "T20").get("comments")
    assert comments == [
        {
            "id": f"C-{int(AT.timestamp() * 1000)}",
            "user": "김관리",
            "date": "2025-03-07T01:00:00.000Z",
            "text": "도면 첨부합니다",
            "readBy": [],
        }
    ]
    assert result.record.comments[-1].text == "도면 첨부합니다"
    assert "요청 '테이프지그'에 김관리님이 새 댓글을 남겼습니다." in _messages(store)


def test_edit_and_delete(store, workspace, manager, tape_jig) -> None:
    result = edit_jig_request_use_case(
        workspace=workspace,
        request_id="T20",
        payload=JigRequestUpdate(remarks="납기 조정", quantity=60000),
        current_user=manager,
        at=AT,
    )
    stored = store.get("jig-requests", "T20")
    assert result.ok
    assert stored.get("remarks") == "납기 조정"
    assert stored.get("quantity") == 60000
    assert stored.get("status") == "요청"
    assert stored.get("history")[-1]["reason"] == "사용자에 의해 수정됨"

    assert delete_jig_request_use_case(workspace=workspace, request_id="T20") is True
    assert store.get("jig-requests", "T20").exists is False
    assert workspace.find("jig", "T20") is None
    assert delete_jig_request_use_case(workspace=workspace, request_id="T20") is False


def test_missing_request_returns_none(workspace, notifier, manager) -> None:
    assert (
        update_jig_status_use_case(
            workspace=workspace, notifier=notifier, request_id="T404", status="진행중", current_user=manager
        )
        is None
    )
