from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tms.domain_errors import DomainError
from tms.schemas import JigRequest, ProductionRequest, QualityInspection, SampleRequest
from tms.services.ledger import (
    DEFAULT_STATUS_REASON,
    add_comment,
    has_unread_comments,
    initial_history,
    iso_timestamp,
    mark_comments_read,
    parse_timestamp,
    receive_quantity,
    record_edit,
    transition_status,
)

AT = datetime(2025, 3, 7, 1, 30, tzinfo=timezone.utc)


def _jig(status: str = "요청", quantity: int = 10000, received: int = 0) -> JigRequest:
    return JigRequest(
        id="T20",
        status=status,
        request_date=iso_timestamp(AT),
        item_name="테이프지그",
        quantity=quantity,
        received_quantity=received,
        history=initial_history(status, "김관리", at=AT),
    )


def test_iso_timestamp_has_millis_and_z_suffix() -> None:
    assert iso_timestamp(AT) == "2025-03-07T01:30:00.000Z"
    assert parse_timestamp("2025-03-07T01:30:00.000Z") == AT


def test_transition_appends_history_with_default_reason() -> None:
    request = _jig()
    updated = transition_status(request, "진행중", "김관리", at=AT + timedelta(minutes=1))

    assert updated.status == "진행중"
    assert len(updated.history) == 2
    assert updated.history[-1].status == "진행중"
    assert updated.history[-1].reason == DEFAULT_STATUS_REASON
    assert updated.history[-1].user == "김관리"
    # the input record is left as it was
    assert request.status == "요청"
    assert len(request.history) == 1


def test_transition_keeps_given_reason() -> None:
    updated = transition_status(_jig(), "반려", "김관리", "사양 불명확", at=AT)
    assert updated.history[-1].reason == "사양 불명확"


def test_transition_rejects_empty_actor_and_unknown_status() -> None:
    with pytest.raises(ValueError):
        transition_status(_jig(), "진행중", "  ")
    with pytest.raises(ValueError):
        transition_status(_jig(), "합격", "김관리")


def test_strict_transition_rejects_edges_outside_the_graph() -> None:
    with pytest.raises(DomainError) as exc_info:
        transition_status(_jig("요청"), "완료", "김관리", strict=True)
    assert exc_info.value.code == "INVALID_STATUS_TRANSITION"
    assert exc_info.value.http_status == 409

    # free mode allows the same edge
    assert transition_status(_jig("요청"), "완료", "김관리").status == "완료"


def test_receive_in_progress_partial_then_complete() -> None:
    request = _jig("진행중", quantity=10000)

    partial = receive_quantity(request, 4000, "김관리", at=AT)
    assert partial.status == "입고중"
    assert partial.received_quantity == 4000
    assert partial.history[-1].reason == "수량 4000개 입고됨. (총 4000/10000)"

    done = receive_quantity(partial, 8000, "김관리", at=AT)
    assert done.status == "완료"
    assert done.received_quantity == 12000
    assert done.history[-1].status == "완료"
    assert done.history[-1].reason == "모든 품목 입고 완료. (총 12000/10000)"


def test_return_moves_completed_back_to_receiving() -> None:
    request = _jig("완료", quantity=100, received=100)
    returned = receive_quantity(request, -30, "김관리", at=AT)

    assert returned.status == "입고중"
    assert returned.received_quantity == 70
    assert returned.history[-1].reason == "수량 30개 반출됨. (총 70/100)"


def test_return_of_everything_goes_back_to_in_progress() -> None:
    returned = receive_quantity(_jig("입고중", quantity=100, received=40), -40, "김관리", at=AT)
    assert returned.status == "진행중"


def test_receive_outside_receiving_states_keeps_status() -> None:
    request = _jig("보류", quantity=100)
    updated = receive_quantity(request, 100, "김관리", at=AT)

    assert updated.status == "보류"
    assert updated.received_quantity == 100
    assert updated.history[-1].status == "보류"
    assert len(updated.history) == 2


def test_receive_round_trip_restores_quantity() -> None:
    request = _jig("진행중", quantity=100)
    updated = receive_quantity(receive_quantity(request, 25, "김관리", at=AT), -25, "김관리", at=AT)

    assert updated.received_quantity == 0
    assert updated.status == "진행중"
    assert len(updated.history) == 3


@pytest.mark.parametrize(
    ("record", "prefix"),
    [
        (_jig(), "C-"),
        (SampleRequest(id="S-20250307-001", status="접수", created_at="2025-03-07T00:00:00.000Z", product_name="커버"), "S-C-"),
        (ProductionRequest(id="P-250307-001", status="요청", created_at="2025-03-07T00:00:00.000Z", product_name="커버"), "P-C-"),
        (QualityInspection(id="q1", status="생성됨", created_at="2025-03-07T00:00:00.000Z", product_name="커버"), "QC-"),
    ],
)
def test_comment_ids_carry_the_kind_prefix(record, prefix) -> None:
    updated, comment = add_comment(record, "김관리", "확인 부탁드립니다", at=AT)

    assert comment.id == f"{prefix}{int(AT.timestamp() * 1000)}"
    assert comment.read_by == []
    assert updated.comments[-1] == comment
    assert record.comments == []


def test_history_and_comments_only_grow() -> None:
    request = _jig("진행중")
    steps = [
        lambda r: transition_status(r, "보류", "김관리", at=AT),
        lambda r: add_comment(r, "김관리", "대기", at=AT)[0],
        lambda r: receive_quantity(r, 10, "김관리", at=AT),
        lambda r: record_edit(r, "김관리", at=AT, updates={"remarks": "메모"}),
    ]
    for step in steps:
        updated = step(request)
        assert updated.history[: len(request.history)] == request.history
        assert updated.comments[: len(request.comments)] == request.comments
        request = updated
    assert len(request.history) == 4
    assert request.history[-1].status == request.status


def test_mark_comments_read_is_idempotent() -> None:
    request, _ = add_comment(_jig(), "김관리", "확인", at=AT)
    assert has_unread_comments(request, "u-member")

    once = mark_comments_read(request, "u-member")
    twice = mark_comments_read(once, "u-member")

    assert once.comments[0].read_by == ["u-member"]
    assert twice is once
    assert not has_unread_comments(twice, "u-member")


def test_record_edit_keeps_status_and_validates_fields() -> None:
    request = _jig("진행중")
    edited = record_edit(request, "김관리", at=AT, updates={"remarks": "긴급", "quantity": 200})

    assert edited.status == "진행중"
    assert edited.remarks == "긴급"
    assert edited.quantity == 200
    assert edited.history[-1].reason == "사용자에 의해 수정됨"

    with pytest.raises(ValueError):
        record_edit(request, "김관리", at=AT, updates={"quantity": "many"})
