from __future__ import annotations

import pytest

from src.backend.utils.exceptions import TransitionNotAllowed
from src.backend.utils.status_flow import (
    CourierStatus,
    ReceivedCourierStatus,
    allowed,
    allowed_received,
    append_pod_note,
    ensure_courier_transition,
    ensure_received_transition,
    parse_courier_status,
)


@pytest.mark.parametrize(
    "current,target",
    [
        ("on_the_way", "received"),
        ("on_the_way", "deleted"),
        ("received", "completed"),
        ("completed", "deleted"),
        ("deleted", "on_the_way"),
    ],
)
def test_allowed_courier_moves(current, target):
    assert allowed(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        ("on_the_way", "completed"),
        ("completed", "on_the_way"),
        ("received", "on_the_way"),
        ("deleted", "completed"),
        ("on_the_way", "lost"),
    ],
)
def test_rejected_courier_moves(current, target):
    assert not allowed(current, target)


def test_ensure_transition_raises_with_both_states():
    with pytest.raises(TransitionNotAllowed) as info:
        ensure_courier_transition("completed", "received")
    assert info.value.status_code == 409
    assert info.value.extra == {"from_status": "completed", "to_status": "received"}


def test_ensure_transition_returns_enum():
    assert ensure_courier_transition("on_the_way", "received") is CourierStatus.RECEIVED


def test_parse_is_case_insensitive_and_rejects_unknown():
    assert parse_courier_status(" Received ") is CourierStatus.RECEIVED
    assert parse_courier_status("shipped") is None
    assert parse_courier_status("") is None


def test_received_courier_flow():
    assert allowed_received("pending", "dispatched")
    assert allowed_received("dispatched", "dispatched")
    assert allowed_received("dispatched", "received")
    assert not allowed_received("pending", "received")
    assert not allowed_received("received", "dispatched")
    assert ensure_received_transition("dispatched", "received") is ReceivedCourierStatus.RECEIVED
    with pytest.raises(TransitionNotAllowed):
        ensure_received_transition("received", "received")


def test_pod_note_is_appended_once():
    details = append_pod_note("Cheque book", "POD-1")
    assert details == "Cheque book\nPOD Number: POD-1"
    assert append_pod_note(details, "POD-1") == details
    assert append_pod_note(None, "POD-9") == "POD Number: POD-9"
    assert append_pod_note("Keep", None) == "Keep"
