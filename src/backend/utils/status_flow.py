# src/backend/utils/status_flow.py
"""
Courier lifecycles as explicit enums plus transition tables.

Outbound:  on_the_way -> received -> completed, any -> deleted, deleted -> on_the_way
Inbound:   pending -> dispatched -> received (confirmed through the emailed link)
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Optional

from src.backend.utils.exceptions import TransitionNotAllowed


class CourierStatus(str, Enum):
    ON_THE_WAY = "on_the_way"
    RECEIVED = "received"
    COMPLETED = "completed"
    DELETED = "deleted"


class ReceivedCourierStatus(str, Enum):
    PENDING = "pending"
    DISPATCHED = "dispatched"
    RECEIVED = "received"


COURIER_TRANSITIONS: Dict[CourierStatus, FrozenSet[CourierStatus]] = {
    CourierStatus.ON_THE_WAY: frozenset({CourierStatus.RECEIVED, CourierStatus.DELETED}),
    CourierStatus.RECEIVED: frozenset({CourierStatus.COMPLETED, CourierStatus.DELETED}),
    CourierStatus.COMPLETED: frozenset({CourierStatus.DELETED}),
    # restore only; the pre-delete status is not kept
    CourierStatus.DELETED: frozenset({CourierStatus.ON_THE_WAY}),
}

RECEIVED_COURIER_TRANSITIONS: Dict[ReceivedCourierStatus, FrozenSet[ReceivedCourierStatus]] = {
    ReceivedCourierStatus.PENDING: frozenset({ReceivedCourierStatus.DISPATCHED}),
    # dispatching again re-sends the link with a fresh token
    ReceivedCourierStatus.DISPATCHED: frozenset(
        {ReceivedCourierStatus.DISPATCHED, ReceivedCourierStatus.RECEIVED}
    ),
    ReceivedCourierStatus.RECEIVED: frozenset(),
}


def parse_courier_status(value: str) -> Optional[CourierStatus]:
    try:
        return CourierStatus((value or "").strip().lower())
    except ValueError:
        return None


def parse_received_status(value: str) -> Optional[ReceivedCourierStatus]:
    try:
        return ReceivedCourierStatus((value or "").strip().lower())
    except ValueError:
        return None


def allowed(current: CourierStatus | str, target: CourierStatus | str) -> bool:
    src = parse_courier_status(str(getattr(current, "value", current)))
    dst = parse_courier_status(str(getattr(target, "value", target)))
    if src is None or dst is None:
        return False
    return dst in COURIER_TRANSITIONS[src]


def allowed_received(current: ReceivedCourierStatus | str, target: ReceivedCourierStatus | str) -> bool:
    src = parse_received_status(str(getattr(current, "value", current)))
    dst = parse_received_status(str(getattr(target, "value", target)))
    if src is None or dst is None:
        return False
    return dst in RECEIVED_COURIER_TRANSITIONS[src]


def ensure_courier_transition(current: str, target: str) -> CourierStatus:
    """Return the target status or raise TransitionNotAllowed."""
    if not allowed(current, target):
        raise TransitionNotAllowed("Courier", current, target)
    return CourierStatus(target)


def ensure_received_transition(current: str, target: str) -> ReceivedCourierStatus:
    if not allowed_received(current, target):
        raise TransitionNotAllowed("Received courier", current, target)
    return ReceivedCourierStatus(target)


def append_pod_note(details: Optional[str], pod_no: Optional[str]) -> Optional[str]:
    """On completion the POD number is recorded in the details, once."""
    if not pod_no:
        return details
    note = f"POD Number: {pod_no}"
    if details and note in details:
        return details
    return f"{details}\n{note}" if details else note
