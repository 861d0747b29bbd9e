"""
Order data models and the status state machine.

An order's status is persisted as an integer whose *ranges* carry meaning.
Inside the application it is read through :class:`OrderState`, a tagged
state derived from the stored code. The numeric values only matter at the
persistence and wire boundary.

Status ranges:
    < 900 (except 201)   created locally, not yet registered remotely
    201                  remote system already had this order at create time
    900                  registered remotely by the synchronizer
    901                  start command failed
    920                  remote stop succeeded, local stop action failed
    930                  stop fully succeeded
    900..999             the only window in which start is legal
    1300                 running
    > 1000               terminal; a second delete is rejected
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Dict, FrozenSet, Mapping, Optional


# Order numbers are valid strictly between these bounds
ORDER_NUMBER_MIN_EXCLUSIVE = 50000
ORDER_NUMBER_MAX_EXCLUSIVE = 1000000

ACTIVE_WINDOW_LOW = 900
ACTIVE_WINDOW_HIGH = 999
TERMINAL_THRESHOLD = 1000


class StatusCode(IntEnum):
    """Numeric status values as stored in the orders table."""

    PENDING = 100
    """Default for orders created locally."""

    REGISTRATION_FAILED = 200
    """Synchronizer push failed; stays below 900 so it is retried."""

    DUPLICATE_REMOTE = 201
    """Remote system reported the order already existed."""

    REGISTERED = 900
    START_FAILED = 901
    STOP_FAILED_LOCAL = 920
    STOPPED = 930
    RUNNING = 1300

    DELETED = 1100
    """Written by the local delete."""


class OrderState(Enum):
    """Tagged lifecycle state derived from a stored status code."""

    PENDING = "pending"
    DUPLICATE_REMOTE = "duplicate_remote"
    REGISTERED = "registered"
    START_FAILED = "start_failed"
    RUNNING = "running"
    STOP_FAILED_LOCAL = "stop_failed_local"
    STOPPED = "stopped"
    DELETED = "deleted"

    @classmethod
    def from_code(cls, code: int) -> "OrderState":
        """Classify a stored status code."""
        if code == StatusCode.DUPLICATE_REMOTE:
            return cls.DUPLICATE_REMOTE
        if code == StatusCode.RUNNING:
            return cls.RUNNING
        if code == StatusCode.START_FAILED:
            return cls.START_FAILED
        if code == StatusCode.STOP_FAILED_LOCAL:
            return cls.STOP_FAILED_LOCAL
        if code == StatusCode.STOPPED:
            return cls.STOPPED
        if code > TERMINAL_THRESHOLD:
            return cls.DELETED
        if code >= ACTIVE_WINDOW_LOW:
            # 900, any other code in the window, and 1000 itself
            return cls.REGISTERED
        return cls.PENDING


# Transitions the orchestrator and synchronizer are expected to perform.
# Stop carries no status precondition, so it may land on STOPPED or
# STOP_FAILED_LOCAL from anywhere the remote accepts it; those moves are
# still written but logged as unexpected.
TRANSITIONS: Dict[OrderState, FrozenSet[OrderState]] = {
    OrderState.PENDING: frozenset({
        OrderState.PENDING,
        OrderState.REGISTERED,
        OrderState.DUPLICATE_REMOTE,
        OrderState.DELETED,
    }),
    OrderState.DUPLICATE_REMOTE: frozenset({
        OrderState.DUPLICATE_REMOTE,
        OrderState.DELETED,
    }),
    OrderState.REGISTERED: frozenset({
        OrderState.RUNNING,
        OrderState.START_FAILED,
        OrderState.STOPPED,
        OrderState.STOP_FAILED_LOCAL,
        OrderState.DELETED,
    }),
    OrderState.START_FAILED: frozenset({
        OrderState.RUNNING,
        OrderState.START_FAILED,
        OrderState.STOPPED,
        OrderState.STOP_FAILED_LOCAL,
        OrderState.DELETED,
    }),
    OrderState.STOP_FAILED_LOCAL: frozenset({
        OrderState.RUNNING,
        OrderState.START_FAILED,
        OrderState.STOPPED,
        OrderState.STOP_FAILED_LOCAL,
        OrderState.DELETED,
    }),
    OrderState.STOPPED: frozenset({
        OrderState.RUNNING,
        OrderState.START_FAILED,
        OrderState.STOPPED,
        OrderState.STOP_FAILED_LOCAL,
        OrderState.DELETED,
    }),
    OrderState.RUNNING: frozenset({
        OrderState.STOPPED,
        OrderState.STOP_FAILED_LOCAL,
    }),
    OrderState.DELETED: frozenset(),
}


def is_expected_transition(current: int, target: int) -> bool:
    """Whether moving from ``current`` to ``target`` is in the transition table."""
    return OrderState.from_code(target) in TRANSITIONS[OrderState.from_code(current)]


def is_valid_order_number(value: int) -> bool:
    return ORDER_NUMBER_MIN_EXCLUSIVE < value < ORDER_NUMBER_MAX_EXCLUSIVE


def in_active_window(code: int) -> bool:
    """Start is legal only inside 900..999 inclusive."""
    return ACTIVE_WINDOW_LOW <= code <= ACTIVE_WINDOW_HIGH


def is_terminal(code: int) -> bool:
    return code > TERMINAL_THRESHOLD


def awaits_registration(code: int) -> bool:
    """Whether the synchronizer should (re)try pushing this order."""
    return code < ACTIVE_WINDOW_LOW and code != StatusCode.DUPLICATE_REMOTE


@dataclass(frozen=True)
class Order:
    """
    A production order as read from the record store.

    Frozen: the orchestrator reads a fresh copy per request and never
    caches it across requests.
    """

    production_order: int
    slitter: str = ""
    creator_user: int = 0
    last_modificator_user: int = 0
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    status: int = StatusCode.PENDING
    correlation_id: Optional[str] = None

    @property
    def state(self) -> OrderState:
        return OrderState.from_code(self.status)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON shape used by the HTTP API."""
        return {
            "productionOrder": self.production_order,
            "slitter": self.slitter,
            "creatorUser": self.creator_user,
            "lastModificatorUser": self.last_modificator_user,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "modifiedAt": self.modified_at.isoformat() if self.modified_at else None,
            "status": int(self.status),
            "state": self.state.value,
            "correlationId": self.correlation_id,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Order":
        """Create from a record store row."""
        return cls(
            production_order=int(row["production_order"]),
            slitter=row["slitter"] or "",
            creator_user=int(row["creator_user"] or 0),
            last_modificator_user=int(row["last_modificator_user"] or 0),
            created_at=_parse_timestamp(row["created_at"]),
            modified_at=_parse_timestamp(row["modified_at"]),
            status=int(row["status"]),
            correlation_id=row["correlation_id"],
        )


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))
