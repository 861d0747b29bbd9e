"""
Result data models.

These models describe the outcome of lifecycle operations that report more
than success/failure: the stop command (remote and local legs can disagree)
and one pass of the registration synchronizer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SendOutcome(Enum):
    """
    Classification of one remote call.

    Lifecycle of a synchronizer row:
        pending -> (REGISTERED | TRANSPORT_FAILED | REJECTED)
    """

    REGISTERED = "registered"
    """Remote answered 2xx with a logically OK result."""

    TRANSPORT_FAILED = "transport_failed"
    """No response, or a non-2xx response."""

    REJECTED = "rejected"
    """Remote answered 2xx but reported result != OK."""


@dataclass
class StopResult:
    """
    Outcome of a stop command that got past the remote stage.

    ``local_stop_ok`` False means the remote stopped the order but the
    local stop action failed; the order is left at status 920.
    """

    production_order: int
    status: int
    local_stop_ok: bool
    remote_messages: List[str] = field(default_factory=list)
    message_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "productionOrder": self.production_order,
            "status": self.status,
            "localStopOk": self.local_stop_ok,
            "remoteMessages": list(self.remote_messages),
            "messageId": self.message_id,
        }


@dataclass
class RowOutcome:
    """Result of pushing one order during a synchronizer pass."""

    production_order: int
    message_id: str
    outcome: SendOutcome
    new_status: Optional[int] = None
    """Status written locally, None if the status update failed."""

    error: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome is SendOutcome.REGISTERED


@dataclass
class SyncReport:
    """Summary of one synchronizer pass."""

    correlation_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    rows: List[RowOutcome] = field(default_factory=list)
    cancelled: bool = False
    error: str = ""

    @property
    def processed(self) -> int:
        return len(self.rows)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.rows if r.succeeded)

    @property
    def failed(self) -> int:
        return self.processed - self.succeeded

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlationId": self.correlation_id,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "error": self.error,
        }
