"""
Audit sink ("bitacora").

Append-only operational log used to reconstruct what happened to an order
after the fact. It is never consulted for control decisions, and writing
to it never fails the caller: any error is logged locally and dropped.
"""

from __future__ import annotations

from typing import Optional, Protocol

from logging_config import get_logger


logger = get_logger(__name__)


# Action tags
CREATE_MANUAL_ORDER = "CREATE_MANUAL_ORDER"
CREATE_ORDER_DUPLICATE_REMOTE = "CREATE_ORDER_DUPLICATE_REMOTE"
START_ORDER = "START_ORDER"
STOP_ORDER_REMOTE = "STOP_ORDER_REMOTE"
STOP_ORDER_LOCAL = "STOP_ORDER_LOCAL"
STOP_ORDER = "STOP_ORDER"
DELETE_ORDER_REMOTE = "DELETE_ORDER_REMOTE"
DELETE_ORDER = "DELETE_ORDER"
RECURRING_SERVICE_START = "RECURRING_SERVICE_START"
RECURRING_SERVICE_SEND = "RECURRING_SERVICE_SEND"
RECURRING_SERVICE_END = "RECURRING_SERVICE_END"
CREATE_SET_EXTERNAL = "CREATE_SET_EXTERNAL"
CREATE_SET_EXTERNAL_FAILED = "CREATE_SET_EXTERNAL_FAILED"
CREATE_REEL_EVENT = "CREATE_REEL_EVENT"
CREATE_REEL_EVENT_DB_FAILED = "CREATE_REEL_EVENT_DB_FAILED"
CREATE_REEL_EVENT_FAILED = "CREATE_REEL_EVENT_FAILED"


class AuditWriter(Protocol):
    def append_audit(self, user_id: int, action: str, params: str,
                     correlation_id: Optional[str], error_msg: str = "") -> None:
        ...


class AuditService:
    """
    Fire-and-forget audit sink.

    ``append`` returns True when the entry was written, False when it was
    dropped. Callers may ignore the return value.
    """

    def __init__(self, writer: AuditWriter):
        self._writer = writer

    def append(self, user_id: int, action: str, params: str,
               correlation_id: Optional[str], error: str = "") -> bool:
        try:
            self._writer.append_audit(user_id, action, params, correlation_id, error or "")
            return True
        except Exception as e:
            logger.error(
                f"Failed to write audit entry {action} ({params}, "
                f"correlation={correlation_id}): {e}"
            )
            return False


def order_params(production_order: object) -> str:
    """Parameter text used by every order-scoped entry."""
    return f"Production_Order={production_order}"
