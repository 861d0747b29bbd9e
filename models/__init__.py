"""
Data models for OrderBridge.

This module contains dataclasses for:
- Order: production order as stored locally, plus the status state machine
- ReelEvent / ReelDetail: reel set reported by a slitter
- StopResult / SyncReport / RowOutcome: outcomes of lifecycle operations

Order and ReelEvent are frozen so they can be handed between the request
threads and the synchronizer thread without copying.
"""

from .order import (
    Order,
    OrderState,
    StatusCode,
    TRANSITIONS,
    awaits_registration,
    in_active_window,
    is_expected_transition,
    is_terminal,
    is_valid_order_number,
)
from .reel_event import ReelEvent, ReelDetail
from .results import StopResult, SyncReport, RowOutcome, SendOutcome

__all__ = [
    # Order models
    "Order",
    "OrderState",
    "StatusCode",
    "TRANSITIONS",
    "awaits_registration",
    "in_active_window",
    "is_expected_transition",
    "is_terminal",
    "is_valid_order_number",
    # Reel models
    "ReelEvent",
    "ReelDetail",
    # Result models
    "StopResult",
    "SyncReport",
    "RowOutcome",
    "SendOutcome",
]
