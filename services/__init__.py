"""
Services layer for OrderBridge.

This module contains the business logic services:
- AuditService: Fire-and-forget operational log
- LifecycleService: Create / validate / start / stop / delete orders
- ReelEventService: Atomic local + remote registration of reel sets
- RegistrationSynchronizer: Background registration thread

Thread Model:
    Main Thread (Flask)
    ├── Request threads (lifecycle and reel calls, one client per call)
    └── RegistrationSynchronizer thread (interval loop, one client per pass)

Each service creates its own RemoteExecutionClient through a factory,
so no HTTP session is shared between threads.
"""

from .audit_service import AuditService
from .lifecycle_service import LifecycleService
from .reel_service import ReelEventService
from .sync_service import RegistrationSynchronizer

__all__ = [
    "AuditService",
    "LifecycleService",
    "ReelEventService",
    "RegistrationSynchronizer",
]
