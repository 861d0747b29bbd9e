"""
Core module for OrderBridge.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy
- store: SQLite record store (orders, reel events, audit log)
- remote_client: HTTP client for the remote execution system
"""

from .exceptions import (
    OrderBridgeError,
    ConfigurationError,
    ValidationError,
    OrderNotFoundError,
    OrderConflictError,
    DuplicateRemoteOrderError,
    OrderAlreadyDeletedError,
    RemoteCallError,
    RemoteTransportError,
    RemoteGatewayError,
    RemoteLogicalError,
    LocalPersistenceError,
    DatabaseError,
)
from .store import OrderStore, StoreTransaction
from .remote_client import RemoteExecutionClient, RemoteResponse

__all__ = [
    "OrderBridgeError",
    "ConfigurationError",
    "ValidationError",
    "OrderNotFoundError",
    "OrderConflictError",
    "DuplicateRemoteOrderError",
    "OrderAlreadyDeletedError",
    "RemoteCallError",
    "RemoteTransportError",
    "RemoteGatewayError",
    "RemoteLogicalError",
    "LocalPersistenceError",
    "DatabaseError",
    "OrderStore",
    "StoreTransaction",
    "RemoteExecutionClient",
    "RemoteResponse",
]
