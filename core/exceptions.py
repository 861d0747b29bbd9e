"""
Custom exceptions for OrderBridge.

Exception Hierarchy:
    OrderBridgeError (base)
    ├── ConfigurationError        - connectivity info missing (stage: configuration)
    ├── ValidationError           - bad input or wrong status window (stage: validation)
    ├── OrderNotFoundError        - order absent locally or remotely (stage: not_found)
    ├── OrderConflictError        - domain conflict (stage: conflict)
    │   ├── DuplicateRemoteOrderError - remote already has the order
    │   └── OrderAlreadyDeletedError  - order is in the terminal range
    ├── RemoteCallError           - the remote leg failed
    │   ├── RemoteTransportError  - no response at all (stage: transport)
    │   ├── RemoteGatewayError    - non-2xx response (stage: remote)
    │   └── RemoteLogicalError    - 2xx with result != OK (stage: remote)
    └── LocalPersistenceError     - local write failed (stage: local)
        └── DatabaseError         - engine-level failure, carries error number

Usage:
    Every exception knows which stage failed and which HTTP status it maps
    to, so the Flask error handler renders them all the same way and a
    caller can decide whether a retry makes sense.
"""

from typing import Optional, Dict, Any, List


class OrderBridgeError(Exception):
    """
    Base exception for all OrderBridge errors.

    Attributes:
        message: Human-readable error message
        details: Extra context for debugging and for the response payload
        stage: Which stage of the operation failed
        http_status: Status code used when rendering the error
    """

    stage = "internal"
    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Structured payload returned to HTTP callers."""
        return {
            "error": self.message,
            "stage": self.stage,
            "details": self.details,
        }


# =============================================================================
# REQUEST-LEVEL ERRORS - rejected before any remote call
# =============================================================================

class ConfigurationError(OrderBridgeError):
    """
    Connectivity information is missing.

    Fails the request immediately. Retrying will not help until the
    environment is fixed.
    """

    stage = "configuration"
    http_status = 500

    def __init__(self, setting: str):
        message = f"{setting} is not configured"
        details = {
            "setting": setting,
            "resolution": f"Set {setting} in the environment or .env file",
        }
        super().__init__(message, details)
        self.setting = setting


class ValidationError(OrderBridgeError):
    """Input or status window check failed."""

    stage = "validation"
    http_status = 400

    def __init__(self, message: str, field: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(message, error_details)
        self.field = field


class OrderNotFoundError(OrderBridgeError):
    """The order does not exist locally, or the remote system does not know it."""

    stage = "not_found"
    http_status = 404

    def __init__(self, production_order: int, message: Optional[str] = None,
                 remote: bool = False):
        message = message or f"Production order {production_order} not found"
        super().__init__(message, {"production_order": production_order, "remote": remote})
        self.production_order = production_order
        self.remote = remote


class OrderConflictError(OrderBridgeError):
    """Domain-level conflict; no retry implied."""

    stage = "conflict"
    http_status = 409

    def __init__(self, production_order: int, message: str,
                 details: Optional[Dict[str, Any]] = None):
        error_details = details or {}
        error_details["production_order"] = production_order
        super().__init__(message, error_details)
        self.production_order = production_order


class DuplicateRemoteOrderError(OrderConflictError):
    """The remote system already has an order with this number."""

    def __init__(self, production_order: int):
        super().__init__(
            production_order,
            f"Production order {production_order} already exists in the remote system",
        )


class OrderAlreadyDeletedError(OrderConflictError):
    """The order is in the terminal range and cannot be deleted again."""

    def __init__(self, production_order: int, status: int):
        super().__init__(
            production_order,
            f"Production order {production_order} is already deleted",
            {"status": status},
        )
        self.status = status


# =============================================================================
# REMOTE ERRORS - the remote leg of an operation failed
# =============================================================================

class RemoteCallError(OrderBridgeError):
    """Base class for failures of a call to the remote execution system."""

    stage = "remote"
    http_status = 502

    def __init__(
        self,
        message: str,
        command: str,
        messages: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        error_details["command"] = command
        self.messages = list(messages or [])
        if self.messages:
            error_details["messages"] = self.messages
        super().__init__(message, error_details)
        self.command = command


class RemoteTransportError(RemoteCallError):
    """No response arrived (connection refused, DNS, timeout)."""

    stage = "transport"

    def __init__(self, command: str, reason: str):
        super().__init__(
            f"Remote {command} unreachable: {reason}",
            command,
            details={"reason": reason},
        )
        self.reason = reason


class RemoteGatewayError(RemoteCallError):
    """The remote answered with a non-2xx status."""

    def __init__(self, command: str, status_code: int,
                 messages: Optional[List[str]] = None, body: Any = None):
        details: Dict[str, Any] = {"status_code": status_code}
        if body is not None:
            details["body"] = body
        text = " | ".join(messages) if messages else f"HTTP {status_code}"
        super().__init__(f"Remote {command} failed: {text}", command, messages, details)
        self.status_code = status_code


class RemoteLogicalError(RemoteCallError):
    """The remote answered 2xx but reported result != OK."""

    def __init__(self, command: str, messages: Optional[List[str]] = None,
                 body: Any = None):
        details: Dict[str, Any] = {}
        if body is not None:
            details["body"] = body
        text = " | ".join(messages) if messages else "result was not OK"
        super().__init__(f"Remote {command} rejected: {text}", command, messages, details)


# =============================================================================
# LOCAL ERRORS - the system of record failed
# =============================================================================

class LocalPersistenceError(OrderBridgeError):
    """A local read or write failed."""

    stage = "local"
    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 rollback: bool = False):
        error_details = details or {}
        if rollback:
            error_details["rollback"] = True
        super().__init__(message, error_details)
        self.rollback = rollback


class DatabaseError(LocalPersistenceError):
    """
    Engine-level failure inside a local transaction.

    Carries the engine-specific error number when the driver exposes one
    (sqlite3 does on Python 3.11+ as ``sqlite_errorcode``).
    """

    def __init__(self, message: str, error_number: Optional[int] = None,
                 rollback: bool = True):
        details: Dict[str, Any] = {}
        if error_number is not None:
            details["error_number"] = error_number
        super().__init__(message, details, rollback=rollback)
        self.error_number = error_number
