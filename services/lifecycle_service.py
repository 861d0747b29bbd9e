"""
Lifecycle orchestration for production orders.

Each public method is one synchronous request: it reads a fresh copy of
the order, enforces the status preconditions, talks to the remote
execution system through a client owned by the calling thread, and
reconciles the local status with the remote outcome.

Outcome rules:
    - The result of an operation depends only on the remote call and the
      local status update. Audit writes are best-effort.
    - Status is only written as the consequence of an explicit local
      action or a completed remote call; it is never guessed.
    - Nothing here is atomic across the precondition check and the remote
      call. Two concurrent requests for the same order can both pass the
      check before either writes a status.

Flow (start):
    1. Order must exist locally            -> OrderNotFoundError
    2. Status must be inside 900..999      -> ValidationError (no remote call)
    3. StartOrder sent to remote
       - no response                       -> status 901, RemoteTransportError
       - non-2xx or result != OK           -> status 901, remote error
       - OK                                -> status 1300
"""

from __future__ import annotations

import uuid
from typing import Callable, List, Optional

from core.exceptions import (
    DuplicateRemoteOrderError,
    LocalPersistenceError,
    OrderAlreadyDeletedError,
    OrderBridgeError,
    OrderNotFoundError,
    RemoteGatewayError,
    RemoteLogicalError,
    RemoteTransportError,
    ValidationError,
)
from core.remote_client import RemoteExecutionClient, RemoteResponse, relabel_error_messages
from core.store import OrderStore
from models.order import (
    ORDER_NUMBER_MAX_EXCLUSIVE,
    ORDER_NUMBER_MIN_EXCLUSIVE,
    Order,
    StatusCode,
    in_active_window,
    is_expected_transition,
    is_terminal,
    is_valid_order_number,
)
from models.results import StopResult
from logging_config import get_logger, get_order_logger
from . import audit_service as audit_tags
from .audit_service import AuditService, order_params


logger = get_logger(__name__)


class LifecycleService:
    """
    Orchestrates create, validate-exists, start, stop and delete.

    Holds no per-order state; every call re-reads the order from the store.

    Attributes:
        probe_on_create: Whether create asks the remote system first
    """

    def __init__(
        self,
        store: OrderStore,
        audit: AuditService,
        client_factory: Callable[[], RemoteExecutionClient],
        error_label: str = "ZANCANER",
        probe_on_create: bool = True,
    ):
        """
        Args:
            store: Record store
            audit: Audit sink
            client_factory: Creates a remote client for the calling thread
            error_label: Prefix for relabeled "ERROR =>" messages
            probe_on_create: Query the remote for duplicates on create
        """
        self._store = store
        self._audit = audit
        self._client_factory = client_factory
        self._error_label = error_label
        self.probe_on_create = probe_on_create

    # =========================================================================
    # CREATE
    # =========================================================================

    def create_order(self, user_id: int, production_order: int, slitter: str = "") -> Order:
        """
        Create an order locally unless the remote system already has it.

        Returns:
            The created order

        Raises:
            ValidationError: Order number out of range (nothing touched)
            DuplicateRemoteOrderError: Remote already has this number
            OrderConflictError: Number already used locally
            LocalPersistenceError: Insert failed
        """
        if not is_valid_order_number(production_order):
            raise ValidationError(
                f"ORDER must be greater than {ORDER_NUMBER_MIN_EXCLUSIVE} "
                f"and less than {ORDER_NUMBER_MAX_EXCLUSIVE}.",
                field="order",
                details={"value": production_order},
            )

        order_logger = get_order_logger(production_order)
        correlation_id = str(uuid.uuid4())
        params = order_params(production_order)

        if self.probe_on_create and self._exists_remotely(production_order, order_logger):
            self._mark_duplicate(production_order, user_id, order_logger)
            self._audit.append(
                user_id, audit_tags.CREATE_ORDER_DUPLICATE_REMOTE, params, correlation_id,
                f"Production order {production_order} already exists in remote system",
            )
            raise DuplicateRemoteOrderError(production_order)

        try:
            created = self._store.create_order(user_id, production_order, correlation_id, slitter)
        except OrderBridgeError as e:
            order_logger.error(f"Create failed: {e}")
            self._audit.append(user_id, audit_tags.CREATE_MANUAL_ORDER, params,
                               correlation_id, str(e))
            raise

        self._audit.append(user_id, audit_tags.CREATE_MANUAL_ORDER, order_params(created),
                           correlation_id)
        order_logger.info(f"Order created (correlation={correlation_id})")

        order = self._store.get_order(created)
        if order is None:
            raise LocalPersistenceError(f"Order {created} missing right after create")
        return order

    def _exists_remotely(self, production_order: int, order_logger) -> bool:
        """
        Existence probe. Only a 2xx answer counts as "exists"; a transport
        failure or any other status lets the create proceed.
        """
        client = self._client_factory()
        try:
            response = client.get_order(production_order)
        except RemoteTransportError as e:
            order_logger.warning(f"Remote existence probe failed, continuing: {e}")
            return False
        finally:
            client.close()

        if response.is_success_status:
            order_logger.warning("Remote system already has this order")
            return True
        if not response.is_not_found:
            order_logger.warning(
                f"Remote existence probe inconclusive (HTTP {response.status_code}), continuing"
            )
        return False

    def _mark_duplicate(self, production_order: int, user_id: int, order_logger) -> None:
        try:
            self._store.update_status(production_order, StatusCode.DUPLICATE_REMOTE, user_id)
        except LocalPersistenceError as e:
            order_logger.error(f"Failed to mark order as duplicate: {e}")

    # =========================================================================
    # VALIDATE
    # =========================================================================

    def validate_exists(self, production_order: int) -> bool:
        return self._store.order_exists(production_order)

    # =========================================================================
    # START
    # =========================================================================

    def start_order(self, production_order: int, user_id: int = 0,
                    slitter: Optional[str] = None) -> None:
        """
        Start a registered order on the remote system.

        Raises:
            OrderNotFoundError: Order does not exist locally
            ValidationError: Status outside 900..999 (no remote call made)
            RemoteTransportError: No response (status set to 901)
            RemoteGatewayError: Non-2xx response (status set to 901)
            RemoteLogicalError: result != OK (status set to 901)
            LocalPersistenceError: Remote OK but status 1300 not written
        """
        order = self._require_order(production_order)
        order_logger = get_order_logger(production_order)
        params = order_params(production_order)

        if not in_active_window(order.status):
            raise ValidationError(
                f"Production order {production_order} cannot be started from status "
                f"{order.status}; status must be between 900 and 999",
                field="status",
                details={"status": order.status},
            )

        message_id = self._message_id(order)
        shaft = slitter or order.slitter

        client = self._client_factory()
        try:
            response = client.start_order(message_id, production_order, shaft)
        except RemoteTransportError as e:
            self._write_status(order, StatusCode.START_FAILED, user_id, strict=False)
            self._audit.append(user_id, audit_tags.START_ORDER, params, message_id, str(e))
            raise
        finally:
            client.close()

        if not response.is_ok:
            self._write_status(order, StatusCode.START_FAILED, user_id, strict=False)
            self._audit.append(user_id, audit_tags.START_ORDER, params, message_id,
                               response.error_text())
            order_logger.warning(f"Start rejected: {response.error_text()}")
            raise self._remote_failure(response, self._relabel(response.messages))

        try:
            self._write_status(order, StatusCode.RUNNING, user_id, strict=True)
        except LocalPersistenceError as e:
            self._audit.append(user_id, audit_tags.START_ORDER, params, message_id, str(e))
            raise

        self._audit.append(user_id, audit_tags.START_ORDER, params, message_id)
        order_logger.info(f"Order started on {shaft or 'default slitter'}")

    # =========================================================================
    # STOP
    # =========================================================================

    def stop_order(self, production_order: int, user_id: int = 0,
                   slitter: Optional[str] = None) -> StopResult:
        """
        Stop an order remotely, then run the local stop action.

        No status window is enforced before the remote call.

        Returns:
            StopResult with status 930 (local stop ok) or 920 (local stop failed)

        Raises:
            OrderNotFoundError: Order unknown locally (no remote call) or remotely
            RemoteTransportError / RemoteGatewayError: No usable response
            RemoteLogicalError: result != OK
            LocalPersistenceError: Final status could not be written
        """
        order = self._require_order(production_order)
        order_logger = get_order_logger(production_order)
        params = order_params(production_order)
        message_id = self._message_id(order)
        shaft = slitter or order.slitter

        client = self._client_factory()
        try:
            response = client.stop_order(message_id, production_order, shaft)
        except RemoteTransportError as e:
            self._audit.append(user_id, audit_tags.STOP_ORDER_REMOTE, params, message_id, str(e))
            raise
        finally:
            client.close()

        if response.is_not_found:
            error = self._remote_not_found(production_order, response)
            self._audit.append(user_id, audit_tags.STOP_ORDER_REMOTE, params, message_id,
                               error.message)
            raise error

        if not response.is_ok:
            messages = self._relabel(response.messages)
            self._audit.append(user_id, audit_tags.STOP_ORDER_REMOTE, params, message_id,
                               response.error_text())
            order_logger.warning(f"Stop rejected: {response.error_text()}")
            raise self._remote_failure(response, messages)

        # Remote success; its messages are informational only
        info = " | ".join(response.messages)
        self._audit.append(user_id, audit_tags.STOP_ORDER_REMOTE,
                           f"{params}; Remote={info}" if info else params, message_id)

        local_stop_ok = self._local_stop(production_order, user_id, message_id, order_logger)
        new_status = StatusCode.STOPPED if local_stop_ok else StatusCode.STOP_FAILED_LOCAL

        try:
            self._write_status(order, new_status, user_id, strict=True)
        except LocalPersistenceError as e:
            self._audit.append(user_id, audit_tags.STOP_ORDER, params, message_id, str(e))
            raise

        self._audit.append(user_id, audit_tags.STOP_ORDER, f"{params}; Status={int(new_status)}",
                           message_id)
        order_logger.info(f"Order stopped (local stop ok={local_stop_ok})")

        return StopResult(
            production_order=production_order,
            status=int(new_status),
            local_stop_ok=local_stop_ok,
            remote_messages=list(response.messages),
            message_id=message_id,
        )

    def _local_stop(self, production_order: int, user_id: int, message_id: str,
                    order_logger) -> bool:
        params = order_params(production_order)
        try:
            rows = self._store.stop_order(production_order, user_id)
        except LocalPersistenceError as e:
            order_logger.error(f"Local stop action failed: {e}")
            self._audit.append(user_id, audit_tags.STOP_ORDER_LOCAL, params, message_id, str(e))
            return False

        if rows == 0:
            order_logger.error("Local stop action affected no rows")
            self._audit.append(user_id, audit_tags.STOP_ORDER_LOCAL, params, message_id,
                               "Local stop affected no rows")
            return False

        self._audit.append(user_id, audit_tags.STOP_ORDER_LOCAL, params, message_id)
        return True

    # =========================================================================
    # DELETE
    # =========================================================================

    def delete_order(self, production_order: int, user_id: int = 0) -> None:
        """
        Delete an order, telling the remote system first if it may be live there.

        Raises:
            OrderNotFoundError: Unknown locally, unknown remotely, or no row deleted
            OrderAlreadyDeletedError: Status already in the terminal range
            RemoteTransportError / RemoteGatewayError / RemoteLogicalError:
                remote delete failed; nothing deleted locally
            LocalPersistenceError: Local delete failed
        """
        order = self._require_order(production_order)
        order_logger = get_order_logger(production_order)
        params = order_params(production_order)

        if is_terminal(order.status):
            raise OrderAlreadyDeletedError(production_order, order.status)

        message_id = self._message_id(order)

        if in_active_window(order.status):
            self._delete_remotely(order, user_id, message_id)
        else:
            order_logger.info(f"Status {order.status} not registered remotely, deleting locally only")

        try:
            rows = self._store.delete_order(production_order, user_id)
        except LocalPersistenceError as e:
            self._audit.append(user_id, audit_tags.DELETE_ORDER, params, message_id, str(e))
            raise

        if rows == 0:
            raise OrderNotFoundError(production_order)

        self._audit.append(user_id, audit_tags.DELETE_ORDER, params, message_id)
        order_logger.info("Order deleted")

    def _delete_remotely(self, order: Order, user_id: int, message_id: str) -> None:
        production_order = order.production_order
        params = order_params(production_order)

        client = self._client_factory()
        try:
            response = client.delete_order(message_id, production_order)
        except RemoteTransportError as e:
            self._audit.append(user_id, audit_tags.DELETE_ORDER_REMOTE, params, message_id, str(e))
            raise
        finally:
            client.close()

        if response.is_not_found:
            error = self._remote_not_found(production_order, response)
            self._audit.append(user_id, audit_tags.DELETE_ORDER_REMOTE, params, message_id,
                               error.message)
            raise error

        if not response.is_ok:
            self._audit.append(user_id, audit_tags.DELETE_ORDER_REMOTE, params, message_id,
                               response.error_text())
            raise self._remote_failure(response, self._relabel(response.messages))

        self._audit.append(user_id, audit_tags.DELETE_ORDER_REMOTE, params, message_id)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _require_order(self, production_order: int) -> Order:
        order = self._store.get_order(production_order)
        if order is None:
            raise OrderNotFoundError(production_order)
        return order

    @staticmethod
    def _message_id(order: Order) -> str:
        return order.correlation_id or str(uuid.uuid4())

    def _relabel(self, messages: List[str]) -> List[str]:
        return relabel_error_messages(messages, self._error_label)

    def _remote_not_found(self, production_order: int,
                                response: RemoteResponse) -> OrderNotFoundError:
        """Build the not-found error, relabeling "ERROR =>" messages."""
        messages = self._relabel(response.messages)
        text = " | ".join(messages) if messages else (
            f"Production order {production_order} not found in remote system"
        )
        return OrderNotFoundError(production_order, text, remote=True)

    @staticmethod
    def _remote_failure(response: RemoteResponse, messages: List[str]):
        if not response.is_success_status:
            return RemoteGatewayError(response.command, response.status_code,
                                      messages, response.minimal())
        return RemoteLogicalError(response.command, messages, response.minimal())

    def _write_status(self, order: Order, new_status: StatusCode, user_id: int,
                      strict: bool) -> bool:
        """
        Write a status that follows from a completed action.

        Args:
            strict: Raise LocalPersistenceError on failure instead of logging

        Returns:
            True if the row was updated
        """
        order_logger = get_order_logger(order.production_order)
        if not is_expected_transition(order.status, new_status):
            order_logger.warning(
                f"Unexpected status transition {order.status} -> {int(new_status)}"
            )

        try:
            rows = self._store.update_status(order.production_order, new_status, user_id)
        except LocalPersistenceError as e:
            order_logger.error(f"Failed to set status {int(new_status)}: {e}")
            if strict:
                raise LocalPersistenceError(
                    f"Failed to set status {int(new_status)} on order {order.production_order}",
                    {"production_order": order.production_order, "status": int(new_status)},
                ) from e
            return False

        if rows == 0:
            order_logger.error(f"Status {int(new_status)} not written: order row missing")
            if strict:
                raise LocalPersistenceError(
                    f"Order {order.production_order} disappeared before status "
                    f"{int(new_status)} could be written",
                    {"production_order": order.production_order, "status": int(new_status)},
                )
            return False

        order_logger.info(f"Status {order.status} -> {int(new_status)}")
        return True
