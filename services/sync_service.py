"""
Registration synchronizer with a background thread.

Pushes orders created locally to the remote execution system. Every
interval it asks the record store for orders still awaiting their first
successful registration and sends each one, one after the other, with a
CreateOrder command.

Per row:
    - remote OK                       -> status 900 (leaves the candidate set)
    - no response / non-2xx / ERROR   -> status 200 (stays a candidate)

ISOLATION:
    - The synchronizer thread creates its OWN RemoteExecutionClient per pass
    - A failure on one row (remote call, status update, audit write) never
      stops the pass; an unexpected failure of a whole pass is logged and
      the loop sleeps until the next interval

Cancellation:
    - stop() sets a threading.Event
    - the inter-iteration sleep is stop_event.wait(), so it wakes at once
    - the event is checked before every row; the row in flight finishes
      (its HTTP call is bounded by SYNC_HTTP_TIMEOUT_SECONDS)

Usage:
    # At app startup
    synchronizer = RegistrationSynchronizer(store, audit, client_factory)
    synchronizer.start()

    # In tests, one pass without a thread
    report = synchronizer.run_iteration()

    # At app shutdown
    synchronizer.stop()
"""

from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from config import MIN_SYNC_INTERVAL_SECONDS, effective_sync_interval
from core.exceptions import (
    ConfigurationError,
    LocalPersistenceError,
    OrderBridgeError,
    RemoteTransportError,
)
from core.remote_client import (
    PATH_CREATE_ORDER,
    RemoteExecutionClient,
    build_curl_command,
)
from core.store import OrderStore
from models.order import Order, StatusCode
from models.results import RowOutcome, SendOutcome, SyncReport
from logging_config import get_logger, set_thread_name
from . import audit_service as audit_tags
from .audit_service import AuditService, order_params


logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_registration_record(order: Order) -> Dict[str, Any]:
    """CreateOrder record for one order, camelCase keys as the remote expects."""
    return {
        "productionOrder": str(order.production_order),
        "slitter": order.slitter,
        "creatorUser": order.creator_user,
        "createDateTime": order.created_at.isoformat() if order.created_at else None,
        "lastModificatorUser": order.last_modificator_user,
        "modificationDatetime": order.modified_at.isoformat() if order.modified_at else None,
        "status": int(order.status),
    }


class RegistrationSynchronizer:
    """
    Background service that registers pending orders remotely.

    Attributes:
        interval_seconds: Time between passes (never below the floor)
        is_running: Whether the background thread is active
        last_report: Summary of the most recent pass, if any
    """

    def __init__(
        self,
        store: OrderStore,
        audit: AuditService,
        client_factory: Callable[[float], RemoteExecutionClient],
        interval_seconds: float = 60.0,
        http_timeout_seconds: float = 30.0,
        clock: Callable[[], datetime] = utc_now,
        stop_event: Optional[threading.Event] = None,
    ):
        """
        Args:
            store: Record store
            audit: Audit sink
            client_factory: Creates a remote client given a timeout
            interval_seconds: Seconds between passes (clamped to the floor)
            http_timeout_seconds: Timeout for each CreateOrder call
            clock: Returns the current aware UTC time
            stop_event: Cancellation token (a new one if not provided)
        """
        if interval_seconds < MIN_SYNC_INTERVAL_SECONDS:
            logger.warning(
                f"Sync interval {interval_seconds}s below floor, "
                f"using {MIN_SYNC_INTERVAL_SECONDS}s"
            )

        self._store = store
        self._audit = audit
        self._client_factory = client_factory
        self._interval = effective_sync_interval(interval_seconds)
        self._http_timeout = http_timeout_seconds
        self._clock = clock

        # Thread control
        self._thread: Optional[threading.Thread] = None
        self._stop_event = stop_event or threading.Event()
        self._is_running = False

        self._last_report: Optional[SyncReport] = None
        self._consecutive_failures = 0

        logger.info(
            f"RegistrationSynchronizer initialized (interval: {self._interval}s, "
            f"http timeout: {http_timeout_seconds}s)"
        )

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def last_report(self) -> Optional[SyncReport]:
        return self._last_report

    @property
    def stop_event(self) -> threading.Event:
        return self._stop_event

    # =========================================================================
    # THREAD CONTROL
    # =========================================================================

    def start(self) -> None:
        """
        Start the background thread.

        Safe to call multiple times - only starts if not already running.
        """
        if self._is_running:
            logger.warning("RegistrationSynchronizer already running")
            return

        logger.info("Starting registration synchronizer thread...")
        self._stop_event.clear()

        self._thread = threading.Thread(
            target=self._run_loop,
            name="Synchronizer",
            daemon=True
        )
        self._is_running = True
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Signal the thread to stop and wait for it.

        The default wait covers one in-flight HTTP call.
        """
        if not self._is_running:
            return

        logger.info("Stopping registration synchronizer thread...")
        self._stop_event.set()

        join_timeout = timeout if timeout is not None else self._http_timeout + 5.0
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=join_timeout)
            if self._thread.is_alive():
                logger.warning("Synchronizer thread did not stop cleanly")

        self._is_running = False
        self._thread = None
        logger.info("Registration synchronizer thread stopped")

    def _run_loop(self) -> None:
        set_thread_name("Synchronizer")
        logger.info("Synchronizer loop starting")

        while not self._stop_event.is_set():
            try:
                self.run_iteration()
            except Exception as e:
                # Last line of defence; run_iteration handles its own rows
                self._consecutive_failures += 1
                logger.error(
                    f"Synchronizer iteration failed ({self._consecutive_failures} "
                    f"consecutive): {e}",
                    exc_info=True,
                )

            if self._stop_event.wait(timeout=self._interval):
                break

        self._is_running = False
        logger.info("Synchronizer loop exiting")

    # =========================================================================
    # ONE PASS
    # =========================================================================

    def run_iteration(self) -> SyncReport:
        """
        Run one pass over the registration candidates.

        Returns:
            SyncReport for this pass
        """
        report = SyncReport(correlation_id=str(uuid.uuid4()), started_at=self._clock())

        self._audit.append(0, audit_tags.RECURRING_SERVICE_START,
                           f"Started at {report.started_at.isoformat()}",
                           report.correlation_id)

        try:
            candidates = self._store.registration_candidates()
        except OrderBridgeError as e:
            # Covers a missing DATABASE_PATH as well as engine errors
            logger.error(f"Could not read registration candidates: {e}")
            report.error = str(e)
            candidates = []

        if candidates:
            logger.info(f"{len(candidates)} order(s) awaiting registration")

        client: Optional[RemoteExecutionClient] = None
        try:
            for order in candidates:
                if self._stop_event.is_set():
                    report.cancelled = True
                    logger.info("Shutdown requested, leaving remaining rows for later")
                    break

                if client is None:
                    client = self._client_factory(self._http_timeout)
                report.rows.append(self._process_row(client, order))
        except ConfigurationError as e:
            # No remote call was possible; rows keep their status
            logger.error(f"Synchronizer pass aborted: {e}")
            report.error = str(e)
        finally:
            if client is not None:
                client.close()

        report.finished_at = self._clock()
        self._audit.append(0, audit_tags.RECURRING_SERVICE_END,
                           f"Ended at {report.finished_at.isoformat()}; "
                           f"Processed={report.processed}",
                           report.correlation_id, report.error)

        self._last_report = report
        if not report.error:
            if self._consecutive_failures > 0:
                logger.info(f"Synchronizer recovered after {self._consecutive_failures} failures")
            self._consecutive_failures = 0

        if report.processed:
            logger.info(
                f"Iteration complete: {report.succeeded} registered, {report.failed} failed"
            )
        return report

    def _process_row(self, client: RemoteExecutionClient, order: Order) -> RowOutcome:
        """Push one order and record the outcome. Only ConfigurationError escapes."""
        production_order = order.production_order
        message_id = order.correlation_id or str(uuid.uuid4())
        record = build_registration_record(order)
        curl = self._curl_for(client, message_id, record)

        outcome, error = self._send(client, message_id, record, production_order)

        # Without an error the curl line is kept so the push can be replayed
        self._audit.append(0, audit_tags.RECURRING_SERVICE_SEND,
                           order_params(production_order), message_id,
                           error or curl)

        new_status = StatusCode.REGISTERED if outcome is SendOutcome.REGISTERED \
            else StatusCode.REGISTRATION_FAILED
        written: Optional[int] = int(new_status)
        try:
            self._store.update_status(production_order, new_status)
            logger.info(f"Updated order {production_order} status to {int(new_status)}")
        except LocalPersistenceError as e:
            written = None
            logger.error(f"Failed to update status for order {production_order}: {e}")

        return RowOutcome(
            production_order=production_order,
            message_id=message_id,
            outcome=outcome,
            new_status=written,
            error=error,
        )

    def _send(self, client: RemoteExecutionClient, message_id: str,
              record: Dict[str, Any], production_order: int):
        """Send CreateOrder and classify the result as (outcome, error text)."""
        try:
            response = client.create_order(message_id, record)
        except RemoteTransportError as e:
            logger.error(f"Exception while sending order {production_order}: {e}")
            return SendOutcome.TRANSPORT_FAILED, str(e)
        except ConfigurationError:
            raise
        except OrderBridgeError as e:
            logger.error(f"Could not send order {production_order}: {e}")
            return SendOutcome.TRANSPORT_FAILED, str(e)

        if not response.is_success_status:
            logger.error(
                f"Failed to send order {production_order}. "
                f"StatusCode: {response.status_code}. Response: {response.body}"
            )
            return SendOutcome.TRANSPORT_FAILED, response.body or f"HTTP {response.status_code}"

        if not response.is_logical_ok:
            error = response.error_text()
            logger.warning(
                f"Remote returned logical {response.result} for order {production_order}: {error}"
            )
            return SendOutcome.REJECTED, error

        logger.info(f"Successfully sent order {production_order} (messageId={message_id})")
        return SendOutcome.REGISTERED, ""

    @staticmethod
    def _curl_for(client: RemoteExecutionClient, message_id: str,
                  record: Dict[str, Any]) -> str:
        payload = RemoteExecutionClient.create_order_payload(message_id, record)
        return build_curl_command("POST", client.url_for(PATH_CREATE_ORDER), payload)
