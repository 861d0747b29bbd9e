"""
Reel event ingestion.

Writes a reel event header and its details in one local transaction and
registers the set with the remote system before committing. Either both
sides hold the set or neither does:

    BEGIN
      insert header, insert details          (DB error -> rollback, DatabaseError)
      POST Reels/CreateSet
        no response                          -> rollback, RemoteTransportError
        non-2xx                              -> rollback, RemoteGatewayError
        2xx with result != OK                -> rollback, RemoteLogicalError
    COMMIT                                   (only after a logical OK)

The remote call runs inside the open transaction, so the SQLite write lock
is held for at most one remote timeout.
"""

from __future__ import annotations

import uuid
from typing import Any, Callable, Dict

from core.exceptions import (
    DatabaseError,
    LocalPersistenceError,
    OrderBridgeError,
    RemoteGatewayError,
    RemoteLogicalError,
    RemoteTransportError,
)
from core.remote_client import RemoteExecutionClient
from core.store import OrderStore
from models.reel_event import ReelEvent
from logging_config import get_logger, get_order_logger
from . import audit_service as audit_tags
from .audit_service import AuditService, order_params


logger = get_logger(__name__)


class ReelEventService:
    """Atomic local write + remote registration of reel sets."""

    def __init__(self, store: OrderStore, audit: AuditService,
                 client_factory: Callable[[], RemoteExecutionClient]):
        self._store = store
        self._audit = audit
        self._client_factory = client_factory

    def ingest(self, event: ReelEvent) -> Dict[str, Any]:
        """
        Persist and register one reel event.

        Args:
            event: Validated event (message id is assigned here)

        Returns:
            ``{"messageId": ..., "productionOrder": ...}``

        Raises:
            DatabaseError: Local insert or commit failed (rolled back)
            RemoteTransportError / RemoteGatewayError / RemoteLogicalError:
                remote registration failed (rolled back)
            LocalPersistenceError: Any other failure (rolled back)
        """
        event = event.with_message_id(str(uuid.uuid4()))
        message_id = event.message_id
        order_logger = get_order_logger(event.production_order)
        params = order_params(event.production_order)

        try:
            with self._store.begin() as tx:
                tx.insert_reel_event(event)
                for seq, detail in enumerate(event.reels):
                    tx.insert_reel_detail(message_id, seq, detail)

                response_text = self._register_remotely(event, order_logger)

                tx.commit()
        except DatabaseError as e:
            order_logger.error(f"Database error creating reel event {message_id}, rolled back: {e}")
            self._audit.append(event.user_id, audit_tags.CREATE_REEL_EVENT_DB_FAILED, params,
                               message_id, str(e))
            raise
        except (RemoteTransportError, RemoteGatewayError, RemoteLogicalError) as e:
            body = e.details.get("body")
            self._audit.append(event.user_id, audit_tags.CREATE_SET_EXTERNAL_FAILED, params,
                               message_id, body if isinstance(body, str) and body else str(e))
            raise
        except OrderBridgeError as e:
            order_logger.error(f"Error creating reel event {message_id}, rolled back: {e}")
            self._audit.append(event.user_id, audit_tags.CREATE_REEL_EVENT_FAILED, params,
                               message_id, str(e))
            raise
        except Exception as e:
            order_logger.error(f"Error creating reel event {message_id}, rolled back: {e}",
                               exc_info=True)
            self._audit.append(event.user_id, audit_tags.CREATE_REEL_EVENT_FAILED, params,
                               message_id, str(e))
            raise LocalPersistenceError(
                "An error occurred while creating the reel event.",
                {"message": str(e)},
                rollback=True,
            ) from e

        self._audit.append(event.user_id, audit_tags.CREATE_SET_EXTERNAL, params, message_id,
                           response_text)
        self._audit.append(event.user_id, audit_tags.CREATE_REEL_EVENT, params, message_id)
        order_logger.info(
            f"Reel event {message_id} stored with {len(event.reels)} reel(s) and sent to remote"
        )

        return {"messageId": message_id, "productionOrder": event.production_order}

    def _register_remotely(self, event: ReelEvent, order_logger) -> str:
        """
        Send the set; raises on any failure so the caller rolls back.

        Runs while the local transaction holds the write lock, so nothing
        here writes to the store (audit entries are written by the caller).

        Returns:
            The raw remote body, kept for the audit trail
        """
        client = self._client_factory()
        try:
            response = client.create_reel_set(event.to_remote_payload())
        except RemoteTransportError as e:
            order_logger.error(f"Error calling remote CreateSet: {e}")
            raise
        finally:
            client.close()

        if not response.is_success_status:
            order_logger.error(
                f"Remote CreateSet returned status {response.status_code}: {response.body}"
            )
            raise RemoteGatewayError(response.command, response.status_code,
                                     response.messages, response.minimal() or None)

        if not response.is_logical_ok:
            order_logger.error(f"Remote CreateSet returned logical failure: {response.body}")
            raise RemoteLogicalError(response.command, response.messages, response.minimal() or None)

        return response.body
