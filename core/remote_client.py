"""
HTTP client for the remote execution system.

The remote system accepts typed commands under one base path and answers
with ``{"result": "OK" | "ERROR", "messages": [...]}``. This module turns
each call into a :class:`RemoteResponse` or raises
:class:`RemoteTransportError` when no response arrives at all. Whether a
response is a success is left to the caller, because start, stop, delete
and the synchronizer each treat the non-OK cases differently.

THREAD SAFETY:
    - Each thread creates its own RemoteExecutionClient (own requests.Session)
    - The synchronizer thread never shares a client with request threads

Usage:
    client = RemoteExecutionClient(base_url, timeout_seconds=15, logger=logger)

    response = client.start_order(message_id, 60001, "SL-02")
    if response.is_ok:
        ...
    elif response.status_code == 404:
        ...
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import requests

from .exceptions import ConfigurationError, RemoteTransportError


# Marker the remote system puts in front of its own error messages
ERROR_MARKER = "ERROR =>"

# Command paths relative to the base URL
PATH_CREATE_ORDER = "ProductionOrder/CreateOrder"
PATH_GET_ORDER = "ProductionOrder/GetOrder/{production_order}"
PATH_START_ORDER = "ProductionOrder/StartOrder"
PATH_STOP_ORDER = "ProductionOrder/StopOrder"
PATH_DELETE_ORDER = "ProductionOrder/DeleteOrder"
PATH_CREATE_SET = "Reels/CreateSet"


@dataclass
class RemoteResponse:
    """
    A response from the remote system, parsed as far as possible.

    ``result`` is None when the body is empty, not JSON, or has no
    ``result`` field; such 2xx responses count as logically OK.
    """

    command: str
    status_code: int
    body: str = ""
    result: Optional[str] = None
    messages: List[str] = field(default_factory=list)

    @property
    def is_success_status(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_logical_ok(self) -> bool:
        return self.result is None or self.result.upper() == "OK"

    @property
    def is_ok(self) -> bool:
        return self.is_success_status and self.is_logical_ok

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    def minimal(self) -> Any:
        """``{result, messages}`` when the body parsed, else the raw body."""
        if self.result is not None:
            return {"result": self.result, "messages": list(self.messages)}
        return self.body

    def error_text(self) -> str:
        """Messages joined for logs and audit entries, else the raw body."""
        if self.messages:
            return " | ".join(self.messages)
        return self.body


def parse_result(text: str) -> Optional[Tuple[str, List[str]]]:
    """
    Extract ``(result, messages)`` from a remote response body.

    Handles a plain JSON object, a JSON string that itself contains JSON,
    and a JSON object embedded in surrounding text.

    Returns:
        Tuple of result and messages, or None if nothing usable was found
    """
    if not text or not text.strip():
        return None

    parsed = _parse_result_document(text)
    if parsed is not None:
        return parsed

    start = text.find("{")
    end = text.rfind("}")
    if 0 <= start < end:
        return _parse_result_document(text[start:end + 1])
    return None


def _parse_result_document(text: str) -> Optional[Tuple[str, List[str]]]:
    try:
        document = json.loads(text)
    except (TypeError, ValueError):
        return None

    if isinstance(document, str):
        return _parse_result_document(document) if document.strip() else None

    if not isinstance(document, dict) or "result" not in document:
        return None

    result = document.get("result")
    result = "" if result is None else str(result)

    messages: List[str] = []
    raw_messages = document.get("messages")
    if isinstance(raw_messages, list):
        for item in raw_messages:
            if isinstance(item, str):
                if item.strip():
                    messages.append(item.strip())
            elif item is not None:
                messages.append(json.dumps(item))
    return result, messages


def relabel_error_messages(messages: List[str], label: str) -> List[str]:
    """
    Prefix remote error messages with the remote system's label.

    ``"ERROR => not running"`` becomes ``"<label> ERROR => not running"``.
    Messages without the marker pass through unchanged.
    """
    relabeled = []
    for message in messages:
        index = message.find(ERROR_MARKER)
        if index >= 0:
            relabeled.append(f"{label} {message[index:]}".strip())
        else:
            relabeled.append(message)
    return relabeled


def build_curl_command(method: str, url: str, payload: Optional[Dict[str, Any]]) -> str:
    """Render a request as a curl line so it can be replayed by hand."""
    parts = [f"curl -X '{method}' '{url}' -H 'accept: application/json'"]
    if payload is not None:
        body = json.dumps(payload, separators=(",", ":")).replace("'", "\\'")
        parts.append(f"-H 'Content-Type: application/json' -d '{body}'")
    return " ".join(parts)


class RemoteExecutionClient:
    """
    Client for the remote execution system.

    Each thread should create its own instance.

    Attributes:
        base_url: Base of the remote API
        timeout_seconds: Bound applied to every call
    """

    def __init__(
        self,
        base_url: Optional[str],
        timeout_seconds: float = 15.0,
        logger: Optional[logging.Logger] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            base_url: Base of the remote API (empty means not configured)
            timeout_seconds: Per-call timeout
            logger: Logger instance (creates default if not provided)
            session: requests.Session to use (a new one if not provided)
        """
        self._base_url = (base_url or "").rstrip("/")
        self._timeout = timeout_seconds
        self._logger = logger or logging.getLogger("order_bridge.core.remote_client")
        self._session = session or requests.Session()
        self._thread_id = threading.get_ident()

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def url_for(self, path: str) -> str:
        if not self._base_url:
            raise ConfigurationError("REMOTE_BASE_URL")
        return f"{self._base_url}/{path.lstrip('/')}"

    def close(self) -> None:
        self._session.close()

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def get_order(self, production_order: int) -> RemoteResponse:
        """Existence probe: 2xx means the remote has it, 404 means absent."""
        path = PATH_GET_ORDER.format(production_order=production_order)
        return self._send("GetOrder", "GET", path)

    def create_order(self, message_id: str, record: Dict[str, Any]) -> RemoteResponse:
        payload = self.create_order_payload(message_id, record)
        return self._send("CreateOrder", "POST", PATH_CREATE_ORDER, payload)

    @staticmethod
    def create_order_payload(message_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "messageType": "CREATE_ORDER",
            "messageId": message_id,
            "records": [record],
        }

    def start_order(self, message_id: str, production_order: int,
                    slitter: str) -> RemoteResponse:
        payload = {
            "messageType": "START_ORDER",
            "messageId": message_id,
            "productionOrder": str(production_order),
            "slitter": slitter,
        }
        return self._send("StartOrder", "POST", PATH_START_ORDER, payload)

    def stop_order(self, message_id: str, production_order: int,
                   slitter: str) -> RemoteResponse:
        payload = {
            "messageType": "STOP_ORDER",
            "messageId": message_id,
            "productionOrder": str(production_order),
            "slitter": slitter,
        }
        return self._send("StopOrder", "POST", PATH_STOP_ORDER, payload)

    def delete_order(self, message_id: str, production_order: int) -> RemoteResponse:
        payload = {
            "messageType": "DELETE_ORDER",
            "messageId": message_id,
            "productionOrder": str(production_order),
        }
        return self._send("DeleteOrder", "DELETE", PATH_DELETE_ORDER, payload)

    def create_reel_set(self, payload: Dict[str, Any]) -> RemoteResponse:
        return self._send("CreateSet", "POST", PATH_CREATE_SET, payload)

    def ping(self) -> RemoteResponse:
        """GET the base URL (readiness check)."""
        return self._send("Ping", "GET", "")

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def _send(self, command: str, method: str, path: str,
              payload: Optional[Dict[str, Any]] = None) -> RemoteResponse:
        """
        Send one command.

        Raises:
            ConfigurationError: If no base URL is configured
            RemoteTransportError: If no response arrives
        """
        url = self.url_for(path)
        self._logger.debug(
            f"[Thread {self._thread_id}] {method} {url} "
            f"messageId={payload.get('messageId') if payload else None}"
        )

        try:
            response = self._session.request(
                method,
                url,
                json=payload,
                headers={"accept": "application/json"},
                timeout=self._timeout,
            )
        except requests.Timeout as e:
            self._logger.error(f"[Thread {self._thread_id}] {command} timed out after {self._timeout}s")
            raise RemoteTransportError(command, f"timed out after {self._timeout}s") from e
        except requests.RequestException as e:
            self._logger.error(f"[Thread {self._thread_id}] {command} failed: {e}")
            raise RemoteTransportError(command, str(e)) from e

        try:
            text = response.text or ""
        finally:
            response.close()

        parsed = parse_result(text)
        result, messages = parsed if parsed is not None else (None, [])

        remote_response = RemoteResponse(
            command=command,
            status_code=response.status_code,
            body=text,
            result=result,
            messages=messages,
        )

        self._logger.debug(
            f"[Thread {self._thread_id}] {command} -> HTTP {response.status_code}, "
            f"result={result}"
        )
        return remote_response
