"""
Shared fixtures: a temp-file record store, a fake remote client and a
Flask app wired to both.
"""

import json

import pytest
from unittest.mock import MagicMock

from app import create_app
from core.remote_client import RemoteExecutionClient, RemoteResponse
from core.store import OrderStore
from models.order import StatusCode
from services.audit_service import AuditService
from services.lifecycle_service import LifecycleService


def make_response(status_code=200, result="OK", messages=None, command="Test", body=None):
    """Build a RemoteResponse the way the client would after parsing."""
    messages = list(messages or [])
    if body is None:
        body = json.dumps({"result": result, "messages": messages}) if result is not None else ""
    return RemoteResponse(
        command=command,
        status_code=status_code,
        body=body,
        result=result,
        messages=messages,
    )


@pytest.fixture
def store(tmp_path):
    """Initialized record store in a temp file."""
    order_store = OrderStore(tmp_path / "orders.db")
    order_store.initialize()
    return order_store


@pytest.fixture
def audit(store):
    return AuditService(store)


@pytest.fixture
def remote():
    """
    Fake remote client.

    Every command answers 200 {"result": "OK"} unless a test overrides it;
    get_order answers 404 so creates are not flagged as duplicates.
    """
    client = MagicMock(spec=RemoteExecutionClient)
    client.get_order.return_value = make_response(404, result=None, body="", command="GetOrder")
    client.create_order.return_value = make_response(command="CreateOrder")
    client.start_order.return_value = make_response(command="StartOrder")
    client.stop_order.return_value = make_response(command="StopOrder")
    client.delete_order.return_value = make_response(command="DeleteOrder")
    client.create_reel_set.return_value = make_response(command="CreateSet")
    client.ping.return_value = make_response(command="Ping")
    client.url_for.side_effect = lambda path: f"http://remote.test/ZncWebApi/{path}"
    return client


@pytest.fixture
def lifecycle(store, audit, remote):
    return LifecycleService(store, audit, lambda: remote)


@pytest.fixture
def seed_order(store):
    """Insert an order and force its status."""
    def _seed(production_order=60001, status=StatusCode.PENDING, slitter="SL-01"):
        store.create_order(7, production_order, f"corr-{production_order}", slitter)
        if int(status) != int(StatusCode.PENDING):
            store.update_status(production_order, status)
        return store.get_order(production_order)
    return _seed


@pytest.fixture
def app(tmp_path, remote):
    flask_app = create_app(
        "config.TestingConfig",
        overrides={
            "DATABASE_PATH": str(tmp_path / "app.db"),
            "REMOTE_CLIENT_FACTORY": lambda: remote,
            "SYNC_CLIENT_FACTORY": lambda timeout: remote,
        },
    )
    yield flask_app
    flask_app.config["SYNCHRONIZER"].stop()


@pytest.fixture
def client(app):
    return app.test_client()
