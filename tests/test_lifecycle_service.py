"""
Unit tests for the lifecycle orchestrator (create, start, stop, delete).

Uses a real temp-file store and a MagicMock remote client.
"""

import pytest
from unittest.mock import MagicMock

from conftest import make_response
from core.exceptions import (
    DuplicateRemoteOrderError,
    OrderConflictError,
    LocalPersistenceError,
    OrderAlreadyDeletedError,
    OrderNotFoundError,
    RemoteGatewayError,
    RemoteLogicalError,
    RemoteTransportError,
    ValidationError,
)
from models.order import StatusCode
from services import audit_service as audit_tags
from services.audit_service import AuditService
from services.lifecycle_service import LifecycleService


def _actions(store, action=None):
    return [entry["action"] for entry in store.list_audit(action=action)]


class TestCreate:

    @pytest.mark.parametrize("number", [0, 50000, 1000000, 1500000])
    def test_out_of_range_touches_nothing(self, number, store, remote):
        store_spy = MagicMock(wraps=store)
        service = LifecycleService(store_spy, AuditService(store), lambda: remote)

        with pytest.raises(ValidationError):
            service.create_order(7, number)

        assert store_spy.method_calls == []
        assert remote.method_calls == []

    def test_create_inserts_pending_order(self, lifecycle, store, remote):
        order = lifecycle.create_order(7, 60001, "SL-01")

        assert order.status == StatusCode.PENDING
        assert order.slitter == "SL-01"
        remote.get_order.assert_called_once_with(60001)
        entries = store.list_audit(action=audit_tags.CREATE_MANUAL_ORDER)
        assert len(entries) == 1
        assert entries[0]["params"] == "Production_Order=60001"
        assert entries[0]["correlation_id"] == order.correlation_id

    def test_remote_duplicate_is_conflict_without_row(self, lifecycle, store, remote):
        remote.get_order.return_value = make_response(200, command="GetOrder")

        with pytest.raises(DuplicateRemoteOrderError) as exc_info:
            lifecycle.create_order(7, 60000)

        assert exc_info.value.http_status == 409
        assert store.get_order(60000) is None
        assert _actions(store) == [audit_tags.CREATE_ORDER_DUPLICATE_REMOTE]

    def test_duplicate_marks_existing_row_201(self, lifecycle, store, remote, seed_order):
        seed_order(60000)
        remote.get_order.return_value = make_response(200, command="GetOrder")

        with pytest.raises(DuplicateRemoteOrderError):
            lifecycle.create_order(7, 60000)

        assert store.get_order(60000).status == StatusCode.DUPLICATE_REMOTE

    def test_probe_transport_failure_still_creates(self, lifecycle, store, remote):
        remote.get_order.side_effect = RemoteTransportError("GetOrder", "refused")
        lifecycle.create_order(7, 60001)
        assert store.order_exists(60001)

    def test_probe_can_be_disabled(self, lifecycle, store, remote):
        lifecycle.probe_on_create = False
        lifecycle.create_order(7, 60001)
        remote.get_order.assert_not_called()

    def test_local_duplicate_is_audited(self, lifecycle, store, seed_order):
        seed_order(60001)
        with pytest.raises(OrderConflictError) as exc_info:
            lifecycle.create_order(7, 60001)
        assert exc_info.value.http_status == 409
        entry = store.list_audit(action=audit_tags.CREATE_MANUAL_ORDER)[0]
        assert "already exists" in entry["error_msg"]


class TestValidateExists:

    def test_reports_presence(self, lifecycle, seed_order):
        assert lifecycle.validate_exists(60001) is False
        seed_order(60001)
        assert lifecycle.validate_exists(60001) is True


class TestStart:

    def test_start_in_window_goes_running(self, lifecycle, store, remote, seed_order):
        seed_order(60001, status=950)

        lifecycle.start_order(60001, user_id=3)

        assert store.get_order(60001).status == StatusCode.RUNNING
        assert len(store.list_audit(action=audit_tags.START_ORDER)) == 1
        remote.start_order.assert_called_once_with("corr-60001", 60001, "SL-01")

    def test_explicit_slitter_overrides_stored(self, lifecycle, remote, seed_order):
        seed_order(60001, status=900)
        lifecycle.start_order(60001, slitter="SL-09")
        assert remote.start_order.call_args.args[2] == "SL-09"

    @pytest.mark.parametrize("status", [100, 200, 201, 1100, 1300])
    def test_outside_window_makes_no_remote_call(self, status, lifecycle, store, remote,
                                                 seed_order):
        seed_order(60001, status=status)

        with pytest.raises(ValidationError):
            lifecycle.start_order(60001)

        remote.start_order.assert_not_called()
        assert store.get_order(60001).status == status

    def test_unknown_order(self, lifecycle, remote):
        with pytest.raises(OrderNotFoundError):
            lifecycle.start_order(60001)
        remote.start_order.assert_not_called()

    def test_logical_error_sets_start_failed(self, lifecycle, store, remote, seed_order):
        seed_order(60001, status=900)
        remote.start_order.return_value = make_response(
            200, result="ERROR", messages=["ERROR => slitter busy"]
        )

        with pytest.raises(RemoteLogicalError) as exc_info:
            lifecycle.start_order(60001)

        assert exc_info.value.messages == ["ZANCANER ERROR => slitter busy"]
        assert store.get_order(60001).status == StatusCode.START_FAILED
        entry = store.list_audit(action=audit_tags.START_ORDER)[0]
        assert entry["error_msg"] == "ERROR => slitter busy"

    def test_gateway_error_sets_start_failed(self, lifecycle, store, remote, seed_order):
        seed_order(60001, status=900)
        remote.start_order.return_value = make_response(500, result=None, body="boom")

        with pytest.raises(RemoteGatewayError):
            lifecycle.start_order(60001)
        assert store.get_order(60001).status == StatusCode.START_FAILED

    def test_transport_error_sets_start_failed(self, lifecycle, store, remote, seed_order):
        seed_order(60001, status=900)
        remote.start_order.side_effect = RemoteTransportError("StartOrder", "timed out")

        with pytest.raises(RemoteTransportError):
            lifecycle.start_order(60001)
        assert store.get_order(60001).status == StatusCode.START_FAILED

    def test_running_write_failure_is_audited(self, lifecycle, store, remote, seed_order):
        seed_order(60001, status=950)
        original = store.update_status
        store.update_status = MagicMock(side_effect=LocalPersistenceError("disk full"))
        try:
            with pytest.raises(LocalPersistenceError):
                lifecycle.start_order(60001, user_id=3)
        finally:
            store.update_status = original

        remote.start_order.assert_called_once()
        entries = store.list_audit(action=audit_tags.START_ORDER)
        assert len(entries) == 1
        assert "1300" in entries[0]["error_msg"]
        assert store.get_order(60001).status == 950

    def test_client_is_closed(self, lifecycle, remote, seed_order):
        seed_order(60001, status=900)
        lifecycle.start_order(60001)
        remote.close.assert_called_once()


class TestStop:

    def test_unknown_order_makes_no_remote_call(self, lifecycle, remote):
        with pytest.raises(OrderNotFoundError):
            lifecycle.stop_order(60001)
        remote.stop_order.assert_not_called()

    def test_remote_404_is_relabeled_not_found(self, lifecycle, store, remote, seed_order):
        seed_order(60001, status=1300)
        remote.stop_order.return_value = make_response(
            404, result="ERROR", messages=["ERROR => not running"]
        )

        with pytest.raises(OrderNotFoundError) as exc_info:
            lifecycle.stop_order(60001)

        assert exc_info.value.message == "ZANCANER ERROR => not running"
        assert exc_info.value.http_status == 404
        assert store.get_order(60001).status == 1300

    def test_success_runs_local_stop(self, lifecycle, store, remote, seed_order):
        seed_order(60001, status=1300)
        remote.stop_order.return_value = make_response(messages=["stopped at 12:00"])

        result = lifecycle.stop_order(60001, user_id=3)

        assert result.status == StatusCode.STOPPED
        assert result.local_stop_ok is True
        assert result.remote_messages == ["stopped at 12:00"]
        assert store.get_order(60001).status == StatusCode.STOPPED
        assert _actions(store) == [
            audit_tags.STOP_ORDER_REMOTE,
            audit_tags.STOP_ORDER_LOCAL,
            audit_tags.STOP_ORDER,
        ]

    def test_local_stop_failure_leaves_920(self, lifecycle, store, remote, seed_order):
        seed_order(60001, status=1300)
        original = store.stop_order
        store.stop_order = MagicMock(side_effect=LocalPersistenceError("disk full"))
        try:
            result = lifecycle.stop_order(60001)
        finally:
            store.stop_order = original

        assert result.local_stop_ok is False
        assert result.status == StatusCode.STOP_FAILED_LOCAL
        assert store.get_order(60001).status == StatusCode.STOP_FAILED_LOCAL

    def test_logical_error_changes_nothing(self, lifecycle, store, remote, seed_order):
        seed_order(60001, status=1300)
        remote.stop_order.return_value = make_response(
            200, result="ERROR", messages=["ERROR => locked"]
        )

        with pytest.raises(RemoteLogicalError) as exc_info:
            lifecycle.stop_order(60001)

        assert exc_info.value.messages == ["ZANCANER ERROR => locked"]
        assert store.get_order(60001).status == 1300

    def test_gateway_error_changes_nothing(self, lifecycle, store, remote, seed_order):
        seed_order(60001, status=1300)
        remote.stop_order.return_value = make_response(500, result=None, body="down")

        with pytest.raises(RemoteGatewayError):
            lifecycle.stop_order(60001)

        assert store.get_order(60001).status == 1300

    def test_final_status_write_failure_raises(self, lifecycle, store, remote, seed_order):
        seed_order(60001, status=1300)
        original = store.update_status
        store.update_status = MagicMock(side_effect=LocalPersistenceError("locked"))
        try:
            with pytest.raises(LocalPersistenceError):
                lifecycle.stop_order(60001)
        finally:
            store.update_status = original

        assert store.get_order(60001).status == 1300
        entry = store.list_audit(action=audit_tags.STOP_ORDER)[0]
        assert "930" in entry["error_msg"]

    def test_transport_error_is_audited(self, lifecycle, store, remote, seed_order):
        seed_order(60001, status=1300)
        remote.stop_order.side_effect = RemoteTransportError("StopOrder", "refused")

        with pytest.raises(RemoteTransportError):
            lifecycle.stop_order(60001)
        assert _actions(store) == [audit_tags.STOP_ORDER_REMOTE]


class TestDelete:

    @pytest.mark.parametrize("status", [1100, 1300])
    def test_terminal_is_conflict_without_side_effects(self, status, lifecycle, store, remote,
                                                       seed_order):
        seed_order(60001, status=status)

        with pytest.raises(OrderAlreadyDeletedError) as exc_info:
            lifecycle.delete_order(60001)

        assert exc_info.value.http_status == 409
        remote.delete_order.assert_not_called()
        assert store.get_order(60001).status == status
        assert store.list_audit() == []

    def test_pending_order_deleted_locally_only(self, lifecycle, store, remote, seed_order):
        seed_order(60001)
        lifecycle.delete_order(60001)

        remote.delete_order.assert_not_called()
        assert store.get_order(60001).status == StatusCode.DELETED

    def test_registered_order_deleted_remotely_first(self, lifecycle, store, remote, seed_order):
        seed_order(60001, status=900)
        lifecycle.delete_order(60001, user_id=3)

        remote.delete_order.assert_called_once_with("corr-60001", 60001)
        assert _actions(store) == [audit_tags.DELETE_ORDER_REMOTE, audit_tags.DELETE_ORDER]

    def test_second_delete_is_conflict(self, lifecycle, seed_order):
        seed_order(60001)
        lifecycle.delete_order(60001)
        with pytest.raises(OrderAlreadyDeletedError):
            lifecycle.delete_order(60001)

    def test_remote_not_found_keeps_local_row(self, lifecycle, store, remote, seed_order):
        seed_order(60001, status=900)
        remote.delete_order.return_value = make_response(
            404, result="ERROR", messages=["ERROR => unknown order"]
        )

        with pytest.raises(OrderNotFoundError) as exc_info:
            lifecycle.delete_order(60001)

        assert exc_info.value.message == "ZANCANER ERROR => unknown order"
        assert store.get_order(60001).status == 900

    @pytest.mark.parametrize("failure", [
        RemoteTransportError("DeleteOrder", "refused"),
        make_response(200, result="ERROR", messages=["ERROR => order in use"]),
    ])
    def test_remote_failure_keeps_local_row(self, failure, lifecycle, store, remote,
                                            seed_order):
        seed_order(60001, status=900)
        if isinstance(failure, Exception):
            remote.delete_order.side_effect = failure
            expected = RemoteTransportError
        else:
            remote.delete_order.return_value = failure
            expected = RemoteLogicalError

        with pytest.raises(expected):
            lifecycle.delete_order(60001)

        assert store.get_order(60001).status == 900
        assert audit_tags.DELETE_ORDER not in _actions(store)

    def test_unknown_order(self, lifecycle):
        with pytest.raises(OrderNotFoundError):
            lifecycle.delete_order(60001)


class TestAuditFailures:

    def test_audit_failure_does_not_fail_start(self, store, remote, seed_order):

        writer = MagicMock()
        writer.append_audit.side_effect = RuntimeError("audit table locked")
        service = LifecycleService(store, AuditService(writer), lambda: remote)
        seed_order(60001, status=900)

        service.start_order(60001)

        assert store.get_order(60001).status == StatusCode.RUNNING
