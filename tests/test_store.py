"""
Unit tests for the SQLite record store.
"""

import pytest

from core.exceptions import (
    ConfigurationError,
    DatabaseError,
    OrderConflictError,
)
from core.store import OrderStore
from models.order import StatusCode, awaits_registration
from models.reel_event import ReelDetail, ReelEvent


def _event(message_id="m-1"):
    return ReelEvent(
        production_order=60001,
        user_id=7,
        upper_shaft_reels=1,
        lower_shaft_reels=1,
        reel_length=1200,
        end_of_lot=True,
        reels=(
            ReelDetail(shaft=1, position=1, product_code="P-1", manual_exit=False, edge_trim=2),
            ReelDetail(shaft=2, position=1, product_code="P-2", manual_exit=True, edge_trim=0),
        ),
        message_id=message_id,
    )


class TestConfiguration:

    def test_missing_path_is_configuration_error(self):
        store = OrderStore("")
        with pytest.raises(ConfigurationError) as exc_info:
            store.initialize()
        assert exc_info.value.stage == "configuration"

    def test_initialize_is_idempotent(self, store):
        store.initialize()
        assert store.is_initialized

    def test_ping(self, store):
        store.ping()


class TestOrders:

    def test_create_defaults_to_pending(self, store):
        store.create_order(7, 60001, "corr-1", "SL-01")
        order = store.get_order(60001)
        assert order.status == StatusCode.PENDING
        assert order.creator_user == 7
        assert order.slitter == "SL-01"
        assert order.correlation_id == "corr-1"
        assert order.created_at is not None

    def test_duplicate_number_is_conflict(self, store):
        store.create_order(7, 60001, "corr-1")
        with pytest.raises(OrderConflictError):
            store.create_order(8, 60001, "corr-2")

    def test_get_missing_returns_none(self, store):
        assert store.get_order(60001) is None
        assert not store.order_exists(60001)

    def test_update_status_returns_rows(self, store):
        store.create_order(7, 60001, "corr-1")
        assert store.update_status(60001, StatusCode.REGISTERED, user_id=9) == 1
        order = store.get_order(60001)
        assert order.status == 900
        assert order.last_modificator_user == 9
        assert store.update_status(70000, StatusCode.REGISTERED) == 0

    def test_delete_is_logical(self, store):
        store.create_order(7, 60001, "corr-1")
        assert store.delete_order(60001, user_id=3) == 1
        assert store.get_order(60001).status == StatusCode.DELETED
        assert store.delete_order(70000) == 0

    def test_registration_candidates(self, store):
        for number, status in [(60001, 100), (60002, 200), (60003, 201),
                               (60004, 900), (60005, 1300)]:
            store.create_order(7, number, f"corr-{number}")
            store.update_status(number, status)
        candidates = [o.production_order for o in store.registration_candidates()]
        assert candidates == [60001, 60002]

    def test_registration_candidates_match_predicate(self, store):
        statuses = [100, 200, 201, 899, 900, 901, 930, 1100, 1300]
        for offset, status in enumerate(statuses):
            store.create_order(7, 60001 + offset, f"corr-{offset}")
            store.update_status(60001 + offset, status)

        selected = {o.status for o in store.registration_candidates()}

        assert selected == {s for s in statuses if awaits_registration(s)}


class TestReelTransactions:

    def test_commit_persists_header_and_details(self, store):
        with store.begin() as tx:
            tx.insert_reel_event(_event())
            for seq, detail in enumerate(_event().reels):
                tx.insert_reel_detail("m-1", seq, detail)
            tx.commit()

        stored = store.get_reel_event("m-1")
        assert stored["production_order"] == 60001
        assert stored["end_of_lot"] == 1
        assert [d["product_code"] for d in stored["details"]] == ["P-1", "P-2"]

    def test_uncommitted_block_rolls_back(self, store):
        with store.begin() as tx:
            tx.insert_reel_event(_event())
            tx.insert_reel_detail("m-1", 0, _event().reels[0])

        assert store.get_reel_event("m-1") is None
        assert store.count_reel_details("m-1") == 0

    def test_duplicate_message_id_is_database_error(self, store):
        with store.begin() as tx:
            tx.insert_reel_event(_event())
            tx.commit()

        with pytest.raises(DatabaseError) as exc_info:
            with store.begin() as tx:
                tx.insert_reel_event(_event())
        assert exc_info.value.stage == "local"


class TestAudit:

    def test_append_and_filter(self, store):
        store.append_audit(7, "START_ORDER", "Production_Order=60001", "c-1")
        store.append_audit(7, "STOP_ORDER", "Production_Order=60001", "c-1", "boom")
        store.append_audit(0, "START_ORDER", "Production_Order=60002", "c-2")

        assert len(store.list_audit()) == 3
        starts = store.list_audit(action="START_ORDER")
        assert [e["correlation_id"] for e in starts] == ["c-1", "c-2"]
        stop = store.list_audit(action="STOP_ORDER", correlation_id="c-1")[0]
        assert stop["error_msg"] == "boom"
