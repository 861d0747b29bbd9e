"""
Route tests through Flask's test client.

The app is built with TestingConfig, a temp database and the fake remote
client from conftest.
"""

from unittest.mock import patch

from app import create_app
from conftest import make_response
from core.exceptions import RemoteTransportError
from models.order import StatusCode


def _store(app):
    return app.config["ORDER_STORE"]


def _seed(app, production_order=60001, status=StatusCode.PENDING):
    store = _store(app)
    store.create_order(7, production_order, f"corr-{production_order}", "SL-01")
    store.update_status(production_order, status)


class TestOrderRoutes:

    def test_create_returns_201(self, client, app):
        response = client.post("/api/orders", json={"USERID": 7, "ORDER": 60001})

        assert response.status_code == 201
        assert response.get_json()["productionOrder"] == 60001
        assert response.get_json()["status"] == StatusCode.PENDING
        assert _store(app).order_exists(60001)

    def test_create_out_of_range_is_400(self, client, remote):
        response = client.post("/api/orders", json={"userId": 7, "order": 50000})

        assert response.status_code == 400
        body = response.get_json()
        assert body["stage"] == "validation"
        assert body["details"]["field"] == "order"
        remote.get_order.assert_not_called()

    def test_create_missing_order_is_400(self, client):
        response = client.post("/api/orders", json={"USERID": 7})
        assert response.status_code == 400
        assert response.get_json()["error"] == "ORDER is required."

    def test_create_remote_duplicate_is_409(self, client, remote):
        remote.get_order.return_value = make_response(200, command="GetOrder")

        response = client.post("/api/orders", json={"USERID": 7, "ORDER": 60000})

        assert response.status_code == 409
        assert response.get_json()["stage"] == "conflict"

    def test_validate_exists(self, client, app):
        assert client.get("/api/orders/valida/60001").get_json() == {"exists": False}
        _seed(app)
        assert client.get("/api/orders/valida/60001").get_json() == {"exists": True}

    def test_list_and_get(self, client, app):
        _seed(app, 60001)
        _seed(app, 60002, StatusCode.REGISTERED)

        listed = client.get("/api/orders").get_json()["orders"]
        assert [o["productionOrder"] for o in listed] == [60001, 60002]

        assert client.get("/api/orders/60002").get_json()["state"] == "registered"
        assert client.get("/api/orders/70000").status_code == 404

    def test_start_returns_204(self, client, app):
        _seed(app, status=950)

        response = client.post("/api/orders/60001/start", json={"userId": 3})

        assert response.status_code == 204
        assert _store(app).get_order(60001).status == StatusCode.RUNNING

    def test_start_outside_window_is_400(self, client, app, remote):
        _seed(app)
        response = client.post("/api/orders/60001/start")
        assert response.status_code == 400
        remote.start_order.assert_not_called()

    def test_start_transport_error_is_502(self, client, app, remote):
        _seed(app, status=900)
        remote.start_order.side_effect = RemoteTransportError("StartOrder", "timed out")

        response = client.post("/api/orders/60001/start")

        assert response.status_code == 502
        assert response.get_json()["stage"] == "transport"

    def test_stop_returns_result(self, client, app):
        _seed(app, status=1300)

        response = client.post("/api/orders/60001/stop", json={"userId": 3})

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == StatusCode.STOPPED
        assert body["localStopOk"] is True

    def test_stop_remote_404(self, client, app, remote):
        _seed(app, status=1300)
        remote.stop_order.return_value = make_response(
            404, result="ERROR", messages=["ERROR => not running"]
        )

        response = client.post("/api/orders/60001/stop")

        assert response.status_code == 404
        assert response.get_json()["error"] == "ZANCANER ERROR => not running"

    def test_delete_returns_204_then_409(self, client, app):
        _seed(app)

        assert client.delete("/api/orders/60001?userId=3").status_code == 204
        assert _store(app).get_order(60001).last_modificator_user == 3
        assert client.delete("/api/orders/60001").status_code == 409

    def test_bad_user_id_is_400(self, client, app):
        _seed(app, status=950)
        response = client.post("/api/orders/60001/start", json={"userId": "abc"})
        assert response.status_code == 400


class TestReelRoutes:

    BODY = {
        "productionOrder": 60001,
        "userId": 7,
        "upperShaftReels": 1,
        "lowerShaftReels": 0,
        "reelLength": 1000,
        "endOfLot": 1,
        "reels": [
            {"shaft": 1, "position": 1, "productCode": "P-1", "manualExit": 0, "edgeTrim": 0},
        ],
    }

    def test_ingest(self, client, app):
        response = client.post("/api/reels/events", json=self.BODY)

        assert response.status_code == 200
        body = response.get_json()
        assert body["productionOrder"] == 60001
        assert _store(app).count_reel_details(body["messageId"]) == 1

    def test_empty_reels_is_400(self, client):
        body = dict(self.BODY, reels=[])
        response = client.post("/api/reels/events", json=body)
        assert response.status_code == 400
        assert response.get_json()["error"] == "At least one reel must be provided."

    def test_remote_rejection_is_502(self, client, remote):
        remote.create_reel_set.return_value = make_response(
            200, result="ERROR", messages=["ERROR => no"]
        )
        response = client.post("/api/reels/events", json=self.BODY)
        assert response.status_code == 502
        assert response.get_json()["stage"] == "remote"


class TestHealthRoutes:

    def test_live(self, client):
        assert client.get("/api/health/live").get_json() == {"status": "ok"}

    def test_ready(self, client):
        response = client.get("/api/health/ready")
        assert response.status_code == 200
        assert response.get_json()["checks"]["store"] == "ok"

    def test_not_ready_when_remote_unreachable(self, client, remote):
        remote.ping.side_effect = RemoteTransportError("Ping", "refused")
        response = client.get("/api/health/ready")
        assert response.status_code == 503
        assert response.get_json()["checks"]["remote"] == "unavailable"

    def test_health_reports_disabled_synchronizer(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json()["checks"]["synchronizer"] == "disabled"


class TestAppFactory:

    def test_testing_app_skips_exit_hook(self, tmp_path, remote):
        with patch("app.atexit.register") as register:
            flask_app = create_app(
                "config.TestingConfig",
                overrides={
                    "DATABASE_PATH": str(tmp_path / "factory.db"),
                    "REMOTE_CLIENT_FACTORY": lambda: remote,
                },
            )
        register.assert_not_called()
        assert flask_app.config["SYNCHRONIZER"].is_running is False

    def test_production_style_app_registers_exit_hook(self, tmp_path, remote):
        with patch("app.atexit.register") as register:
            create_app(
                "config.DevelopmentConfig",
                overrides={
                    "DATABASE_PATH": str(tmp_path / "factory.db"),
                    "SYNC_ENABLED": False,
                    "REMOTE_CLIENT_FACTORY": lambda: remote,
                },
            )
        register.assert_called_once()
