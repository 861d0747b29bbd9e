"""
Health check routes.

- /api/health/live  - process is up
- /api/health/ready - record store and remote system reachable (503 if not)
- /api/health       - readiness plus synchronizer state
"""

from typing import Any, Dict, Tuple

from flask import Blueprint, current_app

from core.exceptions import OrderBridgeError
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/health")


def _readiness() -> Tuple[Dict[str, Any], int]:
    health_status = {
        "status": "ok",
        "environment": current_app.config.get("ENVIRONMENT", "unknown"),
        "checks": {}
    }

    # Record store
    store = current_app.config.get("ORDER_STORE")
    try:
        store.ping()
        health_status["checks"]["store"] = "ok"
    except OrderBridgeError as e:
        logger.warning(f"Readiness: record store unavailable: {e}")
        health_status["checks"]["store"] = "unavailable"
        health_status["status"] = "degraded"

    # Remote system; any HTTP answer means it is reachable
    client = current_app.config["REMOTE_CLIENT_FACTORY"]()
    try:
        response = client.ping()
        health_status["checks"]["remote"] = "ok"
        health_status["checks"]["remote_status_code"] = response.status_code
    except OrderBridgeError as e:
        logger.warning(f"Readiness: remote system unavailable: {e}")
        health_status["checks"]["remote"] = "unavailable"
        health_status["status"] = "degraded"
    finally:
        client.close()

    status_code = 200 if health_status["status"] == "ok" else 503
    return health_status, status_code


@health_bp.route("/live", methods=["GET"])
def live():
    return {"status": "ok"}


@health_bp.route("/ready", methods=["GET"])
def ready():
    return _readiness()


@health_bp.route("", methods=["GET"])
def health():
    """Readiness plus the synchronizer's running flag and last pass."""
    health_status, status_code = _readiness()

    synchronizer = current_app.config.get("SYNCHRONIZER")
    if synchronizer and synchronizer.is_running:
        health_status["checks"]["synchronizer"] = "running"
    elif current_app.config.get("SYNC_ENABLED"):
        health_status["checks"]["synchronizer"] = "not_running"
        health_status["status"] = "degraded"
        status_code = 503
    else:
        health_status["checks"]["synchronizer"] = "disabled"

    if synchronizer and synchronizer.last_report:
        health_status["lastSync"] = synchronizer.last_report.to_dict()

    return health_status, status_code
