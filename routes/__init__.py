"""
Flask route blueprints for OrderBridge.

This module contains all route handlers organized by functionality:
- orders: Order lifecycle (create, validate, start, stop, delete, reads)
- reels: Reel event ingestion
- health: Liveness and readiness checks

Each blueprint is registered with the Flask app in create_app(), together
with the JSON error handler for OrderBridgeError.
"""

from core.exceptions import OrderBridgeError
from logging_config import get_logger

from .orders import orders_bp
from .reels import reels_bp
from .health import health_bp

__all__ = [
    "orders_bp",
    "reels_bp",
    "health_bp",
]


logger = get_logger(__name__)


def register_blueprints(app):
    """
    Register all blueprints and the error handler with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(orders_bp)
    app.register_blueprint(reels_bp)
    app.register_blueprint(health_bp)

    @app.errorhandler(OrderBridgeError)
    def handle_order_bridge_error(e: OrderBridgeError):
        if e.http_status >= 500:
            logger.error(f"{type(e).__name__} ({e.stage}): {e}")
        else:
            logger.info(f"{type(e).__name__} ({e.stage}): {e.message}")
        return e.to_dict(), e.http_status
