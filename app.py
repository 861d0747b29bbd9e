"""
OrderBridge - Flask Application Entry Point.

This is a slim app factory that:
1. Opens the record store (schema created on startup)
2. Builds the audit sink and the remote client factories
3. Creates the lifecycle and reel event services
4. Starts the registration synchronizer (separate thread)
5. Registers route blueprints and the JSON error handler

ARCHITECTURE:
    Main Thread
    ├── Record store initialization
    ├── Flask request handling (one remote client per call)
    └── Cleanup on shutdown (stop synchronizer)

    Synchronizer Thread (background)
    └── Interval loop with OWN remote client per pass

NO SHARED HTTP SESSION between request threads and the synchronizer.
The record store opens a short-lived connection per operation.
"""

from __future__ import annotations

import atexit
import logging
import os
import sys
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv
from flask import Flask

from logging_config import setup_logging, get_logger
from core.remote_client import RemoteExecutionClient
from core.store import OrderStore
from services.audit_service import AuditService
from services.lifecycle_service import LifecycleService
from services.reel_service import ReelEventService
from services.sync_service import RegistrationSynchronizer
from routes import register_blueprints


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


def _get_base_path() -> Path:
    """
    Get the base path for the application.

    In PyInstaller bundle: Returns the directory containing the executable
    In development: Returns the directory containing app.py
    """
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    else:
        return Path(__file__).parent


def create_app(config_object: Any = "config.Config",
               overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """
    Application factory - creates and configures Flask app.

    Args:
        config_object: Config class or its import path
        overrides: Extra config values applied last (tests use this)

    Returns:
        Configured Flask application

    Raises:
        ConfigurationError: If DATABASE_PATH is empty
        DatabaseError: If the schema cannot be created
    """
    # Use override=True so .env file always takes precedence over shell environment
    env_file = _get_base_path() / '.env'
    if env_file.exists():
        load_dotenv(env_file, override=True)

    # Create Flask app
    app = Flask(__name__)
    app.config.from_object(config_object)
    if overrides:
        app.config.update(overrides)

    # Configure logging
    log_level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    enable_file_logging = app.config.get("ENVIRONMENT") == "production"

    root_logger = setup_logging(
        log_level=log_level,
        log_dir=app.config.get("LOG_DIR"),
        enable_file_logging=enable_file_logging
    )

    # Set Flask's logger to use our configured logger
    app.logger.handlers = root_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting OrderBridge in {app.config.get('ENVIRONMENT')} mode")

    # =========================================================================
    # CORE INITIALIZATION
    # =========================================================================

    store = OrderStore(
        app.config.get("DATABASE_PATH"),
        busy_timeout_ms=app.config.get("DATABASE_BUSY_TIMEOUT_MS", 20000),
    )
    store.initialize()
    app.config["ORDER_STORE"] = store

    base_url = app.config.get("REMOTE_BASE_URL")
    if not base_url:
        # Not fatal: each remote call raises ConfigurationError instead
        logger.warning("REMOTE_BASE_URL is not set; remote calls will fail")

    interactive_timeout = float(app.config.get("REMOTE_REQUEST_TIMEOUT_SECONDS", 15))

    def client_factory() -> RemoteExecutionClient:
        return RemoteExecutionClient(base_url, timeout_seconds=interactive_timeout)

    def sync_client_factory(timeout_seconds: float) -> RemoteExecutionClient:
        return RemoteExecutionClient(base_url, timeout_seconds=timeout_seconds)

    # Tests swap in fakes through overrides
    client_factory = app.config.get("REMOTE_CLIENT_FACTORY") or client_factory
    sync_client_factory = app.config.get("SYNC_CLIENT_FACTORY") or sync_client_factory
    app.config["REMOTE_CLIENT_FACTORY"] = client_factory
    app.config["SYNC_CLIENT_FACTORY"] = sync_client_factory

    # =========================================================================
    # SERVICES INITIALIZATION
    # =========================================================================

    audit = AuditService(store)
    app.config["AUDIT_SERVICE"] = audit

    app.config["LIFECYCLE_SERVICE"] = LifecycleService(
        store,
        audit,
        client_factory,
        error_label=app.config.get("REMOTE_ERROR_LABEL", "ZANCANER"),
        probe_on_create=app.config.get("REMOTE_PROBE_ON_CREATE", True),
    )
    app.config["REEL_SERVICE"] = ReelEventService(store, audit, client_factory)

    synchronizer = RegistrationSynchronizer(
        store,
        audit,
        sync_client_factory,
        interval_seconds=float(app.config.get("SYNC_INTERVAL_SECONDS", 60)),
        http_timeout_seconds=float(app.config.get("SYNC_HTTP_TIMEOUT_SECONDS", 30)),
    )
    app.config["SYNCHRONIZER"] = synchronizer

    if app.config.get("SYNC_ENABLED"):
        synchronizer.start()
        logger.info("Registration synchronizer started")
    else:
        logger.info("Registration synchronizer disabled")

    # =========================================================================
    # CLEANUP REGISTRATION
    # =========================================================================

    def cleanup():
        """Cleanup on application shutdown."""
        logger.info("Shutting down...")
        synchronizer.stop()
        logger.info("Shutdown complete")

    # Test suites build many apps; their fixtures stop the synchronizer
    if not app.config.get("TESTING"):
        atexit.register(cleanup)

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)

    logger.info("Application initialized successfully")
    return app


if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "1") == "1"
    # The reloader would start a second synchronizer thread
    app.run(debug=debug_mode, use_reloader=False)
