"""
Configuration for OrderBridge.

Connectivity settings (database file, remote API base URL) come from the
environment or a .env file. A missing value is a configuration error that
surfaces the first time a request needs it.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file early so environment variables are available for Config class
# This must happen before the Config class is defined
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent

# The synchronizer never runs tighter than this
MIN_SYNC_INTERVAL_SECONDS = 5


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Default configuration for the Flask application."""

    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")
    DEBUG = _env_flag("FLASK_DEBUG", "1")
    TESTING = False
    JSON_SORT_KEYS = False
    LOG_DIR = os.environ.get("LOG_DIR", str(BASE_DIR / "logs"))

    # System of record (SQLite file)
    DATABASE_PATH = os.environ.get(
        "DATABASE_PATH", str(BASE_DIR / "data" / "orders.db")
    )
    # Writers wait this long for a lock; a reel event transaction holds the
    # lock across one remote call, so keep it above the remote timeout
    DATABASE_BUSY_TIMEOUT_MS = int(os.environ.get("DATABASE_BUSY_TIMEOUT_MS", "20000"))

    # ==========================================================================
    # Remote execution system
    # ==========================================================================
    # REMOTE_BASE_URL: base of the remote API, commands are appended to it
    #   e.g. http://slitter-host:88/ZncWebApi -> .../ProductionOrder/StartOrder
    #
    # REMOTE_REQUEST_TIMEOUT_SECONDS: bound for interactive calls (start/stop/...)
    # REMOTE_ERROR_LABEL: prefix put on "ERROR =>" messages before they are
    #   shown to callers so operators know the remote system produced them
    # ==========================================================================
    REMOTE_BASE_URL = os.environ.get("REMOTE_BASE_URL", "")
    REMOTE_REQUEST_TIMEOUT_SECONDS = float(
        os.environ.get("REMOTE_REQUEST_TIMEOUT_SECONDS", "15")
    )
    REMOTE_PROBE_ON_CREATE = _env_flag("REMOTE_PROBE_ON_CREATE", "1")
    REMOTE_ERROR_LABEL = os.environ.get("REMOTE_ERROR_LABEL", "ZANCANER")

    # ==========================================================================
    # Registration synchronizer
    # ==========================================================================
    # SYNC_INTERVAL_SECONDS is clamped to MIN_SYNC_INTERVAL_SECONDS
    # SYNC_HTTP_TIMEOUT_SECONDS is deliberately longer than interactive calls;
    #   nobody is waiting on the other side of the synchronizer
    # ==========================================================================
    SYNC_ENABLED = _env_flag("SYNC_ENABLED", "1")
    SYNC_INTERVAL_SECONDS = float(os.environ.get("SYNC_INTERVAL_SECONDS", "60"))
    SYNC_HTTP_TIMEOUT_SECONDS = float(os.environ.get("SYNC_HTTP_TIMEOUT_SECONDS", "30"))


class ProductionConfig(Config):
    """Production configuration."""
    ENVIRONMENT = "production"
    DEBUG = False
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration."""
    ENVIRONMENT = "testing"
    DEBUG = False
    TESTING = True
    SYNC_ENABLED = False
    REMOTE_BASE_URL = "http://remote.test/ZncWebApi"


def effective_sync_interval(seconds: float) -> float:
    """Clamp a configured interval to the synchronizer floor."""
    return max(float(seconds), float(MIN_SYNC_INTERVAL_SECONDS))
