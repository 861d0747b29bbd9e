"""
Record store for production orders, reel events and the audit log.

The store is the system of record. Every entry point opens its own
short-lived SQLite connection and commits independently; the only
multi-statement transaction is the reel event ingestion, which goes
through :meth:`OrderStore.begin`.

THREAD SAFETY:
    - initialize() creates the schema once, from the main thread
    - every other method opens a private connection, so request threads
      and the synchronizer thread never share a connection
    - WAL journal mode + busy timeout let readers and one writer coexist

FAIL FAST BEHAVIOR:
    - An empty DATABASE_PATH raises ConfigurationError when first used
    - initialize() surfaces schema errors immediately

Usage:
    store = OrderStore(app.config["DATABASE_PATH"])
    store.initialize()

    order = store.get_order(60001)
    store.update_status(60001, StatusCode.REGISTERED)

    with store.begin() as tx:
        tx.insert_reel_event(event)
        tx.commit()

There is no general order update entry point: orders change only through
the lifecycle actions (status, local stop, logical delete).
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from models.order import Order, StatusCode, ACTIVE_WINDOW_LOW
from .exceptions import (
    ConfigurationError,
    DatabaseError,
    LocalPersistenceError,
    OrderConflictError,
)

if TYPE_CHECKING:
    from models.reel_event import ReelEvent, ReelDetail


_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS orders (
        production_order INTEGER PRIMARY KEY,
        slitter TEXT NOT NULL DEFAULT '',
        creator_user INTEGER NOT NULL DEFAULT 0,
        last_modificator_user INTEGER NOT NULL DEFAULT 0,
        created_at TEXT,
        modified_at TEXT,
        status INTEGER NOT NULL DEFAULT 100,
        correlation_id TEXT,
        stopped_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS reel_events (
        message_id TEXT PRIMARY KEY,
        production_order INTEGER NOT NULL,
        user_id INTEGER NOT NULL DEFAULT 0,
        upper_shaft_reels INTEGER NOT NULL,
        lower_shaft_reels INTEGER NOT NULL,
        reel_length INTEGER NOT NULL,
        end_of_lot INTEGER NOT NULL,
        created_at TEXT,
        deleted INTEGER NOT NULL DEFAULT 0,
        deleted_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS reel_event_details (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        message_id TEXT NOT NULL REFERENCES reel_events(message_id),
        seq INTEGER NOT NULL,
        shaft INTEGER NOT NULL,
        position INTEGER NOT NULL,
        product_code TEXT NOT NULL,
        manual_exit INTEGER NOT NULL,
        edge_trim INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        logged_at TEXT NOT NULL,
        user_id INTEGER NOT NULL DEFAULT 0,
        action TEXT NOT NULL,
        params TEXT NOT NULL DEFAULT '',
        correlation_id TEXT,
        error_msg TEXT NOT NULL DEFAULT ''
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status)",
    "CREATE INDEX IF NOT EXISTS idx_audit_correlation ON audit_log(correlation_id)",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def sqlite_error_number(exc: BaseException) -> Optional[int]:
    """Engine error code when the driver exposes it (Python 3.11+)."""
    return getattr(exc, "sqlite_errorcode", None)


class OrderStore:
    """
    SQLite-backed record store.

    Attributes:
        database_path: Path of the SQLite file
        is_initialized: True once the schema has been created
    """

    def __init__(self, database_path: Optional[str | Path],
                 logger: Optional[logging.Logger] = None,
                 busy_timeout_ms: int = 5000):
        """
        Args:
            database_path: SQLite file path (empty means not configured)
            logger: Logger instance (optional)
            busy_timeout_ms: How long a writer waits for a lock

        Note:
            This does NOT touch the file - call initialize() to do that.
        """
        self._database_path = Path(database_path) if database_path else None
        self._logger = logger or logging.getLogger("order_bridge.core.store")
        self._busy_timeout_ms = busy_timeout_ms
        self._init_lock = threading.Lock()
        self._is_initialized = False

    @property
    def database_path(self) -> Optional[Path]:
        return self._database_path

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def initialize(self) -> None:
        """
        Create the database file and schema.

        Safe to call more than once.

        Raises:
            ConfigurationError: If no database path is configured
            DatabaseError: If the schema cannot be created
        """
        with self._init_lock:
            if self._is_initialized:
                return

            path = self._require_path()
            path.parent.mkdir(parents=True, exist_ok=True)
            self._logger.info(f"Initializing record store: {path}")

            conn = self._connect()
            try:
                conn.execute("PRAGMA journal_mode=WAL")
                for statement in _SCHEMA:
                    conn.execute(statement)
            except sqlite3.Error as e:
                self._logger.critical(f"Failed to create schema: {e}")
                raise DatabaseError(f"Failed to create schema: {e}",
                                    sqlite_error_number(e), rollback=False) from e
            finally:
                conn.close()

            self._is_initialized = True

    def ping(self) -> None:
        """Open a connection and run a trivial query (readiness check)."""
        conn = self._connect()
        try:
            conn.execute("SELECT 1").fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(str(e), sqlite_error_number(e), rollback=False) from e
        finally:
            conn.close()

    def _require_path(self) -> Path:
        if self._database_path is None:
            raise ConfigurationError("DATABASE_PATH")
        return self._database_path

    def _connect(self) -> sqlite3.Connection:
        path = self._require_path()
        try:
            # Autocommit; multi-statement work issues an explicit BEGIN
            conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
            conn.row_factory = sqlite3.Row
            conn.execute(f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}")
        except sqlite3.Error as e:
            raise DatabaseError(f"Cannot open record store {path}: {e}",
                                sqlite_error_number(e), rollback=False) from e
        return conn

    def _execute(self, sql: str, params: tuple = ()) -> int:
        """Run one write statement; returns affected rows."""
        conn = self._connect()
        try:
            return conn.execute(sql, params).rowcount
        except sqlite3.Error as e:
            raise DatabaseError(str(e), sqlite_error_number(e), rollback=False) from e
        finally:
            conn.close()

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        conn = self._connect()
        try:
            return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(str(e), sqlite_error_number(e), rollback=False) from e
        finally:
            conn.close()

    # =========================================================================
    # ORDERS
    # =========================================================================

    def get_order(self, production_order: int) -> Optional[Order]:
        rows = self._query(
            "SELECT * FROM orders WHERE production_order = ?", (production_order,)
        )
        return Order.from_row(rows[0]) if rows else None

    def order_exists(self, production_order: int) -> bool:
        rows = self._query(
            "SELECT 1 FROM orders WHERE production_order = ?", (production_order,)
        )
        return bool(rows)

    def list_orders(self) -> List[Order]:
        rows = self._query("SELECT * FROM orders ORDER BY production_order")
        return [Order.from_row(r) for r in rows]

    def create_order(self, creator_user: int, production_order: int,
                     correlation_id: str, slitter: str = "") -> int:
        """
        Insert a new order in the pending state.

        Returns:
            The assigned order number

        Raises:
            OrderConflictError: If the number is already used locally
            DatabaseError: On any other engine failure
        """
        now = _now()
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO orders (production_order, slitter, creator_user,
                    last_modificator_user, created_at, modified_at, status,
                    correlation_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (production_order, slitter, creator_user, creator_user, now, now,
                 int(StatusCode.PENDING), correlation_id),
            )
        except sqlite3.IntegrityError as e:
            raise OrderConflictError(
                production_order,
                f"Production order {production_order} already exists locally",
            ) from e
        except sqlite3.Error as e:
            raise DatabaseError(str(e), sqlite_error_number(e), rollback=False) from e
        finally:
            conn.close()

        return production_order

    def update_status(self, production_order: int, new_status: int,
                      user_id: Optional[int] = None) -> int:
        """
        Overwrite the status of one order.

        Returns:
            Affected rows (0 when the order does not exist locally)
        """
        if user_id is None:
            return self._execute(
                "UPDATE orders SET status = ?, modified_at = ? WHERE production_order = ?",
                (int(new_status), _now(), production_order),
            )
        return self._execute(
            """
            UPDATE orders SET status = ?, modified_at = ?, last_modificator_user = ?
            WHERE production_order = ?
            """,
            (int(new_status), _now(), user_id, production_order),
        )

    def stop_order(self, production_order: int, user_id: int = 0) -> int:
        """
        Local stop action: records when and by whom the order was stopped.

        Returns:
            Affected rows
        """
        now = _now()
        return self._execute(
            """
            UPDATE orders SET stopped_at = ?, modified_at = ?, last_modificator_user = ?
            WHERE production_order = ?
            """,
            (now, now, user_id, production_order),
        )

    def delete_order(self, production_order: int, user_id: int = 0) -> int:
        """
        Logical delete: moves the order into the terminal range.

        Returns:
            Affected rows (0 maps to not-found)
        """
        return self._execute(
            """
            UPDATE orders SET status = ?, modified_at = ?, last_modificator_user = ?
            WHERE production_order = ?
            """,
            (int(StatusCode.DELETED), _now(), user_id, production_order),
        )

    def registration_candidates(self) -> List[Order]:
        """Orders still waiting for their first successful remote registration."""
        # Same predicate as models.order.awaits_registration
        rows = self._query(
            """
            SELECT * FROM orders
            WHERE status < ? AND status != ?
            ORDER BY production_order
            """,
            (ACTIVE_WINDOW_LOW, int(StatusCode.DUPLICATE_REMOTE)),
        )
        return [Order.from_row(r) for r in rows]

    # =========================================================================
    # REEL EVENTS
    # =========================================================================

    def begin(self) -> "StoreTransaction":
        """Open a transaction for a multi-row write."""
        conn = self._connect()
        try:
            conn.execute("BEGIN")
        except sqlite3.Error as e:
            conn.close()
            raise DatabaseError(str(e), sqlite_error_number(e), rollback=False) from e
        return StoreTransaction(conn, self._logger)

    def get_reel_event(self, message_id: str) -> Optional[Dict[str, Any]]:
        rows = self._query("SELECT * FROM reel_events WHERE message_id = ?", (message_id,))
        if not rows:
            return None
        header = dict(rows[0])
        details = self._query(
            "SELECT * FROM reel_event_details WHERE message_id = ? ORDER BY seq",
            (message_id,),
        )
        header["details"] = [dict(d) for d in details]
        return header

    def count_reel_details(self, message_id: str) -> int:
        rows = self._query(
            "SELECT COUNT(*) AS n FROM reel_event_details WHERE message_id = ?",
            (message_id,),
        )
        return int(rows[0]["n"])

    # =========================================================================
    # AUDIT LOG
    # =========================================================================

    def append_audit(self, user_id: int, action: str, params: str,
                     correlation_id: Optional[str], error_msg: str = "") -> None:
        self._execute(
            """
            INSERT INTO audit_log (logged_at, user_id, action, params,
                correlation_id, error_msg)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (_now(), user_id, action or "", params or "",
             str(correlation_id) if correlation_id else None, error_msg or ""),
        )

    def list_audit(self, action: Optional[str] = None,
                   correlation_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Audit entries, oldest first, optionally filtered."""
        clauses = []
        params: List[Any] = []
        if action is not None:
            clauses.append("action = ?")
            params.append(action)
        if correlation_id is not None:
            clauses.append("correlation_id = ?")
            params.append(str(correlation_id))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._query(f"SELECT * FROM audit_log {where} ORDER BY id", tuple(params))
        return [dict(r) for r in rows]


class StoreTransaction:
    """
    One explicit local transaction.

    Used as a context manager: anything not committed when the block exits
    is rolled back, and the connection is always closed.
    """

    def __init__(self, conn: sqlite3.Connection, logger: logging.Logger):
        self._conn = conn
        self._logger = logger
        self._finished = False

    def insert_reel_event(self, event: ReelEvent) -> None:
        self._run(
            """
            INSERT INTO reel_events (message_id, production_order, user_id,
                upper_shaft_reels, lower_shaft_reels, reel_length, end_of_lot,
                created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (event.message_id, event.production_order, event.user_id,
             event.upper_shaft_reels, event.lower_shaft_reels, event.reel_length,
             1 if event.end_of_lot else 0, _now()),
        )

    def insert_reel_detail(self, message_id: str, seq: int, detail: ReelDetail) -> None:
        self._run(
            """
            INSERT INTO reel_event_details (message_id, seq, shaft, position,
                product_code, manual_exit, edge_trim)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (message_id, seq, detail.shaft, detail.position, detail.product_code,
             1 if detail.manual_exit else 0, detail.edge_trim),
        )

    def commit(self) -> None:
        if self._finished:
            raise LocalPersistenceError("Transaction already finished")
        self._run("COMMIT")
        self._finished = True

    def rollback(self) -> None:
        """Roll back; errors are logged, never raised."""
        if self._finished:
            return
        self._finished = True
        try:
            self._conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            self._logger.error(f"Rollback failed: {e}")

    def close(self) -> None:
        self.rollback()
        self._conn.close()

    def _run(self, sql: str, params: tuple = ()) -> None:
        try:
            self._conn.execute(sql, params)
        except sqlite3.Error as e:
            raise DatabaseError(str(e), sqlite_error_number(e)) from e

    def __enter__(self) -> "StoreTransaction":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
