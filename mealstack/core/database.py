"""
Database connection and management
Owns the DuckDB schema, the shared connection and transaction boundaries.

Concurrency model:
- one connection per process, every access serialized by a re-entrant lock
- transaction() is re-entrant; nested calls join the outer transaction
- capacity counters are only ever changed by single conditional UPDATEs
"""

import json
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Sequence

import duckdb
import structlog

from .exceptions import BaseApplicationError, ConcurrencyError, DatabaseError

logger = structlog.get_logger(__name__)

SCHEMA_SQL = r"""
CREATE SEQUENCE IF NOT EXISTS users_id_seq;
CREATE TABLE IF NOT EXISTS users (
  id INTEGER DEFAULT nextval('users_id_seq') PRIMARY KEY,
  email TEXT UNIQUE NOT NULL,
  full_name TEXT,
  phone TEXT,
  role TEXT CHECK(role IN ('user','admin')) NOT NULL DEFAULT 'user',
  is_active BOOLEAN DEFAULT TRUE,
  created_at TIMESTAMP DEFAULT now()
);

CREATE SEQUENCE IF NOT EXISTS addresses_id_seq;
CREATE TABLE IF NOT EXISTS addresses (
  id INTEGER DEFAULT nextval('addresses_id_seq') PRIMARY KEY,
  user_id INTEGER NOT NULL,
  address_type TEXT CHECK(address_type IN ('home','office')) NOT NULL,
  address TEXT NOT NULL,
  nearest_location TEXT,
  location_url TEXT,
  is_default BOOLEAN DEFAULT FALSE,
  is_active BOOLEAN DEFAULT TRUE,
  is_verified BOOLEAN DEFAULT FALSE,
  verification_reason TEXT,
  created_at TIMESTAMP DEFAULT now(),
  updated_at TIMESTAMP DEFAULT now(),
  UNIQUE(user_id, address_type)
);

CREATE SEQUENCE IF NOT EXISTS menu_items_id_seq;
CREATE TABLE IF NOT EXISTS menu_items (
  id INTEGER DEFAULT nextval('menu_items_id_seq') PRIMARY KEY,
  name TEXT NOT NULL,
  meal_type TEXT CHECK(meal_type IN ('breakfast','lunch','dinner')) NOT NULL,
  price_cents INTEGER NOT NULL CHECK(price_cents >= 0),
  is_special_item BOOLEAN DEFAULT FALSE,
  description TEXT,
  image_url TEXT,
  is_active BOOLEAN DEFAULT TRUE,
  created_at TIMESTAMP DEFAULT now(),
  updated_at TIMESTAMP DEFAULT now()
);

CREATE TABLE IF NOT EXISTS weekly_menus (
  day_of_week TEXT NOT NULL,
  meal_type TEXT CHECK(meal_type IN ('breakfast','lunch','dinner')) NOT NULL,
  item_ids_json TEXT NOT NULL,
  updated_at TIMESTAMP DEFAULT now(),
  PRIMARY KEY(day_of_week, meal_type)
);

-- One row per calendar date ever referenced; booked never exceeds capacity
CREATE TABLE IF NOT EXISTS meal_capacities (
  date DATE PRIMARY KEY,
  day_of_week TEXT NOT NULL,
  breakfast_capacity INTEGER NOT NULL DEFAULT 50,
  lunch_capacity INTEGER NOT NULL DEFAULT 50,
  dinner_capacity INTEGER NOT NULL DEFAULT 50,
  breakfast_booked INTEGER NOT NULL DEFAULT 0,
  lunch_booked INTEGER NOT NULL DEFAULT 0,
  dinner_booked INTEGER NOT NULL DEFAULT 0,
  created_at TIMESTAMP DEFAULT now(),
  updated_at TIMESTAMP DEFAULT now(),
  CHECK(breakfast_booked >= 0 AND breakfast_booked <= breakfast_capacity),
  CHECK(lunch_booked >= 0 AND lunch_booked <= lunch_capacity),
  CHECK(dinner_booked >= 0 AND dinner_booked <= dinner_capacity)
);

CREATE SEQUENCE IF NOT EXISTS orders_id_seq;
CREATE TABLE IF NOT EXISTS orders (
  id INTEGER DEFAULT nextval('orders_id_seq') PRIMARY KEY,
  order_number TEXT UNIQUE NOT NULL,
  user_id INTEGER NOT NULL,
  order_date DATE NOT NULL,
  day_of_week TEXT,
  meal_type TEXT CHECK(meal_type IN ('breakfast','lunch','dinner')) NOT NULL,
  selected_items_json TEXT NOT NULL,
  special_items_json TEXT NOT NULL,
  total_amount_cents INTEGER NOT NULL,
  -- delivery snapshot, frozen at order time
  delivery_address TEXT NOT NULL,
  nearest_location TEXT,
  address_id INTEGER,
  status TEXT CHECK(status IN ('pending','confirmed','preparing','out_for_delivery','delivered','cancelled')) NOT NULL,
  payment_status TEXT CHECK(payment_status IN ('pending','paid','failed','refunded')) NOT NULL,
  payment_id INTEGER,
  notes TEXT,
  cancellation_reason TEXT,
  cancelled_at TIMESTAMP,
  paid_at TIMESTAMP,
  created_at TIMESTAMP DEFAULT now(),
  updated_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_orders_user ON orders(user_id);
CREATE INDEX IF NOT EXISTS idx_orders_date ON orders(order_date);

CREATE SEQUENCE IF NOT EXISTS cart_items_id_seq;
CREATE TABLE IF NOT EXISTS cart_items (
  id INTEGER DEFAULT nextval('cart_items_id_seq') PRIMARY KEY,
  user_id INTEGER NOT NULL,
  menu_item_id INTEGER NOT NULL,
  order_date DATE NOT NULL,
  day_of_week TEXT NOT NULL,
  meal_type TEXT CHECK(meal_type IN ('breakfast','lunch','dinner')) NOT NULL,
  quantity INTEGER NOT NULL CHECK(quantity >= 1),
  unit_price_cents INTEGER NOT NULL,
  item_name TEXT NOT NULL,
  is_special_item BOOLEAN DEFAULT FALSE,
  address_id INTEGER,
  created_at TIMESTAMP DEFAULT now(),
  updated_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_cart_user ON cart_items(user_id);

CREATE SEQUENCE IF NOT EXISTS payments_id_seq;
CREATE TABLE IF NOT EXISTS payments (
  id INTEGER DEFAULT nextval('payments_id_seq') PRIMARY KEY,
  user_id INTEGER NOT NULL,
  gateway_order_id TEXT UNIQUE NOT NULL,
  gateway_payment_id TEXT,
  gateway_signature TEXT,
  amount_cents INTEGER NOT NULL,
  currency TEXT NOT NULL DEFAULT 'INR',
  status TEXT CHECK(status IN ('created','processing','completed','failed','refunded')) NOT NULL,
  -- checkout: replay cart_snapshot_json; orders: settle order_ids_json; subscription: activate subscription_id
  kind TEXT CHECK(kind IN ('checkout','orders','subscription')) NOT NULL DEFAULT 'checkout',
  order_ids_json TEXT,
  cart_snapshot_json TEXT,
  subscription_id INTEGER,
  response_json TEXT,
  completed_at TIMESTAMP,
  created_at TIMESTAMP DEFAULT now(),
  updated_at TIMESTAMP DEFAULT now()
);

CREATE SEQUENCE IF NOT EXISTS subscriptions_id_seq;
CREATE TABLE IF NOT EXISTS subscriptions (
  id INTEGER DEFAULT nextval('subscriptions_id_seq') PRIMARY KEY,
  subscription_number TEXT UNIQUE NOT NULL,
  user_id INTEGER NOT NULL,
  package_type TEXT NOT NULL,
  package_title TEXT NOT NULL,
  price_cents INTEGER NOT NULL CHECK(price_cents > 0),
  start_date DATE NOT NULL,
  end_date DATE NOT NULL,
  delivery_address TEXT NOT NULL,
  nearest_location TEXT,
  address_id INTEGER,
  special_instructions TEXT,
  payment_method TEXT NOT NULL DEFAULT 'razorpay',
  status TEXT CHECK(status IN ('pending_payment','active','paused','cancelled','completed','payment_failed')) NOT NULL,
  payment_id INTEGER,
  activated_at TIMESTAMP,
  created_at TIMESTAMP DEFAULT now(),
  updated_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_subscriptions_user ON subscriptions(user_id);

CREATE SEQUENCE IF NOT EXISTS logs_id_seq;
CREATE TABLE IF NOT EXISTS logs (
  log_id INTEGER DEFAULT nextval('logs_id_seq') PRIMARY KEY,
  user_id INTEGER,  -- user the action concerns
  actor_id INTEGER,  -- user who performed it (may be an admin)
  action TEXT,
  detail_json TEXT,
  created_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_logs_user ON logs(user_id);
"""


def _resolve_db_path(database_url: str) -> str:
    """Turn a duckdb:// URL (or bare path) into something duckdb.connect accepts."""
    path = database_url
    if path.startswith("duckdb://"):
        path = path[len("duckdb://"):]
    if path in ("", ":memory:", "/:memory:"):
        return ":memory:"
    return str(Path(path))


def rows_to_dicts(cursor) -> List[Dict[str, Any]]:
    """Materialize the current result set as a list of column->value dicts."""
    columns = [d[0] for d in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


def fetch_all(conn, query: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
    cursor = conn.execute(query, list(params or []))
    return rows_to_dicts(cursor)


def fetch_one(conn, query: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
    rows = fetch_all(conn, query, params)
    return rows[0] if rows else None


def log_action(conn, action: str, user_id: Optional[int] = None,
               actor_id: Optional[int] = None, detail: Optional[Dict[str, Any]] = None):
    """Append one row to the audit table"""
    conn.execute(
        "INSERT INTO logs(user_id, actor_id, action, detail_json) VALUES (?,?,?,?)",
        [user_id, actor_id, action, json.dumps(detail or {}, default=str)]
    )


class DatabaseManager:
    """Database manager wrapping the shared DuckDB connection"""

    def __init__(self, database_url: str = ":memory:"):
        self.db_path = _resolve_db_path(database_url)
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self._tx_depth = 0

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        """Lazily opened connection; the schema is created on first use"""
        with self._lock:
            if self._connection is None:
                if self.db_path != ":memory:":
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                self._connection = duckdb.connect(self.db_path)
                self._init_schema()
            return self._connection

    def _init_schema(self):
        try:
            self._connection.execute(SCHEMA_SQL)
        except duckdb.Error as e:
            raise DatabaseError(f"Failed to initialize schema: {e}") from e

    def init_database(self):
        """Make sure the connection is open and the schema exists"""
        with self._lock:
            self.connection.execute(SCHEMA_SQL)
        logger.info("database_initialized", path=self.db_path)

    @contextmanager
    def session(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """Exclusive access to the connection without opening a transaction (reads, audit writes)"""
        with self._lock:
            yield self.connection

    @contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        Transaction context manager

        Commits when the block exits normally and rolls back on any exception.
        Application errors propagate unchanged; driver errors are converted to
        ConcurrencyError (write conflicts) or DatabaseError.
        """
        with self._lock:
            conn = self.connection
            if self._tx_depth > 0:
                # Nested: the outermost block owns BEGIN/COMMIT
                self._tx_depth += 1
                try:
                    yield conn
                finally:
                    self._tx_depth -= 1
                return

            self._tx_depth = 1
            conn.execute("BEGIN TRANSACTION")
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseApplicationError:
                self._rollback(conn)
                raise
            except duckdb.Error as e:
                self._rollback(conn)
                message = str(e).lower()
                if "conflict" in message or "serialization" in message:
                    raise ConcurrencyError("System busy, please retry") from e
                raise DatabaseError(f"Database operation failed: {e}") from e
            except Exception:
                self._rollback(conn)
                raise
            finally:
                self._tx_depth = 0

    def _rollback(self, conn):
        try:
            conn.execute("ROLLBACK")
        except duckdb.Error:
            # Transaction already aborted by the failing statement
            pass

    def execute_query(self, query: str, params: Optional[list] = None) -> List[Dict[str, Any]]:
        """Run a query and return every row as a dict"""
        try:
            with self.session() as conn:
                return fetch_all(conn, query, params)
        except duckdb.Error as e:
            raise DatabaseError(f"Query execution failed: {e}") from e

    def execute_one(self, query: str, params: Optional[list] = None) -> Optional[Dict[str, Any]]:
        """Run a query and return the first row as a dict"""
        rows = self.execute_query(query, params)
        return rows[0] if rows else None

    def close(self):
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
