"""
Repository pattern for data access.

Handles database operations and data persistence logic for the usage
ledger. The ``usage_event`` table is append-only: rows are inserted and
read, never updated or deleted.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from .db import DEFAULT_DB_PATH, from_db_timestamp, get_connection, to_db_timestamp
from .models import Feature, UsageEvent

_EVENT_COLUMNS = """
    id, user_id, timestamp, feature, model, input_tokens, output_tokens,
    tokens_used, cost, response_time_ms, success, error_message, metadata,
    request_id
"""

_INSERT_EVENT = """
    INSERT INTO usage_event
    (user_id, timestamp, feature, model, input_tokens, output_tokens,
     tokens_used, cost, response_time_ms, success, error_message, metadata,
     request_id)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""


class UsageRepository:
    """Repository for reading usage events and their aggregates.

    All queries are scoped to a single ``user_id``; callers never see
    another user's rows.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def get_events(
        self,
        user_id: str,
        feature: Optional[Feature] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 50
    ) -> List[UsageEvent]:
        """Get a user's usage events with optional filtering.

        Args:
            user_id: Owner of the events
            feature: Optional filter for a specific feature
            start: Optional inclusive lower bound on timestamp
            end: Optional exclusive upper bound on timestamp
            limit: Maximum number of events to return

        Returns:
            List of usage events ordered by timestamp (newest first)
        """
        conn = get_connection(self.db_path)
        try:
            query = f"SELECT {_EVENT_COLUMNS} FROM usage_event WHERE user_id = ?"
            params: List[Any] = [user_id]

            if feature is not None:
                query += " AND feature = ?"
                params.append(feature.value)
            if start is not None:
                query += " AND timestamp >= ?"
                params.append(to_db_timestamp(start))
            if end is not None:
                query += " AND timestamp < ?"
                params.append(to_db_timestamp(end))

            query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
            params.append(limit)

            cursor = conn.execute(query, params)
            return [_row_to_event(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def aggregate(
        self,
        user_id: str,
        feature: Feature,
        start: datetime,
        end: datetime
    ) -> Dict[str, float]:
        """Sum a user's events for one feature over ``[start, end)``.

        Returns:
            Raw totals: ``count``, ``total_cost``, ``total_tokens``,
            ``avg_response_time`` and ``success_count``
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                SELECT
                    COUNT(*),
                    SUM(cost),
                    SUM(tokens_used),
                    AVG(response_time_ms),
                    SUM(CASE WHEN success THEN 1 ELSE 0 END)
                FROM usage_event
                WHERE user_id = ? AND feature = ?
                  AND timestamp >= ? AND timestamp < ?
            """, (user_id, feature.value, to_db_timestamp(start), to_db_timestamp(end)))
            row = cursor.fetchone()
            return _totals_from_row(row)
        finally:
            conn.close()

    def feature_breakdown(
        self,
        user_id: str,
        start: datetime,
        end: datetime
    ) -> Dict[Feature, Dict[str, float]]:
        """Group a user's events over ``[start, end)`` by feature.

        Returns:
            Mapping of feature to the same raw totals as :meth:`aggregate`.
            Features without events are absent.
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                SELECT
                    feature,
                    COUNT(*),
                    SUM(cost),
                    SUM(tokens_used),
                    AVG(response_time_ms),
                    SUM(CASE WHEN success THEN 1 ELSE 0 END)
                FROM usage_event
                WHERE user_id = ? AND timestamp >= ? AND timestamp < ?
                GROUP BY feature
                ORDER BY feature
            """, (user_id, to_db_timestamp(start), to_db_timestamp(end)))
            return {
                Feature(row[0]): _totals_from_row(row[1:])
                for row in cursor.fetchall()
            }
        finally:
            conn.close()


# Repository instances by database path
_repositories: Dict[str, UsageRepository] = {}


def get_repository(db_path: str = DEFAULT_DB_PATH) -> UsageRepository:
    """Get a repository instance for ``db_path``.

    Args:
        db_path: Path to SQLite database file

    Returns:
        A shared UsageRepository for that database
    """
    if db_path not in _repositories:
        _repositories[db_path] = UsageRepository(db_path)
    return _repositories[db_path]


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create all tables if they don't exist.

    The usage_event table is an append-only ledger; triggers reject any
    UPDATE or DELETE against it.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS usage_event (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                feature TEXT NOT NULL,
                model TEXT NOT NULL,
                input_tokens INTEGER NOT NULL,
                output_tokens INTEGER NOT NULL,
                tokens_used INTEGER NOT NULL,
                cost REAL NOT NULL,
                response_time_ms INTEGER,
                success INTEGER NOT NULL DEFAULT 1,
                error_message TEXT,
                metadata TEXT,
                request_id TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_usage_event_user_feature_ts
                ON usage_event (user_id, feature, timestamp);

            CREATE TRIGGER IF NOT EXISTS usage_event_no_update
            BEFORE UPDATE ON usage_event
            BEGIN
                SELECT RAISE(ABORT, 'usage_event is append-only');
            END;

            CREATE TRIGGER IF NOT EXISTS usage_event_no_delete
            BEFORE DELETE ON usage_event
            BEGIN
                SELECT RAISE(ABORT, 'usage_event is append-only');
            END;

            CREATE TABLE IF NOT EXISTS subscription_plans (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                display_name TEXT NOT NULL,
                price REAL NOT NULL,
                billing_cycle TEXT NOT NULL DEFAULT 'monthly',
                features TEXT NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1
            );

            CREATE TABLE IF NOT EXISTS user_subscriptions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL UNIQUE,
                plan_id INTEGER NOT NULL REFERENCES subscription_plans (id),
                status TEXT NOT NULL DEFAULT 'active',
                current_period_start TEXT NOT NULL,
                current_period_end TEXT NOT NULL,
                external_subscription_id TEXT,
                external_customer_id TEXT,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS optimization_suggestions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                category TEXT NOT NULL,
                title TEXT NOT NULL,
                description TEXT NOT NULL,
                impact TEXT NOT NULL,
                estimated_savings REAL,
                implementation TEXT,
                is_applied INTEGER NOT NULL DEFAULT 0,
                applied_at TEXT,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS performance_metrics (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                feature TEXT NOT NULL,
                metric TEXT NOT NULL,
                value REAL NOT NULL,
                unit TEXT,
                date TEXT NOT NULL,
                context TEXT,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_performance_metrics_user_date
                ON performance_metrics (user_id, date);

            CREATE TABLE IF NOT EXISTS cost_analyses (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                period TEXT NOT NULL,
                start_date TEXT NOT NULL,
                end_date TEXT NOT NULL,
                total_cost REAL NOT NULL,
                feature_costs TEXT,
                token_usage TEXT,
                predictions TEXT,
                created_at TEXT NOT NULL
            );
        """)
        conn.commit()
    finally:
        conn.close()


def insert_usage_event(event: UsageEvent, db_path: str = DEFAULT_DB_PATH) -> int:
    """Insert a single usage event into the append-only ledger.

    Args:
        event: The usage event to record
        db_path: Path to SQLite database file

    Returns:
        The id assigned to the new row
    """
    conn = get_connection(db_path)
    try:
        cursor = conn.execute(_INSERT_EVENT, _event_params(event))
        conn.commit()
        return cursor.lastrowid
    finally:
        conn.close()


def insert_usage_events(events: List[UsageEvent], db_path: str = DEFAULT_DB_PATH) -> List[int]:
    """Insert multiple usage events atomically into the append-only ledger.

    All events are inserted in a single transaction; if any insert fails
    none of them are kept.

    Args:
        events: List of usage events to record
        db_path: Path to SQLite database file

    Returns:
        Ids assigned to the new rows, in input order
    """
    if not events:
        return []

    conn = get_connection(db_path)
    try:
        conn.execute("BEGIN TRANSACTION")
        ids = []
        for event in events:
            cursor = conn.execute(_INSERT_EVENT, _event_params(event))
            ids.append(cursor.lastrowid)
        conn.commit()
        return ids
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _event_params(event: UsageEvent) -> tuple:
    return (
        event.user_id,
        to_db_timestamp(event.timestamp),
        event.feature.value,
        event.model,
        event.input_tokens,
        event.output_tokens,
        event.tokens_used,
        event.cost,
        event.response_time_ms,
        1 if event.success else 0,
        event.error_message,
        json.dumps(event.metadata) if event.metadata is not None else None,
        event.request_id,
    )


def _row_to_event(row: tuple) -> UsageEvent:
    return UsageEvent(
        id=row[0],
        user_id=row[1],
        timestamp=from_db_timestamp(row[2]),
        feature=Feature(row[3]),
        model=row[4],
        input_tokens=row[5],
        output_tokens=row[6],
        tokens_used=row[7],
        cost=row[8],
        response_time_ms=row[9],
        success=bool(row[10]),
        error_message=row[11],
        metadata=json.loads(row[12]) if row[12] is not None else None,
        request_id=row[13]
    )


def _totals_from_row(row: tuple) -> Dict[str, float]:
    return {
        "count": row[0] or 0,
        "total_cost": float(row[1] or 0),
        "total_tokens": int(row[2] or 0),
        "avg_response_time": float(row[3] or 0),
        "success_count": int(row[4] or 0),
    }
