"""
Optimization suggestion persistence.
"""

from datetime import datetime
from typing import List, Optional

from .db import DEFAULT_DB_PATH, from_db_timestamp, get_connection, to_db_timestamp
from .models import OptimizationSuggestion, SuggestionCategory, SuggestionImpact

_SUGGESTION_COLUMNS = """
    id, user_id, category, title, description, impact, estimated_savings,
    implementation, is_applied, applied_at, created_at
"""


class SuggestionRepository:
    """Plain CRUD over optimization suggestion records."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def add(self, suggestion: OptimizationSuggestion) -> int:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                INSERT INTO optimization_suggestions
                (user_id, category, title, description, impact, estimated_savings,
                 implementation, is_applied, applied_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                suggestion.user_id,
                suggestion.category.value,
                suggestion.title,
                suggestion.description,
                suggestion.impact.value,
                suggestion.estimated_savings,
                suggestion.implementation,
                1 if suggestion.is_applied else 0,
                to_db_timestamp(suggestion.applied_at) if suggestion.applied_at else None,
                to_db_timestamp(suggestion.created_at)
            ))
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    def get(self, suggestion_id: int) -> Optional[OptimizationSuggestion]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                f"SELECT {_SUGGESTION_COLUMNS} FROM optimization_suggestions WHERE id = ?",
                (suggestion_id,)
            ).fetchone()
            return _row_to_suggestion(row) if row else None
        finally:
            conn.close()

    def list_for_user(self, user_id: str) -> List[OptimizationSuggestion]:
        """List a user's suggestions, newest first."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                f"SELECT {_SUGGESTION_COLUMNS} FROM optimization_suggestions "
                "WHERE user_id = ? ORDER BY created_at DESC, id DESC",
                (user_id,)
            )
            return [_row_to_suggestion(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def mark_applied(self, suggestion_id: int, user_id: str, applied_at: datetime) -> bool:
        """Flip a proposed suggestion to applied.

        Returns:
            False if no proposed suggestion with that id belongs to the user
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                UPDATE optimization_suggestions
                SET is_applied = 1, applied_at = ?
                WHERE id = ? AND user_id = ? AND is_applied = 0
            """, (to_db_timestamp(applied_at), suggestion_id, user_id))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()


def _row_to_suggestion(row: tuple) -> OptimizationSuggestion:
    return OptimizationSuggestion(
        id=row[0],
        user_id=row[1],
        category=SuggestionCategory(row[2]),
        title=row[3],
        description=row[4],
        impact=SuggestionImpact(row[5]),
        estimated_savings=row[6],
        implementation=row[7],
        is_applied=bool(row[8]),
        applied_at=from_db_timestamp(row[9]),
        created_at=from_db_timestamp(row[10])
    )
