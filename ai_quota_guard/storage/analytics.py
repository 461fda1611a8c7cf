"""
Performance metric and cost analysis persistence.
"""

import json
from datetime import datetime
from typing import List, Optional

from .db import DEFAULT_DB_PATH, from_db_timestamp, get_connection, to_db_timestamp
from .models import AnalysisPeriod, CostAnalysis, Feature, PerformanceMetric, PerformanceMetricName

_METRIC_COLUMNS = "id, user_id, feature, metric, value, unit, date, context, created_at"

_ANALYSIS_COLUMNS = """
    id, user_id, period, start_date, end_date, total_cost, feature_costs,
    token_usage, predictions, created_at
"""


class AnalyticsRepository:
    """Plain CRUD over performance metrics and cost analysis snapshots."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def add_metric(self, metric: PerformanceMetric) -> int:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                INSERT INTO performance_metrics
                (user_id, feature, metric, value, unit, date, context, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                metric.user_id,
                metric.feature.value,
                metric.metric.value,
                metric.value,
                metric.unit,
                to_db_timestamp(metric.date),
                json.dumps(metric.context) if metric.context is not None else None,
                to_db_timestamp(metric.created_at)
            ))
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    def list_metrics(
        self,
        user_id: str,
        feature: Optional[Feature] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[PerformanceMetric]:
        """List a user's metrics dated within ``[start, end)``, newest first."""
        query = f"SELECT {_METRIC_COLUMNS} FROM performance_metrics WHERE user_id = ?"
        params: list = [user_id]
        if feature is not None:
            query += " AND feature = ?"
            params.append(feature.value)
        if start is not None:
            query += " AND date >= ?"
            params.append(to_db_timestamp(start))
        if end is not None:
            query += " AND date < ?"
            params.append(to_db_timestamp(end))
        query += " ORDER BY date DESC, id DESC"

        conn = get_connection(self.db_path)
        try:
            return [_row_to_metric(row) for row in conn.execute(query, params).fetchall()]
        finally:
            conn.close()

    def add_cost_analysis(self, analysis: CostAnalysis) -> int:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                INSERT INTO cost_analyses
                (user_id, period, start_date, end_date, total_cost, feature_costs,
                 token_usage, predictions, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                analysis.user_id,
                analysis.period.value,
                to_db_timestamp(analysis.start_date),
                to_db_timestamp(analysis.end_date),
                analysis.total_cost,
                _dump(analysis.feature_costs),
                _dump(analysis.token_usage),
                _dump(analysis.predictions),
                to_db_timestamp(analysis.created_at)
            ))
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    def list_cost_analyses(
        self,
        user_id: str,
        period: Optional[AnalysisPeriod] = None,
        limit: int = 20
    ) -> List[CostAnalysis]:
        """List a user's snapshots, most recent window first."""
        query = f"SELECT {_ANALYSIS_COLUMNS} FROM cost_analyses WHERE user_id = ?"
        params: list = [user_id]
        if period is not None:
            query += " AND period = ?"
            params.append(period.value)
        query += " ORDER BY start_date DESC, id DESC LIMIT ?"
        params.append(limit)

        conn = get_connection(self.db_path)
        try:
            return [_row_to_analysis(row) for row in conn.execute(query, params).fetchall()]
        finally:
            conn.close()


def _dump(value) -> Optional[str]:
    return json.dumps(value, sort_keys=True) if value is not None else None


def _load(value: Optional[str]):
    return json.loads(value) if value is not None else None


def _row_to_metric(row: tuple) -> PerformanceMetric:
    return PerformanceMetric(
        id=row[0],
        user_id=row[1],
        feature=Feature(row[2]),
        metric=PerformanceMetricName(row[3]),
        value=row[4],
        unit=row[5],
        date=from_db_timestamp(row[6]),
        context=_load(row[7]),
        created_at=from_db_timestamp(row[8])
    )


def _row_to_analysis(row: tuple) -> CostAnalysis:
    return CostAnalysis(
        id=row[0],
        user_id=row[1],
        period=AnalysisPeriod(row[2]),
        start_date=from_db_timestamp(row[3]),
        end_date=from_db_timestamp(row[4]),
        total_cost=row[5],
        feature_costs=_load(row[6]),
        token_usage=_load(row[7]),
        predictions=_load(row[8]),
        created_at=from_db_timestamp(row[9])
    )
