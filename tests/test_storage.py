"""
Unit tests for storage layer.

Tests schema creation, ledger insertion and retrieval, the append-only
triggers, and the plan/subscription/suggestion/analytics repositories.
"""

import os
import sqlite3
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

from ai_quota_guard.core.errors import NotFoundError
from ai_quota_guard.storage.analytics import AnalyticsRepository
from ai_quota_guard.storage.billing import BillingRepository
from ai_quota_guard.storage.db import from_db_timestamp, get_connection, to_db_timestamp
from ai_quota_guard.storage.models import (
    AnalysisPeriod,
    CostAnalysis,
    Feature,
    OptimizationSuggestion,
    PerformanceMetric,
    PerformanceMetricName,
    SubscriptionPlan,
    SubscriptionStatus,
    SuggestionCategory,
    SuggestionImpact,
    UsageEvent,
    UserSubscription,
)
from ai_quota_guard.storage.repository import (
    UsageRepository,
    get_repository,
    initialize_schema,
    insert_usage_event,
    insert_usage_events,
)
from ai_quota_guard.storage.suggestions import SuggestionRepository


def make_event(
    user_id="user-1",
    feature=Feature.CHAT,
    timestamp=datetime(2024, 1, 15, 12, 0, 0),
    input_tokens=100,
    output_tokens=50,
    cost=0.01,
    **kwargs
) -> UsageEvent:
    """Create a test usage event."""
    return UsageEvent(
        user_id=user_id,
        timestamp=timestamp,
        feature=feature,
        model="gpt-4",
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        tokens_used=input_tokens + output_tokens,
        cost=cost,
        **kwargs
    )


class StorageTestCase:
    """Creates a fresh database per test."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)


class TestStorageSchema(StorageTestCase):
    """Test database schema creation and structure."""

    def test_schema_creation(self):
        """Verify all tables are created."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            tables = {row[0] for row in cursor.fetchall()}
            assert {
                "usage_event",
                "subscription_plans",
                "user_subscriptions",
                "optimization_suggestions",
                "performance_metrics",
                "cost_analyses",
            } <= tables

            cursor = conn.execute("PRAGMA table_info(usage_event)")
            column_names = [col[1] for col in cursor.fetchall()]
            assert column_names == [
                'id', 'user_id', 'timestamp', 'feature', 'model',
                'input_tokens', 'output_tokens', 'tokens_used', 'cost',
                'response_time_ms', 'success', 'error_message', 'metadata',
                'request_id'
            ]
        finally:
            conn.close()

    def test_schema_creation_is_idempotent(self):
        """Running initialization twice keeps existing rows."""
        insert_usage_event(make_event(), self.db_path)
        initialize_schema(self.db_path)
        assert len(UsageRepository(self.db_path).get_events("user-1")) == 1


class TestTimestamps:
    """Test timestamp serialization."""

    def test_aware_datetimes_are_stored_as_naive_utc(self):
        aware = datetime(2024, 1, 1, 9, 0, tzinfo=timezone(timedelta(hours=9)))
        assert to_db_timestamp(aware) == "2024-01-01T00:00:00.000000"

    def test_fixed_width_preserves_ordering(self):
        earlier = to_db_timestamp(datetime(2024, 1, 1, 12, 0, 0))
        later = to_db_timestamp(datetime(2024, 1, 1, 12, 0, 0, 1))
        assert earlier < later
        assert from_db_timestamp(later) == datetime(2024, 1, 1, 12, 0, 0, 1)

    def test_none_round_trips(self):
        assert from_db_timestamp(None) is None


class TestEventInsertion(StorageTestCase):
    """Test usage event insertion operations."""

    def test_insert_single_event(self):
        """Test inserting a single usage event with every field."""
        event_id = insert_usage_event(make_event(
            response_time_ms=420,
            success=False,
            error_message="rate limited",
            metadata={"conversation_id": "c-1"},
            request_id="req_123"
        ), self.db_path)

        events = UsageRepository(self.db_path).get_events("user-1")
        assert len(events) == 1
        stored = events[0]
        assert stored.id == event_id
        assert stored.feature == Feature.CHAT
        assert stored.model == "gpt-4"
        assert stored.input_tokens == 100
        assert stored.output_tokens == 50
        assert stored.tokens_used == 150
        assert stored.cost == 0.01
        assert stored.response_time_ms == 420
        assert stored.success is False
        assert stored.error_message == "rate limited"
        assert stored.metadata == {"conversation_id": "c-1"}
        assert stored.request_id == "req_123"

    def test_insert_multiple_events(self):
        """Test inserting multiple usage events in a transaction."""
        ids = insert_usage_events([
            make_event(timestamp=datetime(2024, 1, 1, 12, 0, 0)),
            make_event(feature=Feature.WORKFLOW, timestamp=datetime(2024, 1, 1, 12, 1, 0)),
        ], self.db_path)

        assert len(ids) == 2
        events = UsageRepository(self.db_path).get_events("user-1")
        assert [e.feature for e in events] == [Feature.WORKFLOW, Feature.CHAT]

    def test_insert_empty_event_list(self):
        assert insert_usage_events([], self.db_path) == []
        assert UsageRepository(self.db_path).get_events("user-1") == []

    def test_batch_insert_rolls_back_on_failure(self):
        """A failing row leaves none of the batch behind."""
        bad = make_event(user_id=None)  # violates NOT NULL
        with pytest.raises(sqlite3.IntegrityError):
            insert_usage_events([make_event(), bad], self.db_path)
        assert UsageRepository(self.db_path).get_events("user-1") == []


class TestAppendOnlyLedger(StorageTestCase):
    """The usage_event table rejects mutation."""

    def test_update_is_rejected(self):
        insert_usage_event(make_event(), self.db_path)
        conn = get_connection(self.db_path)
        try:
            with pytest.raises(sqlite3.DatabaseError, match="append-only"):
                conn.execute("UPDATE usage_event SET cost = 0")
        finally:
            conn.close()

    def test_delete_is_rejected(self):
        insert_usage_event(make_event(), self.db_path)
        conn = get_connection(self.db_path)
        try:
            with pytest.raises(sqlite3.DatabaseError, match="append-only"):
                conn.execute("DELETE FROM usage_event")
        finally:
            conn.close()
        assert len(UsageRepository(self.db_path).get_events("user-1")) == 1


class TestEventRetrieval(StorageTestCase):
    """Test usage event retrieval and aggregation queries."""

    def setup_method(self):
        super().setup_method()
        insert_usage_events([
            make_event(timestamp=datetime(2024, 1, 31, 23, 59, 59), cost=1.0),
            make_event(timestamp=datetime(2024, 2, 1, 0, 0, 0), cost=2.0, response_time_ms=100),
            make_event(timestamp=datetime(2024, 2, 10, 8, 0, 0), cost=3.0, response_time_ms=300,
                       success=False),
            make_event(feature=Feature.WORKFLOW, timestamp=datetime(2024, 2, 11), cost=4.0),
            make_event(user_id="user-2", timestamp=datetime(2024, 2, 12), cost=5.0),
        ], self.db_path)
        self.repository = UsageRepository(self.db_path)

    def test_events_are_scoped_to_user(self):
        events = self.repository.get_events("user-2")
        assert len(events) == 1
        assert all(e.user_id == "user-2" for e in events)

    def test_filter_by_feature(self):
        events = self.repository.get_events("user-1", feature=Feature.WORKFLOW)
        assert [e.cost for e in events] == [4.0]

    def test_filter_by_half_open_range(self):
        events = self.repository.get_events(
            "user-1", start=datetime(2024, 2, 1), end=datetime(2024, 2, 11)
        )
        assert sorted(e.cost for e in events) == [2.0, 3.0]

    def test_limit(self):
        events = self.repository.get_events("user-1", limit=2)
        assert [e.cost for e in events] == [4.0, 3.0]

    def test_aggregate_totals(self):
        totals = self.repository.aggregate(
            "user-1", Feature.CHAT, datetime(2024, 2, 1), datetime(2024, 3, 1)
        )
        assert totals == {
            "count": 2,
            "total_cost": 5.0,
            "total_tokens": 300,
            "avg_response_time": 200.0,
            "success_count": 1,
        }

    def test_aggregate_empty(self):
        totals = self.repository.aggregate(
            "user-1", Feature.DOCUMENT_QA, datetime(2024, 2, 1), datetime(2024, 3, 1)
        )
        assert totals["count"] == 0
        assert totals["total_cost"] == 0.0
        assert totals["total_tokens"] == 0

    def test_feature_breakdown(self):
        grouped = self.repository.feature_breakdown(
            "user-1", datetime(2024, 2, 1), datetime(2024, 3, 1)
        )
        assert set(grouped) == {Feature.CHAT, Feature.WORKFLOW}
        assert grouped[Feature.CHAT]["count"] == 2
        assert grouped[Feature.WORKFLOW]["total_cost"] == 4.0

    def test_get_repository_is_shared_per_path(self):
        assert get_repository(self.db_path) is get_repository(self.db_path)
        assert get_repository(self.db_path).db_path == self.db_path


class TestBillingRepository(StorageTestCase):
    """Test plan and subscription persistence."""

    def setup_method(self):
        super().setup_method()
        self.repository = BillingRepository(self.db_path)
        self.repository.upsert_plan(SubscriptionPlan(
            name="basic", display_name="Basic", price=0.0,
            limits={"document_analysis": 50, "chat": 25}
        ))
        self.repository.upsert_plan(SubscriptionPlan(
            name="pro", display_name="Pro", price=10.0, limits={"chat": None}
        ))

    def test_plan_round_trip(self):
        plan = self.repository.get_plan("pro")
        assert plan.display_name == "Pro"
        assert plan.limits == {"chat": None}
        assert self.repository.get_plan("missing") is None

    def test_upsert_plan_replaces_by_name(self):
        first_id = self.repository.get_plan("basic").id
        new_id = self.repository.upsert_plan(SubscriptionPlan(
            name="basic", display_name="Starter", price=0.0, limits={"chat": 5}
        ))
        assert new_id == first_id
        assert self.repository.get_plan("basic").limits == {"chat": 5}

    def test_list_plans_orders_by_price_and_hides_inactive(self):
        self.repository.upsert_plan(SubscriptionPlan(
            name="legacy", display_name="Legacy", price=5.0, is_active=False
        ))
        assert [p.name for p in self.repository.list_plans()] == ["basic", "pro"]
        assert len(self.repository.list_plans(active_only=False)) == 3

    def test_subscription_upsert_keeps_one_row_per_user(self):
        start, end = datetime(2024, 2, 1), datetime(2024, 3, 1)
        for plan_name in ("basic", "pro"):
            self.repository.upsert_subscription(UserSubscription(
                user_id="user-1",
                plan_name=plan_name,
                status=SubscriptionStatus.ACTIVE,
                current_period_start=start,
                current_period_end=end,
                external_subscription_id="sub_1"
            ), updated_at=start)

        subscription = self.repository.get_subscription("user-1")
        assert subscription.plan_name == "pro"
        assert subscription.is_active
        assert subscription.current_period_end == end

        conn = get_connection(self.db_path)
        try:
            count = conn.execute("SELECT COUNT(*) FROM user_subscriptions").fetchone()[0]
        finally:
            conn.close()
        assert count == 1

    def test_subscription_for_unknown_plan(self):
        with pytest.raises(NotFoundError, match="Unknown plan"):
            self.repository.upsert_subscription(UserSubscription(
                user_id="user-1",
                plan_name="enterprise",
                status=SubscriptionStatus.ACTIVE,
                current_period_start=datetime(2024, 2, 1),
                current_period_end=datetime(2024, 3, 1)
            ), updated_at=datetime(2024, 2, 1))

    def test_set_status(self):
        assert not self.repository.set_subscription_status(
            "user-1", SubscriptionStatus.CANCELLED, datetime(2024, 2, 1)
        )


class TestSuggestionRepository(StorageTestCase):
    """Test suggestion persistence."""

    def setup_method(self):
        super().setup_method()
        self.repository = SuggestionRepository(self.db_path)

    def make_suggestion(self, user_id="user-1", created_at=datetime(2024, 2, 1)):
        return OptimizationSuggestion(
            user_id=user_id,
            category=SuggestionCategory.COST,
            title="Cache answers",
            description="Reuse answers to repeated questions",
            impact=SuggestionImpact.MEDIUM,
            created_at=created_at,
            estimated_savings=3.5
        )

    def test_add_and_get(self):
        suggestion_id = self.repository.add(self.make_suggestion())
        stored = self.repository.get(suggestion_id)
        assert stored.title == "Cache answers"
        assert stored.is_applied is False
        assert stored.applied_at is None
        assert self.repository.get(9999) is None

    def test_list_newest_first_and_scoped(self):
        self.repository.add(self.make_suggestion(created_at=datetime(2024, 2, 1)))
        newer = self.repository.add(self.make_suggestion(created_at=datetime(2024, 2, 2)))
        self.repository.add(self.make_suggestion(user_id="user-2"))
        items = self.repository.list_for_user("user-1")
        assert len(items) == 2
        assert items[0].id == newer

    def test_mark_applied_only_once_and_only_by_owner(self):
        suggestion_id = self.repository.add(self.make_suggestion())
        assert not self.repository.mark_applied(suggestion_id, "user-2", datetime(2024, 2, 3))
        assert self.repository.mark_applied(suggestion_id, "user-1", datetime(2024, 2, 3))
        assert not self.repository.mark_applied(suggestion_id, "user-1", datetime(2024, 2, 4))
        assert self.repository.get(suggestion_id).applied_at == datetime(2024, 2, 3)


class TestAnalyticsRepository(StorageTestCase):
    """Test performance metric and cost analysis persistence."""

    def setup_method(self):
        super().setup_method()
        self.repository = AnalyticsRepository(self.db_path)

    def make_metric(self, user_id="user-1", feature=Feature.CHAT, date=datetime(2024, 2, 10), **kwargs):
        return PerformanceMetric(
            user_id=user_id,
            feature=feature,
            metric=kwargs.pop("metric", PerformanceMetricName.RESPONSE_TIME),
            value=kwargs.pop("value", 850.0),
            date=date,
            created_at=datetime(2024, 2, 10, 12),
            **kwargs
        )

    def test_metric_round_trip(self):
        metric_id = self.repository.add_metric(
            self.make_metric(unit="ms", context={"model": "gpt-4", "retries": 0})
        )
        [stored] = self.repository.list_metrics("user-1")
        assert stored.id == metric_id
        assert stored.metric == PerformanceMetricName.RESPONSE_TIME
        assert stored.unit == "ms"
        assert stored.context == {"model": "gpt-4", "retries": 0}
        assert stored.date == datetime(2024, 2, 10)

    def test_list_metrics_filters(self):
        self.repository.add_metric(self.make_metric(date=datetime(2024, 1, 31)))
        in_range = self.repository.add_metric(self.make_metric(date=datetime(2024, 2, 1)))
        self.repository.add_metric(self.make_metric(feature=Feature.WORKFLOW, date=datetime(2024, 2, 2)))
        self.repository.add_metric(self.make_metric(date=datetime(2024, 3, 1)))
        self.repository.add_metric(self.make_metric(user_id="user-2"))

        items = self.repository.list_metrics(
            "user-1", feature=Feature.CHAT, start=datetime(2024, 2, 1), end=datetime(2024, 3, 1)
        )
        assert [item.id for item in items] == [in_range]

        dates = [item.date for item in self.repository.list_metrics("user-1")]
        assert dates == sorted(dates, reverse=True)

    def make_analysis(self, user_id="user-1", start=datetime(2024, 2, 1), **kwargs):
        return CostAnalysis(
            user_id=user_id,
            period=kwargs.pop("period", AnalysisPeriod.MONTHLY),
            start_date=start,
            end_date=start + timedelta(days=29),
            total_cost=12.5,
            created_at=datetime(2024, 3, 1),
            **kwargs
        )

    def test_cost_analysis_round_trip(self):
        self.repository.add_cost_analysis(self.make_analysis(
            feature_costs={"chat": 2.5, "document_qa": 10.0},
            token_usage={"chat": 12000},
            predictions={"next_month": 14.0}
        ))
        [stored] = self.repository.list_cost_analyses("user-1")
        assert stored.period == AnalysisPeriod.MONTHLY
        assert stored.total_cost == 12.5
        assert stored.feature_costs == {"chat": 2.5, "document_qa": 10.0}
        assert stored.token_usage == {"chat": 12000}
        assert stored.predictions == {"next_month": 14.0}

    def test_cost_analysis_optional_maps_stay_empty(self):
        self.repository.add_cost_analysis(self.make_analysis())
        [stored] = self.repository.list_cost_analyses("user-1")
        assert stored.feature_costs is None
        assert stored.token_usage is None
        assert stored.predictions is None

    def test_list_cost_analyses_newest_window_first(self):
        self.repository.add_cost_analysis(self.make_analysis(start=datetime(2024, 1, 1)))
        newest = self.repository.add_cost_analysis(self.make_analysis(start=datetime(2024, 2, 1)))
        self.repository.add_cost_analysis(self.make_analysis(period=AnalysisPeriod.WEEKLY))
        self.repository.add_cost_analysis(self.make_analysis(user_id="user-2"))

        monthly = self.repository.list_cost_analyses("user-1", period=AnalysisPeriod.MONTHLY)
        assert len(monthly) == 2
        assert monthly[0].id == newest
        assert len(self.repository.list_cost_analyses("user-1", limit=1)) == 1
