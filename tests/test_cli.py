"""
Tests for the CLI interface.
"""
import json
import os
import tempfile

import pytest
from typer.testing import CliRunner

from ai_quota_guard.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_FAIL, EXIT_CODE_INVALID
from ai_quota_guard.core.context import UserContext
from ai_quota_guard.core.ledger import UsageEventInput, record_usage_batch

runner = CliRunner()


@pytest.fixture
def db_path():
    """Create an initialized database in a temporary directory."""
    temp_dir = tempfile.mkdtemp()
    path = os.path.join(temp_dir, "cli.db")
    result = runner.invoke(app, ["--db", path, "init"])
    assert result.exit_code == EXIT_CODE_PASS
    yield path
    import shutil
    shutil.rmtree(temp_dir, ignore_errors=True)


def invoke(db_path, *args):
    return runner.invoke(app, ["--db", db_path, *args])


class TestSetup:
    """Test init and status commands."""

    def test_init_seeds_plans(self, tmp_path):
        result = runner.invoke(app, ["--db", str(tmp_path / "new.db"), "init"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "Database initialized with 2 plans" in result.output

    def test_status_initialized(self, db_path):
        result = invoke(db_path, "status")
        assert result.exit_code == EXIT_CODE_PASS
        assert "2 active plans" in result.output
        assert "Quota mode: enforce" in result.output

    def test_status_without_database(self, tmp_path):
        result = runner.invoke(app, ["--db", str(tmp_path / "missing.db"), "status"])
        assert result.exit_code == EXIT_CODE_FAIL

    def test_invalid_config_file(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("quota:\n  mode: block\n", encoding="utf-8")
        result = runner.invoke(app, ["--config", str(config_path), "status"])
        assert result.exit_code == EXIT_CODE_INVALID
        assert "Invalid configuration" in result.output

    def test_plans_listing(self, db_path):
        result = invoke(db_path, "plans")
        assert result.exit_code == EXIT_CODE_PASS
        assert "Basic" in result.output
        assert "Pro" in result.output


class TestRecordAndCheck:
    """Test the ledger and quota commands."""

    def test_record_event(self, db_path):
        result = invoke(db_path, "record", "--user", "alice", "--feature", "chat",
                        "--model", "gpt-4", "--input-tokens", "100", "--output-tokens", "50")
        assert result.exit_code == EXIT_CODE_PASS
        assert "Recorded usage event 1" in result.output

    def test_record_mismatched_total(self, db_path):
        result = invoke(db_path, "record", "--user", "alice", "--feature", "chat",
                        "--model", "gpt-4", "--input-tokens", "100", "--output-tokens", "50",
                        "--tokens-used", "999")
        assert result.exit_code == EXIT_CODE_INVALID
        assert "Invalid tokens_used" in result.output

    def test_record_unknown_feature(self, db_path):
        result = invoke(db_path, "record", "--user", "alice", "--feature", "translate",
                        "--model", "gpt-4", "--input-tokens", "1", "--output-tokens", "1")
        assert result.exit_code == EXIT_CODE_INVALID
        assert "Invalid feature" in result.output

    def test_record_non_finite_cost(self, db_path):
        result = invoke(db_path, "record", "--user", "alice", "--feature", "chat",
                        "--model", "gpt-4", "--input-tokens", "1", "--output-tokens", "1",
                        "--cost", "nan")
        assert result.exit_code == EXIT_CODE_INVALID
        assert "Invalid cost" in result.output
        assert "No usage events recorded" in invoke(db_path, "recent", "--user", "alice").output

    def test_check_with_remaining_quota(self, db_path):
        invoke(db_path, "seed-demo", "--user", "alice")
        result = invoke(db_path, "check", "--user", "alice", "--feature", "document_analysis")
        assert result.exit_code == EXIT_CODE_PASS
        assert "Used: 40" in result.output
        assert "Remaining: 10" in result.output
        assert "ALLOWED" in result.output

    def test_check_enforced_exceeded(self, db_path):
        record_usage_batch(UserContext("alice"), [
            UsageEventInput(feature="document_analysis", model="gpt-4o-mini",
                            input_tokens=10, output_tokens=10)
            for _ in range(50)
        ], db_path)

        result = invoke(db_path, "check", "--user", "alice",
                        "--feature", "document_analysis", "--enforced")
        assert result.exit_code == EXIT_CODE_FAIL
        assert "EXCEEDED" in result.output

        # Without --enforced the verdict is only reported
        result = invoke(db_path, "check", "--user", "alice", "--feature", "document_analysis")
        assert result.exit_code == EXIT_CODE_PASS

    def test_check_pro_is_unlimited(self, db_path):
        assert invoke(db_path, "subscribe", "--user", "alice", "--plan", "pro").exit_code == EXIT_CODE_PASS
        result = invoke(db_path, "check", "--user", "alice", "--feature", "chat")
        assert result.exit_code == EXIT_CODE_PASS
        assert "Limit: unlimited" in result.output

    def test_aggregate(self, db_path):
        invoke(db_path, "seed-demo", "--user", "alice")
        result = invoke(db_path, "aggregate", "--user", "alice", "--feature", "meeting_summary")
        assert result.exit_code == EXIT_CODE_PASS
        assert "12" in result.output

    def test_aggregate_inverted_range(self, db_path):
        result = invoke(db_path, "aggregate", "--user", "alice", "--feature", "chat",
                        "--start", "2024-03-01", "--end", "2024-02-01")
        assert result.exit_code == EXIT_CODE_INVALID


class TestReports:
    """Test summary and recent commands."""

    def test_summary_without_usage(self, db_path):
        result = invoke(db_path, "summary", "--user", "alice")
        assert result.exit_code == EXIT_CODE_PASS
        assert "Total requests: 0" in result.output
        assert "No usage recorded" in result.output

    def test_summary_with_usage(self, db_path):
        invoke(db_path, "seed-demo", "--user", "alice")
        result = invoke(db_path, "summary", "--user", "alice")
        assert result.exit_code == EXIT_CODE_PASS
        assert "Total requests: 52" in result.output

    def test_summary_unknown_period(self, db_path):
        result = invoke(db_path, "summary", "--user", "alice", "--period", "decade")
        assert result.exit_code == EXIT_CODE_INVALID

    def test_recent_empty(self, db_path):
        result = invoke(db_path, "recent", "--user", "alice")
        assert result.exit_code == EXIT_CODE_PASS
        assert "No usage events recorded" in result.output

    def test_summary_filtered_by_feature(self, db_path):
        invoke(db_path, "seed-demo", "--user", "alice")
        result = invoke(db_path, "summary", "--user", "alice", "--feature", "meeting_summary")
        assert result.exit_code == EXIT_CODE_PASS
        assert "Total requests: 12" in result.output
        assert "document_analysis" not in result.output

    def test_summary_unknown_feature(self, db_path):
        result = invoke(db_path, "summary", "--user", "alice", "--feature", "translate")
        assert result.exit_code == EXIT_CODE_INVALID
        assert "Invalid feature" in result.output


class TestSubscriptionsAndSuggestions:
    """Test billing and suggestion commands."""

    def test_subscribe_unknown_plan(self, db_path):
        result = invoke(db_path, "subscribe", "--user", "alice", "--plan", "enterprise")
        assert result.exit_code == EXIT_CODE_INVALID

    def test_cancel_without_subscription(self, db_path):
        result = invoke(db_path, "cancel", "--user", "alice")
        assert result.exit_code == EXIT_CODE_INVALID
        assert "No subscription" in result.output

    def test_webhook(self, db_path, tmp_path):
        payload_file = tmp_path / "renewed.json"
        payload_file.write_text(json.dumps({
            "type": "subscription.renewed",
            "data": {"user_id": "alice", "plan": "pro"}
        }), encoding="utf-8")

        result = invoke(db_path, "webhook", str(payload_file))
        assert result.exit_code == EXIT_CODE_PASS
        assert "alice: pro (active)" in result.output

    def test_webhook_unreadable_payload(self, db_path, tmp_path):
        payload_file = tmp_path / "broken.json"
        payload_file.write_text("{not json", encoding="utf-8")
        result = invoke(db_path, "webhook", str(payload_file))
        assert result.exit_code == EXIT_CODE_INVALID

    def test_suggestion_lifecycle(self, db_path):
        result = invoke(db_path, "suggest", "--user", "alice", "--category", "cost",
                        "--title", "Cache answers", "--description", "Repeat questions hit the API")
        assert result.exit_code == EXIT_CODE_PASS
        assert "Added suggestion 1" in result.output

        result = invoke(db_path, "apply-suggestion", "--user", "bob", "--id", "1")
        assert result.exit_code == EXIT_CODE_INVALID

        result = invoke(db_path, "apply-suggestion", "--user", "alice", "--id", "1")
        assert result.exit_code == EXIT_CODE_PASS

        result = invoke(db_path, "suggestions", "--user", "alice")
        assert "applied" in result.output

    def test_suggest_invalid_category(self, db_path):
        result = invoke(db_path, "suggest", "--user", "alice", "--category", "security",
                        "--title", "t", "--description", "d")
        assert result.exit_code == EXIT_CODE_INVALID
        assert "Invalid category" in result.output


class TestAnalytics:
    """Test performance metric and cost analysis commands."""

    def test_metric_lifecycle(self, db_path):
        result = invoke(db_path, "metric", "--user", "alice", "--feature", "chat",
                        "--metric", "response_time", "--value", "850", "--unit", "ms",
                        "--context", '{"model": "gpt-4"}')
        assert result.exit_code == EXIT_CODE_PASS
        assert "Recorded metric 1" in result.output

        invoke(db_path, "metric", "--user", "alice", "--feature", "document_qa",
               "--metric", "accuracy", "--value", "0.92")

        result = invoke(db_path, "metrics", "--user", "alice", "--feature", "chat")
        assert result.exit_code == EXIT_CODE_PASS
        assert "850 ms" in result.output
        assert "accuracy" not in result.output

    def test_metrics_empty(self, db_path):
        result = invoke(db_path, "metrics", "--user", "alice", "--period", "week")
        assert result.exit_code == EXIT_CODE_PASS
        assert "No performance metrics recorded" in result.output

    def test_metric_unknown_name(self, db_path):
        result = invoke(db_path, "metric", "--user", "alice", "--feature", "chat",
                        "--metric", "latency", "--value", "1")
        assert result.exit_code == EXIT_CODE_INVALID
        assert "Invalid metric" in result.output

    def test_metric_context_must_be_json(self, db_path):
        result = invoke(db_path, "metric", "--user", "alice", "--feature", "chat",
                        "--metric", "accuracy", "--value", "1", "--context", "{oops")
        assert result.exit_code == EXIT_CODE_INVALID
        assert "Invalid context" in result.output

    def test_cost_analysis_lifecycle(self, db_path):
        result = invoke(db_path, "cost-analysis", "--user", "alice", "--period", "monthly",
                        "--start", "2024-05-01", "--end", "2024-06-01", "--total-cost", "12.5",
                        "--feature-costs", '{"chat": 2.5, "document_qa": 10}',
                        "--token-usage", '{"chat": 12000}')
        assert result.exit_code == EXIT_CODE_PASS
        assert "Stored cost analysis 1" in result.output

        result = invoke(db_path, "cost-analyses", "--user", "alice")
        assert result.exit_code == EXIT_CODE_PASS
        assert "monthly" in result.output
        assert "document_qa" in result.output
        assert "$12.50" in result.output

        result = invoke(db_path, "cost-analyses", "--user", "bob")
        assert "No cost analyses stored" in result.output

    def test_cost_analysis_inverted_window(self, db_path):
        result = invoke(db_path, "cost-analysis", "--user", "alice", "--period", "weekly",
                        "--start", "2024-05-08", "--end", "2024-05-01", "--total-cost", "1")
        assert result.exit_code == EXIT_CODE_INVALID
        assert "Invalid start_date" in result.output

    def test_cost_analysis_unknown_feature_key(self, db_path):
        result = invoke(db_path, "cost-analysis", "--user", "alice", "--period", "daily",
                        "--start", "2024-05-01", "--end", "2024-05-02", "--total-cost", "1",
                        "--feature-costs", '{"translate": 1}')
        assert result.exit_code == EXIT_CODE_INVALID
        assert "Invalid feature_costs" in result.output


class TestUninitializedDatabase:
    """Commands against a database that was never initialized."""

    @pytest.mark.parametrize("args", [
        ["record", "--user", "alice", "--feature", "chat", "--model", "gpt-4",
         "--input-tokens", "1", "--output-tokens", "1"],
        ["check", "--user", "alice", "--feature", "chat"],
        ["recent", "--user", "alice"],
        ["summary", "--user", "alice"],
        ["plans"],
        ["metrics", "--user", "alice"],
        ["cost-analyses", "--user", "alice"],
    ])
    def test_reports_database_error(self, tmp_path, args):
        result = runner.invoke(app, ["--db", str(tmp_path / "empty.db"), *args])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Database error" in result.output
        assert "init" in result.output
        assert result.exception is None or isinstance(result.exception, SystemExit)
