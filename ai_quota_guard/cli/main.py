"""
CLI interface for AI Quota Guard.

Provides command-line access to the usage ledger, quota checks, cost
reports, subscriptions, optimization suggestions and analytics records. The acting user is
always passed explicitly with ``--user``.
"""

import dataclasses
import json
import logging
import sqlite3
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ai_quota_guard.config.loader import AppConfig, load_config
from ai_quota_guard.core.aggregator import aggregate
from ai_quota_guard.core.context import UserContext
from ai_quota_guard.core.errors import (
    AuthorizationError,
    ExternalServiceError,
    NotFoundError,
    QuotaGuardError,
    ValidationError,
)
from ai_quota_guard.core.ledger import UsageEventInput, parse_feature, record_usage
from ai_quota_guard.core.periods import month_period, rolling_period
from ai_quota_guard.core.quota import QuotaDecision, check_quota
from ai_quota_guard.core.reporting import (
    CostSummary,
    add_suggestion,
    apply_suggestion,
    list_cost_analyses,
    list_performance_metrics,
    list_suggestions,
    record_cost_analysis,
    record_performance_metric,
    summarize,
)
from ai_quota_guard.core.subscriptions import (
    activate_subscription,
    apply_billing_webhook,
    cancel_subscription,
    list_plans,
    seed_plans,
)
from ai_quota_guard.demo.seed_demo_data import seed_demo_data
from ai_quota_guard.sdk.openai_client import DEGRADED_RESPONSE
from ai_quota_guard.storage.analytics import AnalyticsRepository
from ai_quota_guard.storage.billing import BillingRepository
from ai_quota_guard.storage.repository import get_repository, initialize_schema
from ai_quota_guard.storage.suggestions import SuggestionRepository

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1     # Quota exhausted (with --enforced) or operational error
EXIT_CODE_INVALID = 2  # Bad input, unknown record or ownership mismatch

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to YAML configuration file"
    ),
    db_path: Optional[str] = typer.Option(
        None, "--db", help="Override the configured database path"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log ledger and quota activity"
    )
):
    """AI Quota Guard CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True
    )

    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Invalid configuration:[/] {e}")
        sys.exit(EXIT_CODE_INVALID)

    if db_path:
        config = dataclasses.replace(config, database_path=db_path)
    ctx.obj = config

    if ctx.invoked_subcommand is None:
        console.print("AI Quota Guard - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the database and seed the configured plans."""
    config: AppConfig = ctx.obj
    try:
        initialize_schema(config.database_path)
        count = seed_plans(BillingRepository(config.database_path), config.policy)
        console.print(f"[green]✓[/] Database initialized with {count} plans")
        sys.exit(EXIT_CODE_PASS)
    except sqlite3.Error as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status(ctx: typer.Context):
    """Check initialization status of AI Quota Guard."""
    config: AppConfig = ctx.obj
    if not Path(config.database_path).exists():
        console.print(f"[yellow]![/] No database at {config.database_path}; run `ai-quota-guard init`")
        sys.exit(EXIT_CODE_FAIL)
    try:
        plans = list_plans(BillingRepository(config.database_path))
    except sqlite3.OperationalError:
        console.print(f"[yellow]![/] Database at {config.database_path} is not initialized")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] AI Quota Guard is initialized ({len(plans)} active plans)")
    console.print(f"Quota mode: {config.quota_mode.value}")


@app.command()
def record(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Acting user id"),
    feature: str = typer.Option(..., "--feature", "-f", help="Feature that was used"),
    model: str = typer.Option(..., "--model", "-m", help="Model that served the call"),
    input_tokens: int = typer.Option(..., "--input-tokens", help="Input token count"),
    output_tokens: int = typer.Option(..., "--output-tokens", help="Output token count"),
    tokens_used: Optional[int] = typer.Option(None, "--tokens-used", help="Reported total (must match)"),
    cost: Optional[float] = typer.Option(None, "--cost", help="Cost in USD (computed if omitted)"),
    response_time: Optional[int] = typer.Option(None, "--response-time", help="Latency in ms"),
    failed: bool = typer.Option(False, "--failed", help="Record the call as unsuccessful"),
    error_message: Optional[str] = typer.Option(None, "--error", help="Error message for failed calls")
):
    """Append one usage event to the ledger."""
    config: AppConfig = ctx.obj
    try:
        event_id = record_usage(
            UserContext(user),
            UsageEventInput(
                feature=feature,
                model=model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                tokens_used=tokens_used,
                cost=cost,
                response_time_ms=response_time,
                success=not failed,
                error_message=error_message
            ),
            db_path=config.database_path
        )
    except QuotaGuardError as e:
        _exit_with_error(e)
    except sqlite3.OperationalError as e:
        _exit_with_database_error(config, e)
    console.print(f"[green]✓[/] Recorded usage event {event_id}")


@app.command()
def check(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Acting user id"),
    feature: str = typer.Option(..., "--feature", "-f", help="Feature to check"),
    enforced: bool = typer.Option(
        False, "--enforced", "-e", help="Exit with error code if the quota is exhausted"
    )
):
    """Check the user's remaining quota for a feature this month."""
    config: AppConfig = ctx.obj
    try:
        decision = check_quota(
            UserContext(user),
            feature,
            get_repository(config.database_path),
            BillingRepository(config.database_path),
            policy=config.policy,
            fallback_plan=config.fallback_plan
        )
    except QuotaGuardError as e:
        _exit_with_error(e)
    except sqlite3.OperationalError as e:
        _exit_with_database_error(config, e)

    _display_decision(decision)
    if enforced and not decision.allowed:
        sys.exit(EXIT_CODE_FAIL)
    sys.exit(EXIT_CODE_PASS)


@app.command("aggregate")
def aggregate_command(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Acting user id"),
    feature: str = typer.Option(..., "--feature", "-f", help="Feature to aggregate"),
    start: Optional[datetime] = typer.Option(None, "--start", formats=DATE_FORMATS,
                                             help="Inclusive start (defaults to month start)"),
    end: Optional[datetime] = typer.Option(None, "--end", formats=DATE_FORMATS,
                                           help="Exclusive end (defaults to next month start)")
):
    """Aggregate a feature's usage over a period."""
    config: AppConfig = ctx.obj
    current = month_period()
    try:
        user_ctx = UserContext(user)
        usage = aggregate(
            get_repository(config.database_path),
            user_ctx.user_id,
            feature,
            start or current.start,
            end or current.end
        )
    except QuotaGuardError as e:
        _exit_with_error(e)
    except sqlite3.OperationalError as e:
        _exit_with_database_error(config, e)

    table = Table(title=f"Usage for {feature}")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Requests", str(usage.usage_count))
    table.add_row("Total tokens", f"{usage.total_tokens:,}")
    table.add_row("Total cost", _format_currency(usage.total_cost))
    table.add_row("Avg response time", f"{usage.avg_response_time:,.0f} ms")
    table.add_row("Success rate", f"{usage.success_rate:.1f}%")
    console.print(table)


@app.command()
def summary(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Acting user id"),
    period: str = typer.Option(
        "current", "--period", "-p",
        help="current (calendar month), week, month or quarter"
    ),
    feature: Optional[str] = typer.Option(None, "--feature", "-f", help="Only report this feature")
):
    """Show cost and usage totals with a per-feature breakdown."""
    config: AppConfig = ctx.obj
    try:
        user_ctx = UserContext(user)
        window = month_period() if period == "current" else rolling_period(period)
        result = summarize(
            get_repository(config.database_path), user_ctx.user_id, window, feature=feature
        )
    except QuotaGuardError as e:
        _exit_with_error(e)
    except sqlite3.OperationalError as e:
        _exit_with_database_error(config, e)
    _display_summary(result)


@app.command()
def recent(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Acting user id"),
    feature: Optional[str] = typer.Option(None, "--feature", "-f", help="Filter by feature"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum events to show")
):
    """List the user's most recent usage events."""
    config: AppConfig = ctx.obj
    try:
        user_ctx = UserContext(user)
        events = get_repository(config.database_path).get_events(
            user_ctx.user_id,
            feature=parse_feature(feature) if feature else None,
            limit=limit
        )
    except QuotaGuardError as e:
        _exit_with_error(e)
    except sqlite3.OperationalError as e:
        _exit_with_database_error(config, e)

    if not events:
        console.print("\n[dim]No usage events recorded.[/]")
        return

    table = Table(title="Recent usage")
    for column in ("Time", "Feature", "Model", "Tokens", "Cost", "OK"):
        table.add_column(column)
    for event in events:
        table.add_row(
            event.timestamp.strftime("%Y-%m-%d %H:%M"),
            event.feature.value,
            event.model,
            f"{event.tokens_used:,}",
            _format_currency(event.cost),
            "✓" if event.success else "✗"
        )
    console.print(table)


@app.command()
def plans(ctx: typer.Context):
    """List active subscription plans."""
    config: AppConfig = ctx.obj
    table = Table(title="Subscription plans")
    table.add_column("Plan")
    table.add_column("Price", justify="right")
    table.add_column("Limits")
    try:
        catalog = list_plans(BillingRepository(config.database_path))
    except sqlite3.OperationalError as e:
        _exit_with_database_error(config, e)
    for plan in catalog:
        limits = ", ".join(
            f"{feature}: {'unlimited' if limit is None else limit}"
            for feature, limit in sorted(plan.limits.items())
        )
        table.add_row(plan.display_name, f"{_format_currency(plan.price)}/{plan.billing_cycle}", limits)
    console.print(table)


@app.command()
def subscribe(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Acting user id"),
    plan: str = typer.Option(..., "--plan", "-p", help="Plan name")
):
    """Activate a plan for the user for the current calendar month."""
    config: AppConfig = ctx.obj
    try:
        subscription = activate_subscription(
            UserContext(user), BillingRepository(config.database_path), plan
        )
    except QuotaGuardError as e:
        _exit_with_error(e)
    except sqlite3.OperationalError as e:
        _exit_with_database_error(config, e)
    console.print(
        f"[green]✓[/] {user} is on {subscription.plan_name} until "
        f"{subscription.current_period_end:%Y-%m-%d}"
    )


@app.command()
def cancel(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Acting user id")
):
    """Cancel the user's subscription."""
    config: AppConfig = ctx.obj
    try:
        cancel_subscription(UserContext(user), BillingRepository(config.database_path))
    except QuotaGuardError as e:
        _exit_with_error(e)
    except sqlite3.OperationalError as e:
        _exit_with_database_error(config, e)
    console.print(f"[green]✓[/] Subscription for {user} cancelled")


@app.command()
def webhook(
    ctx: typer.Context,
    payload_file: Path = typer.Argument(..., help="JSON webhook payload from the payment processor")
):
    """Apply a payment processor webhook payload."""
    config: AppConfig = ctx.obj
    try:
        payload = json.loads(payload_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read payload:[/] {e}")
        sys.exit(EXIT_CODE_INVALID)
    try:
        subscription = apply_billing_webhook(payload, BillingRepository(config.database_path))
    except QuotaGuardError as e:
        _exit_with_error(e)
    except sqlite3.OperationalError as e:
        _exit_with_database_error(config, e)
    console.print(
        f"[green]✓[/] {subscription.user_id}: {subscription.plan_name} ({subscription.status.value})"
    )


@app.command()
def suggest(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Acting user id"),
    category: str = typer.Option(..., "--category", help="cost, performance or usage"),
    title: str = typer.Option(..., "--title", help="Short title"),
    description: str = typer.Option(..., "--description", help="What to change"),
    impact: str = typer.Option("medium", "--impact", help="high, medium or low"),
    savings: Optional[float] = typer.Option(None, "--savings", help="Estimated monthly savings"),
    implementation: Optional[str] = typer.Option(None, "--implementation", help="How to apply it")
):
    """Add an optimization suggestion."""
    config: AppConfig = ctx.obj
    try:
        suggestion_id = add_suggestion(
            UserContext(user),
            SuggestionRepository(config.database_path),
            category=category,
            title=title,
            description=description,
            impact=impact,
            estimated_savings=savings,
            implementation=implementation
        )
    except QuotaGuardError as e:
        _exit_with_error(e)
    except sqlite3.OperationalError as e:
        _exit_with_database_error(config, e)
    console.print(f"[green]✓[/] Added suggestion {suggestion_id}")


@app.command()
def suggestions(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Acting user id")
):
    """List the user's optimization suggestions."""
    config: AppConfig = ctx.obj
    try:
        items = list_suggestions(UserContext(user), SuggestionRepository(config.database_path))
    except QuotaGuardError as e:
        _exit_with_error(e)
    except sqlite3.OperationalError as e:
        _exit_with_database_error(config, e)

    if not items:
        console.print("\n[dim]No optimization suggestions.[/]")
        return

    table = Table(title="Optimization suggestions")
    for column in ("ID", "Category", "Impact", "Title", "Savings", "Status"):
        table.add_column(column)
    for item in items:
        table.add_row(
            str(item.id),
            item.category.value,
            item.impact.value,
            item.title,
            _format_currency(item.estimated_savings) if item.estimated_savings is not None else "-",
            "applied" if item.is_applied else "proposed"
        )
    console.print(table)


@app.command("apply-suggestion")
def apply_suggestion_command(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Acting user id"),
    suggestion_id: int = typer.Option(..., "--id", help="Suggestion id")
):
    """Mark a suggestion as applied."""
    config: AppConfig = ctx.obj
    try:
        apply_suggestion(UserContext(user), SuggestionRepository(config.database_path), suggestion_id)
    except QuotaGuardError as e:
        _exit_with_error(e)
    except sqlite3.OperationalError as e:
        _exit_with_database_error(config, e)
    console.print(f"[green]✓[/] Suggestion {suggestion_id} applied")


@app.command()
def metric(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Acting user id"),
    feature: str = typer.Option(..., "--feature", "-f", help="Feature that was measured"),
    name: str = typer.Option(..., "--metric", help="accuracy, response_time or user_satisfaction"),
    value: float = typer.Option(..., "--value", help="Measured value"),
    unit: Optional[str] = typer.Option(None, "--unit", help="Unit of the value"),
    date: Optional[datetime] = typer.Option(None, "--date", formats=DATE_FORMATS,
                                            help="When it was measured (defaults to now)"),
    context: Optional[str] = typer.Option(None, "--context", help="Extra details as a JSON object")
):
    """Record a performance metric for a feature."""
    config: AppConfig = ctx.obj
    try:
        metric_id = record_performance_metric(
            UserContext(user),
            AnalyticsRepository(config.database_path),
            feature=feature,
            metric=name,
            value=value,
            date=date,
            unit=unit,
            context=_load_json_option(context, "context")
        )
    except QuotaGuardError as e:
        _exit_with_error(e)
    except sqlite3.OperationalError as e:
        _exit_with_database_error(config, e)
    console.print(f"[green]✓[/] Recorded metric {metric_id}")


@app.command()
def metrics(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Acting user id"),
    feature: Optional[str] = typer.Option(None, "--feature", "-f", help="Filter by feature"),
    period: Optional[str] = typer.Option(
        None, "--period", "-p",
        help="current (calendar month), week, month or quarter (defaults to all time)"
    )
):
    """List the user's performance metrics, newest first."""
    config: AppConfig = ctx.obj
    try:
        window = None
        if period is not None:
            window = month_period() if period == "current" else rolling_period(period)
        items = list_performance_metrics(
            UserContext(user), AnalyticsRepository(config.database_path), feature=feature, period=window
        )
    except QuotaGuardError as e:
        _exit_with_error(e)
    except sqlite3.OperationalError as e:
        _exit_with_database_error(config, e)

    if not items:
        console.print("\n[dim]No performance metrics recorded.[/]")
        return

    table = Table(title="Performance metrics")
    for column in ("Date", "Feature", "Metric", "Value"):
        table.add_column(column)
    for item in items:
        value = f"{item.value:g} {item.unit}" if item.unit else f"{item.value:g}"
        table.add_row(item.date.strftime("%Y-%m-%d %H:%M"), item.feature.value, item.metric.value, value)
    console.print(table)


@app.command("cost-analysis")
def cost_analysis(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Acting user id"),
    period: str = typer.Option(..., "--period", "-p", help="daily, weekly or monthly"),
    start: datetime = typer.Option(..., "--start", formats=DATE_FORMATS, help="Inclusive start"),
    end: datetime = typer.Option(..., "--end", formats=DATE_FORMATS, help="Exclusive end"),
    total_cost: float = typer.Option(..., "--total-cost", help="Total cost in USD"),
    feature_costs: Optional[str] = typer.Option(None, "--feature-costs",
                                                help='JSON object, e.g. {"chat": 1.5}'),
    token_usage: Optional[str] = typer.Option(None, "--token-usage",
                                              help='JSON object, e.g. {"chat": 12000}'),
    predictions: Optional[str] = typer.Option(None, "--predictions", help="JSON object")
):
    """Store a cost analysis snapshot."""
    config: AppConfig = ctx.obj
    try:
        analysis_id = record_cost_analysis(
            UserContext(user),
            AnalyticsRepository(config.database_path),
            period=period,
            start_date=start,
            end_date=end,
            total_cost=total_cost,
            feature_costs=_load_json_option(feature_costs, "feature_costs"),
            token_usage=_load_json_option(token_usage, "token_usage"),
            predictions=_load_json_option(predictions, "predictions")
        )
    except QuotaGuardError as e:
        _exit_with_error(e)
    except sqlite3.OperationalError as e:
        _exit_with_database_error(config, e)
    console.print(f"[green]✓[/] Stored cost analysis {analysis_id}")


@app.command("cost-analyses")
def cost_analyses(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Acting user id"),
    period: Optional[str] = typer.Option(None, "--period", "-p", help="daily, weekly or monthly"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum snapshots to show")
):
    """List stored cost analysis snapshots."""
    config: AppConfig = ctx.obj
    try:
        items = list_cost_analyses(
            UserContext(user), AnalyticsRepository(config.database_path), period=period, limit=limit
        )
    except QuotaGuardError as e:
        _exit_with_error(e)
    except sqlite3.OperationalError as e:
        _exit_with_database_error(config, e)

    if not items:
        console.print("\n[dim]No cost analyses stored.[/]")
        return

    table = Table(title="Cost analyses")
    for column in ("ID", "Period", "From", "To", "Total", "Top feature"):
        table.add_column(column)
    for item in items:
        top = "-"
        if item.feature_costs:
            top = max(item.feature_costs.items(), key=lambda pair: pair[1])[0]
        table.add_row(
            str(item.id),
            item.period.value,
            f"{item.start_date:%Y-%m-%d}",
            f"{item.end_date:%Y-%m-%d}",
            _format_currency(item.total_cost),
            top
        )
    console.print(table)


@app.command("seed-demo")
def seed_demo(
    ctx: typer.Context,
    user: str = typer.Option("demo-user", "--user", "-u", help="User to seed data for")
):
    """Fill the database with demo usage for the current month."""
    config: AppConfig = ctx.obj
    count = seed_demo_data(user_id=user, db_path=config.database_path)
    console.print(f"[green]✓[/] Inserted {count} demo usage events for {user}")


def _exit_with_error(error: QuotaGuardError) -> None:
    """Print a one-line error and exit with the matching code."""
    if isinstance(error, ExternalServiceError):
        console.print(f"[red]{DEGRADED_RESPONSE}[/]")
        sys.exit(EXIT_CODE_FAIL)
    if isinstance(error, ValidationError) and error.field:
        console.print(f"[red]Invalid {error.field}:[/] {error}")
    else:
        console.print(f"[red]Error:[/] {error}")
    if isinstance(error, (ValidationError, NotFoundError, AuthorizationError)):
        sys.exit(EXIT_CODE_INVALID)
    sys.exit(EXIT_CODE_FAIL)


def _exit_with_database_error(config: AppConfig, error: sqlite3.OperationalError) -> None:
    """Report a missing or uninitialized database without a traceback."""
    console.print(
        f"[red]Database error:[/] {error}. Run `ai-quota-guard init` to initialize "
        f"{config.database_path}"
    )
    sys.exit(EXIT_CODE_FAIL)


def _load_json_option(raw: Optional[str], option: str) -> Optional[Dict[str, Any]]:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"not valid JSON ({e.msg})", field=option) from e


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    if 0 < abs(amount) < 0.01:
        return f"${abs(amount):,.6f}"
    return f"${abs(amount):,.2f}"


def _display_decision(decision: QuotaDecision) -> None:
    """Display a quota decision."""
    console.print(f"\n[bold]Quota for {decision.feature.value}[/bold] ({decision.plan} plan)")
    console.print("-" * 40)
    console.print(f"Period: {decision.period.start:%Y-%m-%d} to {decision.period.end:%Y-%m-%d}")
    console.print(f"Used: {decision.usage_count}")
    if decision.limit is None:
        console.print("Limit: unlimited")
    else:
        console.print(f"Limit: {decision.limit}")
        console.print(f"Remaining: {decision.remaining}")
    verdict = "[green]ALLOWED[/]" if decision.allowed else "[red]EXCEEDED[/]"
    console.print(f"\n[bold]Verdict:[/bold] {verdict}")


def _display_summary(result: CostSummary) -> None:
    """Display a cost summary in a clean, financial format."""
    console.print("\n[bold]AI Usage Summary[/bold]")
    console.print("-" * 40)
    console.print(f"Period: {result.period.start:%Y-%m-%d} to {result.period.end:%Y-%m-%d}")
    console.print(f"Total requests: {result.total_requests:,}")
    console.print(f"Total tokens: {result.total_tokens:,}")
    console.print(f"Total cost: {_format_currency(result.total_cost)}")

    if not result.per_feature:
        console.print("\n[dim]No usage recorded in this period.[/]")
        return

    table = Table(title="By feature")
    for column in ("Feature", "Requests", "Tokens", "Cost", "Avg ms", "Success"):
        table.add_column(column)
    for row in result.per_feature:
        table.add_row(
            row.feature.value,
            f"{row.requests:,}",
            f"{row.tokens:,}",
            _format_currency(row.cost),
            f"{row.avg_response_time:,.0f}",
            f"{row.success_rate:.1f}%"
        )
    console.print(table)


if __name__ == "__main__":
    app()
