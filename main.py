#!/usr/bin/env python3
"""Building Alert Engine - CLI Entry Point."""
import sys
import json
import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging
    from utils.store_client import StoreClient
    from config import load_config
    from models.database import Database
    from alerts.channels import build_sink
    from alerts.engine import AlertEngine
    from alerts.manager import AlertManager
    from alerts.insights import InsightAggregator

    config = load_config(config_path)
    log_cfg = config.get("logging", {})
    setup_logging("DEBUG" if verbose else log_cfg.get("level", "INFO"), log_cfg.get("file"))

    db = Database(config["database"]["path"])
    db.connect()
    store = StoreClient.from_config(db, config)
    sink = build_sink(config)

    return {
        "config": config,
        "db": db,
        "store": store,
        "sink": sink,
        "engine": AlertEngine.from_config(store, sink, config),
        "manager": AlertManager(store, sink),
        "insights": InsightAggregator(store),
    }


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="buildingalerts")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Building Alert Engine - telemetry rules, deduplicated alerts & auto-resolution."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        components = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
        ctx.obj["_components"] = components
        ctx.find_root().call_on_close(lambda: _close_components(components))
    return ctx.obj["_components"]


def _close_components(c):
    c["store"].close()
    c["db"].close()


def _user_building_ids(c, user):
    return [b.id for b in c["store"].list_buildings(owner_id=user)]


def _alerts_table(title, alerts):
    from utils.formatters import priority_markup, time_ago
    table = Table(title=title, show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Building")
    table.add_column("Priority")
    table.add_column("Title")
    table.add_column("Created", style="dim")
    table.add_column("Read")
    for a in alerts:
        table.add_row(str(a.id), a.building_id, priority_markup(a.priority), a.title,
                      time_ago(a.created_at), "✓" if a.is_read else "")
    return table


# ──────────────────────────────────────────────────────
# ALERTS
# ──────────────────────────────────────────────────────
@cli.group()
def alerts():
    """Alert generation and lifecycle."""
    pass


@alerts.command("generate")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def alerts_generate(ctx, as_json):
    """Evaluate every online building and write new alerts."""
    from alerts.channels import ConsoleChannel
    c = _get_components(ctx)
    if as_json:
        # Keep stdout pure JSON
        c["sink"].channels = [ch for ch in c["sink"].channels if not isinstance(ch, ConsoleChannel)]
    report = c["engine"].generate_for_all_buildings()

    if as_json:
        click.echo(json.dumps({
            "total_buildings": report.total_buildings,
            "total_alerts": report.total_alerts,
            "timestamp": report.timestamp.isoformat(),
            "error": report.error,
            "results": [{
                "building_id": r.building_id,
                "building_name": r.building_name,
                "alerts_generated": r.alerts_generated,
                "suppressed": r.suppressed,
                "alerts": [a.to_dict() for a in r.alerts],
                "errors": r.errors,
                "error": r.error,
            } for r in report.results],
        }, indent=2, default=str))
        if report.error:
            ctx.exit(1)
        return

    if report.error:
        raise click.ClickException(f"Alert generation failed: {report.error}")

    table = Table(title="Alert Generation", show_header=True)
    table.add_column("Building")
    table.add_column("Candidates", justify="right")
    table.add_column("Created", justify="right")
    table.add_column("Suppressed", justify="right")
    table.add_column("Status")
    for r in report.results:
        if r.error:
            status = f"[red]error: {r.error}[/red]"
        elif r.errors:
            status = f"[yellow]{len(r.errors)} write error(s)[/yellow]"
        else:
            status = "[green]ok[/green]"
        table.add_row(r.building_name or r.building_id, str(r.candidates),
                      str(r.alerts_generated), str(r.suppressed), status)
    console.print(table)
    console.print(f"[bold]{report.total_alerts}[/bold] alert(s) created for {report.total_buildings} building(s)")


@alerts.command("resolve-auto")
@click.pass_context
def alerts_resolve_auto(ctx):
    """Auto-resolve open alerts whose condition has cleared."""
    c = _get_components(ctx)
    report = c["engine"].auto_resolve_all()
    if report.error:
        raise click.ClickException(f"Auto-resolution failed: {report.error}")
    for a in report.resolved_alerts:
        console.print(f"  [green]✓[/green] #{a.id} {a.title}: {a.resolution_note}")
    for err in report.errors:
        console.print(f"  [red]✗[/red] #{err['alert_id']}: {err['error']}")
    console.print(f"Resolved [bold]{report.resolved}[/bold] of {report.total_checked} open alert(s)")


@alerts.command("resolve")
@click.argument("alert_id", type=int)
@click.option("--user", "user_id", required=True, help="User resolving the alert")
@click.option("--note", default=None, help="Resolution note")
@click.pass_context
def alerts_resolve(ctx, alert_id, user_id, note):
    """Resolve an alert on behalf of a user."""
    from utils.errors import AlertNotFoundError
    c = _get_components(ctx)
    try:
        alert = c["manager"].resolve(alert_id, user_id, note)
    except AlertNotFoundError as e:
        raise click.ClickException(str(e))
    console.print(f"[green]✓[/green] Alert #{alert.id} resolved ({alert.title})")


@alerts.command("read")
@click.argument("alert_id", type=int, required=False)
@click.option("--user", "user_id", default=None, help="Mark all alerts of this user's buildings read")
@click.pass_context
def alerts_read(ctx, alert_id, user_id):
    """Mark one alert, or all of a user's alerts, as read."""
    from utils.errors import AlertNotFoundError
    c = _get_components(ctx)
    if alert_id is None and user_id is None:
        raise click.UsageError("Give an ALERT_ID or --user")
    if alert_id is not None:
        try:
            c["manager"].mark_read(alert_id)
        except AlertNotFoundError as e:
            raise click.ClickException(str(e))
        console.print(f"[green]✓[/green] Alert #{alert_id} marked read")
    else:
        count = c["manager"].mark_all_read(_user_building_ids(c, user_id))
        console.print(f"[green]✓[/green] {count} alert(s) marked read")


@alerts.command("active")
@click.option("--user", "user_id", required=True, help="Owner of the buildings")
@click.pass_context
def alerts_active(ctx, user_id):
    """List unresolved alerts for a user's buildings."""
    c = _get_components(ctx)
    active = c["manager"].list_active(_user_building_ids(c, user_id))
    if not active:
        console.print("[green]All clear - no open alerts[/green]")
        return
    console.print(_alerts_table("Active Alerts", active))


@alerts.command("stats")
@click.option("--user", "user_id", required=True, help="Owner of the buildings")
@click.pass_context
def alerts_stats(ctx, user_id):
    """Show alert counts for a user's buildings."""
    c = _get_components(ctx)
    stats = c["manager"].get_statistics(_user_building_ids(c, user_id))
    table = Table(title="Alert Statistics", show_header=False)
    table.add_column("Metric")
    table.add_column("Count", justify="right")
    for key in ("total", "unread", "unresolved", "critical", "high"):
        table.add_row(key.capitalize(), str(stats[key]))
    console.print(table)


@alerts.command("insights")
@click.option("--user", "user_id", required=True, help="Owner of the buildings")
@click.option("--period", default="month", type=click.Choice(["week", "month", "quarter", "year"]))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def alerts_insights(ctx, user_id, period, as_json):
    """Summarize alert history for a user's buildings."""
    from utils.formatters import format_pct
    c = _get_components(ctx)
    insights = c["insights"].get_alert_insights(user_id, period)
    if insights is None:
        console.print(f"[dim]No buildings found for user {user_id}[/dim]")
        return
    if as_json:
        click.echo(json.dumps(insights, indent=2, default=str))
        return

    trend = insights["alert_trends"]
    console.print(f"[bold]Alert insights ({period})[/bold]")
    console.print(
        f"  Total: {insights['total_alerts']}  Critical: {insights['critical_alerts']}  "
        f"Resolved: {insights['resolved_alerts']} ({format_pct(insights['resolution_rate'])})"
    )
    console.print(f"  Trend: {trend['pattern']} ({trend['percentage_change']:+.1f}%)")

    if insights["common_issues"]:
        table = Table(title="Most Common Issues", show_header=True)
        table.add_column("Issue")
        table.add_column("Count", justify="right")
        for issue in insights["common_issues"]:
            table.add_row(issue["issue"], str(issue["count"]))
        console.print(table)

    for rec in insights["recommendations"]:
        console.print(f"  [yellow]→[/yellow] [bold]{rec['title']}[/bold]: {rec['message']} ({rec['action']})")


# ──────────────────────────────────────────────────────
# WATCH
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--generate-every", default=None, type=int, help="Minutes between generation runs")
@click.option("--resolve-every", default=None, type=int, help="Minutes between auto-resolve runs")
@click.pass_context
def watch(ctx, generate_every, resolve_every):
    """Run generation and auto-resolution on a schedule until Ctrl+C."""
    from alerts.scheduler import EngineScheduler
    c = _get_components(ctx)
    sched_cfg = c["config"].get("scheduler", {})
    scheduler = EngineScheduler(
        c["engine"],
        generate_minutes=generate_every or sched_cfg.get("generate_interval_minutes", 15),
        resolve_minutes=resolve_every or sched_cfg.get("resolve_interval_minutes", 30),
    )
    scheduler.start()
    console.print("[bold]Watching buildings.[/bold] Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\nStopping...")
    finally:
        scheduler.stop()


if __name__ == "__main__":
    cli()
