#!/usr/bin/env python3
"""HealthWatch - CLI Entry Point."""
import sys
import time
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()

SEVERITY_STYLES = {
    "critical": "bold white on red",
    "error": "bold red",
    "warning": "yellow",
    "info": "blue",
}


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging
    from config import load_config
    from models.database import Database
    from alerts.rules_manager import RulesManager
    from alerts.channels import build_channels
    from alerts.dispatcher import NotificationDispatcher
    from alerts.engine import EvaluationCycle
    from alerts.incidents import IncidentJanitor
    from alerts.service import AlertService
    from monitor.aggregator import MetricsAggregator
    from monitor.health import HealthChecker

    config = load_config(config_path)
    log_cfg = config.get("logging", {})
    setup_logging("DEBUG" if verbose else log_cfg.get("level", "INFO"), log_cfg.get("file"))

    db = Database(config["database"]["path"], timeout=config["database"].get("timeout_seconds", 5))
    db.connect()

    alerts_cfg = config["alerts"]
    rules = RulesManager(alerts_cfg["rules_path"], alerts_cfg.get("default_cooldown_seconds", 300))
    rules.sync(db)

    # Console only if running interactively
    channels = build_channels(config, interactive=sys.stdout.isatty())
    telegram_bot = next((ch.bot for ch in channels if ch.name == "telegram"), None)
    dispatcher = NotificationDispatcher(channels, timeout=alerts_cfg["channel_timeout_seconds"])

    cycle = EvaluationCycle(
        snapshots=db, rules=db, incidents=db,
        dispatcher=dispatcher, channels=channels,
        persistence_failure_limit=alerts_cfg.get("persistence_failure_limit", 3),
    )
    inc_cfg = config["incidents"]
    janitor = IncidentJanitor(db, inc_cfg["auto_resolve_hours"], inc_cfg["retention_days"])
    aggregator = MetricsAggregator(db, config["monitor"].get("assistants_online", 0))
    alert_service = AlertService(dispatcher, channels, config.get("display", {}).get("timezone", "Europe/Kyiv"))

    health_cfg = config.get("health", {})
    health = HealthChecker(
        db, health_cfg.get("services", []),
        timeout=health_cfg.get("timeout_seconds", 5), slow_ms=health_cfg.get("slow_ms", 2000),
    )

    return {
        "config": config, "db": db, "rules": rules, "channels": channels,
        "dispatcher": dispatcher, "cycle": cycle, "janitor": janitor,
        "aggregator": aggregator, "alert_service": alert_service, "health": health,
        "telegram_bot": telegram_bot,
    }


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="healthwatch")
@click.pass_context
def cli(ctx, config_path, verbose):
    """HealthWatch - Service health metrics, threshold alerts & incidents."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    return ctx.obj["_components"]


def _print_channel_results(results):
    if not results:
        console.print("[yellow]No notification channels configured[/yellow]")
        return
    for name, ok in results.items():
        mark = "[green]✓[/green]" if ok else "[red]✗[/red]"
        console.print(f"  {mark} {name}")


# ──────────────────────────────────────────────────────
# SETUP / STATUS
# ──────────────────────────────────────────────────────
@cli.command()
@click.pass_context
def setup(ctx):
    """First-time setup: initialize DB, load rules, test channels."""
    c = _get_components(ctx)
    console.print("[bold cyan]HealthWatch - Setup[/bold cyan]\n")
    console.print("[green]✓[/green] Database initialized")
    console.print(f"[green]✓[/green] {len(c['rules'].get_all_rules())} alert rules loaded")

    console.print("\nTesting notification channels...")
    _print_channel_results(c["alert_service"].test_all_channels())

    console.print("\n[bold]Setup complete![/bold] Run [bold]python main.py run[/bold] to start monitoring.\n")


@cli.command()
@click.pass_context
def status(ctx):
    """Show latest metrics, active incidents and rule state."""
    c = _get_components(ctx)
    db = c["db"]
    snap = db.get_latest_snapshot()
    if snap is None:
        console.print("[dim]No metrics snapshot yet. Run: python main.py metrics aggregate[/dim]")
    else:
        table = Table(title="Latest Metrics", show_header=False)
        table.add_column("", style="dim")
        table.add_column("")
        table.add_row("Timestamp", snap.timestamp.strftime("%Y-%m-%d %H:%M UTC"))
        table.add_row("Generations / min", f"{snap.generations_per_minute:.2f}")
        table.add_row("Avg response time", f"{snap.average_response_time:.0f} ms")
        table.add_row("Success rate", f"{snap.success_rate:.1f}%")
        table.add_row("Error rate", f"{snap.error_rate:.1f}%")
        table.add_row("Active users", str(snap.active_users))
        table.add_row("Assistants online", str(snap.assistants_online))
        console.print(table)

    stats = db.get_incident_stats()
    total = sum(stats.values())
    if total:
        parts = ", ".join(f"{n} {sev}" for sev, n in sorted(stats.items()))
        console.print(f"\n[bold yellow]{total} active incident(s):[/bold yellow] {parts}")
    else:
        console.print("\n[green]No active incidents[/green]")

    rules = db.list_rules()
    enabled = sum(1 for r in rules if r.enabled)
    console.print(f"[dim]{enabled}/{len(rules)} alert rules enabled, {len(c['channels'])} channel(s)[/dim]")


# ──────────────────────────────────────────────────────
# METRICS
# ──────────────────────────────────────────────────────
@cli.group()
def metrics():
    """Record and aggregate generation metrics."""
    pass


@metrics.command("record")
@click.option("--value", required=True, type=float, help="Processing time in ms")
@click.option("--failed", is_flag=True, help="Mark the generation as failed")
@click.option("--type", "gen_type", default="unknown", help="Generation type")
@click.option("--assistant", default="unknown", help="Assistant used")
@click.option("--user", "user_id", default=None, help="User ID")
@click.option("--error-type", default=None, help="Error type when failed")
@click.pass_context
def metrics_record(ctx, value, failed, gen_type, assistant, user_id, error_type):
    """Record one generation."""
    from models.metrics import GenerationLog
    c = _get_components(ctx)
    log = GenerationLog(
        processing_time=value, success=not failed, generation_type=gen_type,
        assistant_used=assistant, user_id=user_id, error_type=error_type,
    )
    log_id = c["aggregator"].record_generation(log)
    console.print(f"[green]✓[/green] Recorded generation #{log_id} ({value:.0f}ms)")


@metrics.command("aggregate")
@click.pass_context
def metrics_aggregate(ctx):
    """Aggregate the last hour of generations into a snapshot."""
    c = _get_components(ctx)
    snap = c["aggregator"].update_snapshot()
    console.print(
        f"[green]✓[/green] Snapshot saved: {snap.generations_per_minute:.2f}/min, "
        f"{snap.average_response_time:.0f}ms, {snap.success_rate:.1f}% success"
    )


@metrics.command("latest")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def metrics_latest(ctx, as_json):
    """Show the latest snapshot."""
    c = _get_components(ctx)
    snap = c["db"].get_latest_snapshot()
    if snap is None:
        console.print("[dim]No metrics snapshot yet[/dim]")
        return
    if as_json:
        click.echo(json.dumps(snap.to_api_dict(), indent=2))
        return
    for key, val in snap.to_dict().items():
        console.print(f"  {key}: {val}")


# ──────────────────────────────────────────────────────
# ALERTS
# ──────────────────────────────────────────────────────
@cli.group()
def alerts():
    """Alert management."""
    pass


@alerts.command("check")
@click.pass_context
def alerts_check(ctx):
    """Evaluate all enabled alert rules against the latest snapshot."""
    c = _get_components(ctx)
    report = c["cycle"].run()
    if report.fired:
        console.print(f"[bold yellow]{len(report.fired)} alert(s) triggered:[/bold yellow]")
    elif report.suppressed:
        console.print(f"[dim]{len(report.suppressed)} rule(s) in cooldown[/dim]")
    console.print(c["cycle"].format_summary(report))
    for key, err in report.errors.items():
        console.print(f"[red]✗ {key}: {err}[/red]")


@alerts.command("test")
@click.pass_context
def alerts_test(ctx):
    """Test all rules (ignore cooldowns) against the latest snapshot."""
    c = _get_components(ctx)
    results = c["cycle"].dry_run()
    if not results:
        console.print("[dim]No metrics snapshot yet[/dim]")
        return

    table = Table(title="Alert Rules Test", show_header=True)
    table.add_column("Rule")
    table.add_column("Metric")
    table.add_column("Condition")
    table.add_column("Current")
    table.add_column("Would Fire")
    table.add_column("Cooldown")
    table.add_column("Enabled")

    for r in results:
        fire_str = "[green]YES[/green]" if r["would_fire"] else "[dim]no[/dim]"
        en_str = "✓" if r["enabled"] else "✗"
        val = f"{r['current_value']:.2f}" if r["current_value"] is not None else "N/A"
        table.add_row(r["name"], r["metric"], f"{r['operator']} {r['threshold']}",
                      val, fire_str, "active" if r["in_cooldown"] else "-", en_str)
    console.print(table)


@alerts.command("rules")
@click.pass_context
def alerts_rules(ctx):
    """List all alert rules."""
    c = _get_components(ctx)
    from alerts.evaluator import OPERATOR_SYMBOLS
    table = Table(title="Alert Rules", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Condition")
    table.add_column("Severity")
    table.add_column("Cooldown")
    table.add_column("Last Fired", style="dim")
    table.add_column("Enabled")
    for r in c["db"].list_rules():
        last = r.last_triggered_at.strftime("%Y-%m-%d %H:%M") if r.last_triggered_at else "-"
        table.add_row(
            r.id, r.name, f"{r.metric} {OPERATOR_SYMBOLS.get(r.operator, r.operator)} {r.threshold:g}",
            f"[{SEVERITY_STYLES.get(r.severity, '')}]{r.severity}[/]", f"{r.cooldown_seconds}s", last,
            "[green]✓[/green]" if r.enabled else "[red]✗[/red]",
        )
    console.print(table)


def _set_rule_enabled(ctx, rule_id, enabled):
    c = _get_components(ctx)
    if c["db"].set_rule_enabled(rule_id, enabled):
        console.print(f"[green]✓[/green] Rule {rule_id} {'enabled' if enabled else 'disabled'}")
    else:
        console.print(f"[red]Unknown rule: {rule_id}[/red]")
        ctx.exit(1)


@alerts.command("enable")
@click.argument("rule_id")
@click.pass_context
def alerts_enable(ctx, rule_id):
    """Enable an alert rule."""
    _set_rule_enabled(ctx, rule_id, True)


@alerts.command("disable")
@click.argument("rule_id")
@click.pass_context
def alerts_disable(ctx, rule_id):
    """Disable an alert rule."""
    _set_rule_enabled(ctx, rule_id, False)


@alerts.command("status-update")
@click.argument("system_status", type=click.Choice(["operational", "degraded", "major"]))
@click.option("--details", default=None, help="Free-text details")
@click.option("--affected", multiple=True, help="Affected service (repeatable)")
@click.pass_context
def alerts_status_update(ctx, system_status, details, affected):
    """Broadcast a system status update on every channel."""
    c = _get_components(ctx)
    results = c["alert_service"].send_status_update(system_status, details, list(affected))
    _print_channel_results(results)


# ──────────────────────────────────────────────────────
# INCIDENTS
# ──────────────────────────────────────────────────────
@cli.group()
def incidents():
    """Incident log."""
    pass


@incidents.command("list")
@click.option("--days", default=30, type=int, help="Days to look back")
@click.option("--limit", default=20, type=int, help="Max incidents")
@click.option("--status", "inc_status", default=None,
              type=click.Choice(["investigating", "identified", "monitoring", "resolved"]))
@click.option("--severity", default=None, type=click.Choice(["info", "warning", "error", "critical"]))
@click.pass_context
def incidents_list(ctx, days, limit, inc_status, severity):
    """Show recent incidents, active first."""
    from alerts.incidents import summarize
    c = _get_components(ctx)
    since = datetime.now(timezone.utc) - timedelta(days=days)
    rows = c["db"].list_incidents(since=since, limit=limit, status=inc_status, severity=severity)
    if not rows:
        console.print("[dim]No incidents[/dim]")
        return
    table = Table(title=f"Incidents (last {days}d)", show_header=True)
    table.add_column("#", style="dim")
    table.add_column("Started", style="dim")
    table.add_column("Severity")
    table.add_column("Status")
    table.add_column("Title")
    table.add_column("Alerted")
    for i in rows:
        table.add_row(
            str(i.id), i.start_time.strftime("%Y-%m-%d %H:%M"),
            f"[{SEVERITY_STYLES.get(i.severity, '')}]{i.severity}[/]", i.status, i.title[:60],
            "✓" if i.alert_sent else "-",
        )
    console.print(table)
    s = summarize(rows)
    console.print(f"[dim]{s['total']} shown: {s['active']} active, {s['resolved']} resolved, "
                  f"{s['critical']} critical[/dim]")


@incidents.command("create")
@click.option("--title", required=True, help="Incident title")
@click.option("--description", default="", help="Description")
@click.option("--severity", default="warning", type=click.Choice(["info", "warning", "error", "critical"]))
@click.option("--service", default="manual", help="Affected service")
@click.pass_context
def incidents_create(ctx, title, description, severity, service):
    """Open a manual incident."""
    from alerts.incidents import open_manual_incident
    c = _get_components(ctx)
    incident = open_manual_incident(c["db"], title, description, severity, service)
    console.print(f"[green]✓[/green] Incident #{incident.id} opened: {incident.title}")


@incidents.command("resolve")
@click.argument("incident_id", type=int)
@click.option("--resolution", default="Resolved manually", help="Resolution note")
@click.pass_context
def incidents_resolve(ctx, incident_id, resolution):
    """Resolve an incident."""
    from alerts.incidents import resolve_incident
    c = _get_components(ctx)
    if resolve_incident(c["db"], incident_id, resolution):
        console.print(f"[green]✓[/green] Incident #{incident_id} resolved")
    else:
        console.print(f"[red]Unknown incident: {incident_id}[/red]")
        ctx.exit(1)


@incidents.command("cleanup")
@click.pass_context
def incidents_cleanup(ctx):
    """Auto-resolve stale incidents and delete old resolved ones."""
    c = _get_components(ctx)
    result = c["janitor"].cleanup()
    console.print(f"[green]✓[/green] Closed {result['closed']}, deleted {result['deleted']}")


# ──────────────────────────────────────────────────────
# CHANNELS
# ──────────────────────────────────────────────────────
@cli.group()
def channels():
    """Notification channels."""
    pass


@channels.command("test")
@click.pass_context
def channels_test(ctx):
    """Send a test message on every configured channel."""
    c = _get_components(ctx)
    _print_channel_results(c["alert_service"].test_all_channels())


@cli.group()
def telegram():
    """Telegram bot notifications."""
    pass


@telegram.command("test")
@click.pass_context
def telegram_test(ctx):
    """Send a test message to verify Telegram setup."""
    c = _get_components(ctx)
    bot = c.get("telegram_bot")
    if not bot:
        console.print("[red]Telegram not configured. Set HEALTHWATCH_TELEGRAM_TOKEN and "
                      "HEALTHWATCH_TELEGRAM_CHAT_ID.[/red]")
        return
    try:
        bot.send_message("✅ HealthWatch test - Telegram is working!")
        console.print("[green]Test message sent![/green]")
    except Exception as e:
        console.print(f"[red]Failed: {e}[/red]")


@telegram.command("commands")
@click.pass_context
def telegram_commands(ctx):
    """Register the bot's command menu with Telegram."""
    c = _get_components(ctx)
    bot = c.get("telegram_bot")
    if not bot:
        console.print("[red]Telegram not configured.[/red]")
        return
    try:
        bot.set_my_commands()
        console.print("[green]✓[/green] Bot commands registered")
    except Exception as e:
        console.print(f"[red]Failed: {e}[/red]")


@cli.group()
def email():
    """Email notifications."""
    pass


@email.command("test")
@click.pass_context
def email_test(ctx):
    """Test SMTP connectivity."""
    c = _get_components(ctx)
    from notifications.email_sender import EmailSender
    sender = EmailSender(c["config"])

    if not sender.is_configured():
        console.print("[red]Email not configured.[/red] Set HEALTHWATCH_SMTP_USER / HEALTHWATCH_SMTP_PASS.")
        return

    result = sender.test_connection()
    if result["status"] == "ok":
        console.print(f"[green]SMTP connection successful ({sender.smtp_host})[/green]")
    else:
        console.print(f"[red]Failed:[/red] {result['message']}")


# ──────────────────────────────────────────────────────
# HEALTH
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--notify", is_flag=True, help="Send a service-down alert for each failing service")
@click.pass_context
def health(ctx, notify):
    """Probe the database and configured services."""
    c = _get_components(ctx)
    report = c["health"].report()
    colors = {"operational": "green", "degraded": "yellow", "partial": "yellow", "major": "red"}

    table = Table(title="Service Health", show_header=True)
    table.add_column("Service")
    table.add_column("Status")
    table.add_column("Response", justify="right")
    table.add_column("Detail", style="dim")
    for name, r in report["services"].items():
        color = colors.get(r["status"], "white")
        detail = r.get("error") or (f"HTTP {r['httpStatus']}" if "httpStatus" in r else "")
        table.add_row(name, f"[{color}]{r['status']}[/{color}]", f"{r['responseTime']}ms", detail)
    console.print(table)
    overall = report["status"]
    console.print(f"\n[bold]Overall:[/bold] [{colors.get(overall, 'white')}]{overall}[/]")

    if notify:
        for name, r in report["services"].items():
            if r["status"] == "major":
                c["alert_service"].service_down_alert(name, r.get("error"))


# ──────────────────────────────────────────────────────
# RUN / WEB
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--interval", default=None, type=int, help="Override evaluation interval (seconds)")
@click.pass_context
def run(ctx, interval):
    """Run the monitoring loop: aggregate, evaluate alerts, clean up incidents."""
    from monitor.scheduler import MonitorScheduler
    c = _get_components(ctx)
    mon = c["config"]["monitor"]
    scheduler = MonitorScheduler(
        c["aggregator"], c["cycle"], c["janitor"],
        interval_seconds=interval or mon["interval_seconds"],
        cleanup_interval_seconds=mon.get("cleanup_interval_seconds", 3600),
    )
    scheduler.start()
    console.print(f"[bold cyan]HealthWatch running[/bold cyan] (every {scheduler.interval}s). Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        scheduler.stop()
        console.print("\n[dim]Stopped.[/dim]")


@cli.command()
@click.option("--port", default=None, type=int, help="Port to bind to")
@click.option("--host", default=None, type=str, help="Host to bind to")
@click.option("--with-scheduler", is_flag=True, help="Also run the monitoring loop")
@click.pass_context
def web(ctx, port, host, with_scheduler):
    """Launch the JSON API server."""
    from web.app import create_app

    c = _get_components(ctx)
    web_cfg = c["config"].get("web", {})
    port = port or web_cfg.get("port", 8080)
    host = host or web_cfg.get("host", "127.0.0.1")

    app = create_app(c["config"], c)

    if with_scheduler:
        from monitor.scheduler import MonitorScheduler
        mon = c["config"]["monitor"]
        MonitorScheduler(
            c["aggregator"], c["cycle"], c["janitor"],
            interval_seconds=mon["interval_seconds"],
            cleanup_interval_seconds=mon.get("cleanup_interval_seconds", 3600),
        ).start()

    console.print(f"\n[bold cyan]HealthWatch API[/bold cyan] on http://{host}:{port}/api/health")
    console.print("\n  Press Ctrl+C to stop.\n")
    app.run(host=host, port=port, debug=False)


if __name__ == "__main__":
    cli()
