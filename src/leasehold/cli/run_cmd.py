"""CLI command for joining an election.

Usage:
    leasehold run --group scheduler
    leasehold run --group scheduler --identity pod-a --log-level debug
"""

from __future__ import annotations

import asyncio

import typer

from leasehold.config import Settings
from leasehold.election.events import CallbackEventHandler, ClusterEvent, ClusterEventType

app = typer.Typer(help="Join a leader election and report changes")


@app.callback(invoke_without_command=True)
def run(
    group: str | None = typer.Option(
        None,
        "--group",
        "-g",
        help="Election group (defaults to LEASEHOLD_GROUP)",
    ),
    identity: str | None = typer.Option(
        None,
        "--identity",
        "-i",
        help="Identity of this member (defaults to LEASEHOLD_IDENTITY or hostname)",
    ),
    redis_url: str | None = typer.Option(
        None,
        "--redis-url",
        help="Redis connection URL (defaults to REDIS_URL)",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, error (defaults to LEASEHOLD_LOG_LEVEL)",
    ),
    json_logs: bool | None = typer.Option(
        None,
        "--json-logs/--console-logs",
        help="Emit JSON log lines (defaults to LOG_JSON)",
    ),
    metrics_port: int | None = typer.Option(
        None,
        "--metrics-port",
        help="Serve Prometheus metrics on this port",
    ),
) -> None:
    """Participate in the election until interrupted.

    Leadership and membership changes are printed as they happen.
    """
    from leasehold.observability.logging import configure_logging

    overrides: dict[str, str] = {}
    if group:
        overrides["group_name"] = group
    if identity:
        overrides["identity"] = identity
    if redis_url:
        overrides["redis_url"] = redis_url
    settings = Settings(**overrides)  # type: ignore[arg-type]

    configure_logging(
        json_format=settings.log_json if json_logs is None else json_logs,
        level=log_level or settings.log_level,
    )

    if metrics_port is not None and settings.enable_metrics:
        from prometheus_client import start_http_server

        start_http_server(metrics_port)
        typer.echo(f"Serving metrics on :{metrics_port}/metrics")

    typer.echo(f"Joining election '{settings.group_name}' as {settings.identity}")
    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        typer.echo("Interrupted")


async def _run(settings: Settings) -> None:
    from leasehold.backends.redis import close_redis
    from leasehold.election.election import LeaderElection

    async def report(event: ClusterEvent) -> None:
        if event.event_type is ClusterEventType.LEADERSHIP_CHANGED:
            typer.echo(f"Leader: {event.leader or '<none>'}")
        else:
            typer.echo(f"Members: {', '.join(sorted(event.members)) or '<none>'}")

    election = await LeaderElection.from_settings(settings, handler=CallbackEventHandler(report))
    try:
        async with election:
            await asyncio.Event().wait()
    finally:
        await close_redis()
