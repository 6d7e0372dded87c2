"""CLI command for inspecting a group's lease.

Usage:
    leasehold status --group scheduler
    leasehold status --group scheduler --namespace prod
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

import orjson
import typer

from leasehold.election.leader_info import LeaderInfo
from leasehold.election.lease import LeaseGateway
from leasehold.election.membership import MembershipProvider

app = typer.Typer(help="Show the current lease of a group")


def describe(info: LeaderInfo, version: int | None, now: datetime | None = None) -> dict[str, Any]:
    """Summary of a decoded lease for display."""
    now = now or datetime.now(UTC)
    expires_at = info.expires_at
    return {
        "group": info.group,
        "leader": info.leader,
        "valid": info.has_valid_leader(now),
        "acquire_time": info.acquire_time.isoformat() if info.acquire_time else None,
        "renew_time": info.renew_time.isoformat() if info.renew_time else None,
        "expires_at": expires_at.isoformat() if expires_at else None,
        "lease_duration_seconds": info.lease_duration_seconds,
        "members": sorted(info.members),
        "version": version,
    }


async def collect_status(
    gateway: LeaseGateway,
    membership: MembershipProvider,
    namespace: str,
    name: str,
    group: str,
    selector: str,
) -> dict[str, Any]:
    record = await gateway.fetch(namespace, name, group)
    members = await membership.list_healthy_members(namespace, selector)
    info = gateway.decode(record, members, group)
    return describe(info, record.version if record else None)


@app.callback(invoke_without_command=True)
def status(
    group: str | None = typer.Option(None, "--group", "-g", help="Election group"),
    namespace: str | None = typer.Option(None, "--namespace", "-n", help="Namespace"),
    redis_url: str | None = typer.Option(None, "--redis-url", help="Redis connection URL"),
) -> None:
    """Print the decoded lease and the healthy members as JSON."""
    from leasehold.config import Settings

    settings = Settings()
    result = asyncio.run(
        _status(
            redis_url or settings.redis_url,
            namespace or settings.namespace or "default",
            settings.resource_name,
            group or settings.group_name,
            settings.member_selector,
        )
    )
    typer.echo(orjson.dumps(result, option=orjson.OPT_INDENT_2).decode())


async def _status(
    redis_url: str, namespace: str, name: str, group: str, selector: str
) -> dict[str, Any]:
    from leasehold.backends.redis import close_redis, get_redis, health_check
    from leasehold.election.membership import RedisMembershipProvider
    from leasehold.election.redis_lease import RedisLeaseGateway

    client = await get_redis(redis_url)
    try:
        if not await health_check(client):
            typer.echo(f"Redis at {redis_url} is unreachable", err=True)
            raise typer.Exit(code=1)
        return await collect_status(
            RedisLeaseGateway(client),
            RedisMembershipProvider(client),
            namespace,
            name,
            group,
            selector,
        )
    finally:
        await close_redis()
