"""
agentgate CLI
Command-line tools for running and checking the gateway.
"""

import asyncio
import json
import logging
import sys
import uuid

import click
from rich.console import Console
from rich.table import Table

from agentgate.availability import AvailabilityMonitor
from agentgate.config import get_settings
from agentgate.ratelimit import FixedWindowRateLimiter
from agentgate.store import RedisCounterStore, create_counter_store, initialize_counter_store


console = Console()


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
@click.pass_context
def cli(ctx, log_level: str | None):
    """agentgate - rate-limited gateway to a hosted language model."""
    settings = get_settings()
    level = (log_level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@cli.command()
@click.option("--host", default=None, help="Bind address (default: API_HOST)")
@click.option("--port", default=None, type=int, help="Port (default: API_PORT)")
@click.pass_context
def serve(ctx, host: str | None, port: int | None):
    """Run the API server."""
    import uvicorn

    from agentgate.api.app import create_app

    settings = ctx.obj["settings"]
    uvicorn.run(
        create_app(settings=settings),
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_level=settings.log_level.lower(),
    )


async def _run_limiter_demo(settings, identity: str, count: int):
    store = await initialize_counter_store(settings=settings)
    limiter = FixedWindowRateLimiter(
        store=store,
        limit=settings.rate_limit,
        window_seconds=settings.rate_limit_window_seconds,
    )
    try:
        decisions = [await limiter.check_rate_limit(identity) for _ in range(count)]
    finally:
        await store.close()
    return store.name, decisions


@cli.command("limiter-demo")
@click.option("--identity", "-i", default=None, help="Identity to count (default: random)")
@click.option("--count", "-n", default=12, help="Number of requests to simulate")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def limiter_demo(ctx, identity: str | None, count: int, as_json: bool):
    """Fire requests at the rate limiter and show each decision."""
    settings = ctx.obj["settings"]
    identity = identity or f"test-user-{uuid.uuid4().hex[:8]}"

    backend, decisions = asyncio.run(_run_limiter_demo(settings, identity, count))

    if as_json:
        click.echo(json.dumps([d.to_dict() for d in decisions], indent=2))
        return

    table = Table(title=f"Rate limiter ({backend} store) for {identity}")
    table.add_column("#", style="dim", width=4)
    table.add_column("Allowed")
    table.add_column("Remaining", justify="right")
    table.add_column("Reset", justify="right")

    for i, decision in enumerate(decisions):
        allowed = "[green]yes[/green]" if decision.allowed else "[red]no[/red]"
        table.add_row(
            str(i + 1),
            allowed,
            str(decision.remaining),
            decision.reset_at.strftime("%H:%M:%S"),
        )

    console.print(table)


@cli.command("check-backend")
@click.option("--url", default=None, help="Health URL (default: BACKEND_HEALTH_URL)")
@click.pass_context
def check_backend(ctx, url: str | None):
    """Probe the backend health endpoint once."""
    settings = ctx.obj["settings"]
    monitor = AvailabilityMonitor(
        url=url or settings.backend_health_url,
        base_interval=settings.health_check_interval_seconds,
        max_interval=settings.health_check_max_interval_seconds,
        probe_timeout=settings.health_probe_timeout_seconds,
    )

    async def probe():
        try:
            return await monitor.check_now()
        finally:
            await monitor.stop()

    state = asyncio.run(probe())
    if state.is_available:
        console.print(f"✅ [green]Backend available[/green] at {monitor.url}")
    else:
        console.print(f"❌ [red]Backend unavailable[/red] at {monitor.url}: {state.last_error}")
        sys.exit(1)


@cli.command("store-ping")
@click.option("--url", default=None, help="Redis URL (default: REDIS_URL)")
@click.pass_context
def store_ping(ctx, url: str | None):
    """Check that the shared Redis counter store is reachable."""
    settings = ctx.obj["settings"]
    store = create_counter_store(backend="redis", url=url, settings=settings)

    if not isinstance(store, RedisCounterStore):
        console.print("❌ [red]Invalid Redis URL[/red]")
        sys.exit(1)

    async def ping():
        try:
            return await store.connect()
        finally:
            await store.close()

    if asyncio.run(ping()):
        console.print("✅ [green]Redis reachable[/green]")
    else:
        console.print("❌ [red]Redis unreachable[/red], the API would fall back to in-memory limits")
        sys.exit(1)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
