"""Command-line interface for JobTracker."""

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import click
import uvicorn

from jobtracker.api.app import create_app
from jobtracker.core.config import settings
from jobtracker.utils import service_factory
from jobtracker.utils.service_factory import Services

logger = logging.getLogger(__name__)


def _run(action: Callable[[Services], Awaitable[int | None]]) -> None:
    """Build services, run one action, always shut down; non-zero result exits."""

    async def execute() -> int | None:
        services = await service_factory.create_services(settings)
        try:
            return await action(services)
        finally:
            await services.shutdown()

    try:
        code = asyncio.run(execute())
    except Exception as e:
        logger.error(f"Error: {e}")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if code:
        sys.exit(code)


@click.group()
def cli() -> None:
    """JobTracker - job application tracker with a resilient cache layer."""
    logging.basicConfig(level=logging.WARNING, format="%(message)s")


@cli.command()
@click.option(
    "--host",
    default=settings.api_host,
    help="Host to bind to",
    show_default=True,
)
@click.option(
    "--port",
    default=settings.api_port,
    type=int,
    help="Port to bind to",
    show_default=True,
)
@click.option(
    "--log-level",
    default=settings.log_level.lower(),
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level",
    show_default=True,
)
def serve(host: str, port: int, log_level: str) -> None:
    """Start the JobTracker API server."""
    logging.getLogger().setLevel(getattr(logging, log_level.upper()))
    logger.info(f"Starting JobTracker API server on {host}:{port}")

    app = create_app(settings)
    uvicorn.run(app, host=host, port=port, log_level=log_level)


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
def health(output_json: bool) -> None:
    """Check Redis availability and circuit breaker state."""

    async def check(services: Services) -> int | None:
        report = services.cache.health()
        if output_json:
            click.echo(json.dumps(report.model_dump(mode="json"), indent=2))
            return
        click.echo(f"Cache enabled:   {report.enabled}")
        click.echo(f"Redis available: {report.available}")
        for name, stats in (("chat", report.chat_breaker), ("jobs", report.jobs_breaker)):
            if stats is None:
                continue
            state = "open" if stats.is_open else "closed"
            click.echo(
                f"Breaker {name}: {state} "
                f"(failures {stats.failure_count}/{stats.threshold}, "
                f"successes {stats.success_count})"
            )

    _run(check)


@cli.command("cache-stats")
@click.option("--group-id", help="Chat group to inspect")
@click.option("--user-id", help="User whose cached job pages to count")
def cache_stats(group_id: str | None, user_id: str | None) -> None:
    """Show chat window and job query cache statistics as JSON."""

    async def collect(services: Services) -> int | None:
        output: dict[str, Any] = {
            "jobs": (await services.cache.jobs.get_cache_stats(user_id)).model_dump(mode="json")
        }
        if group_id:
            chat = await services.cache.chat.get_cache_stats(group_id)
            output["chat"] = chat.model_dump(mode="json")
        click.echo(json.dumps(output, indent=2))

    _run(collect)


@cli.command("invalidate-user")
@click.argument("user_id")
def invalidate_user(user_id: str) -> None:
    """Drop every cached job page of USER_ID."""

    async def invalidate(services: Services) -> int | None:
        if not services.cache.connection.available:
            click.echo("Redis unavailable, nothing invalidated", err=True)
            return 1
        deleted = await services.cache.jobs.invalidate_user_cache(user_id)
        click.echo(f"Deleted {deleted} cached job pages for user {user_id}")

    _run(invalidate)


@cli.command("invalidate-group")
@click.argument("group_id")
def invalidate_group(group_id: str) -> None:
    """Drop the hot window, records and count of GROUP_ID."""

    async def invalidate(services: Services) -> int | None:
        if not services.cache.connection.available:
            click.echo("Redis unavailable, nothing invalidated", err=True)
            return 1
        deleted = await services.cache.chat.invalidate_group(group_id)
        click.echo(f"Deleted {deleted} cache keys for group {group_id}")

    _run(invalidate)


@cli.command()
def version() -> None:
    """Show version information."""
    click.echo("JobTracker v0.1.0")


if __name__ == "__main__":
    cli()
