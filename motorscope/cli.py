"""
Command-line interface for the MotorScope orchestrator.

Usage:
    motorscope run          # Run the orchestrator (timers, auth checks)
    motorscope serve        # Run the orchestrator behind the local HTTP API
    motorscope refresh      # Run one refresh pass now
    motorscope status       # Show session and refresh status
    motorscope login        # Interactive sign-in
    motorscope logout       # Sign out (keeps identity-provider consent)
    motorscope disconnect   # Sign out and revoke consent
    motorscope reschedule   # Change the refresh interval
    motorscope health       # Check store and remote API
"""

import asyncio
import json
import signal
import sys

import click

from motorscope.config.settings import get_settings
from motorscope.observability.logging import setup_logging
from motorscope.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """MotorScope - background refresh of tracked car listings."""
    setup_logging("DEBUG" if debug else None)

    settings = get_settings()
    if settings.tracing_enabled:
        from motorscope.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )


@main.command()
@click.option("--install", is_flag=True, help="Run the first-install routine")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
def run(install: bool, metrics: bool) -> None:
    """Run the orchestrator until interrupted."""
    from motorscope.orchestrator.service import OrchestratorService

    async def run_service():
        service = OrchestratorService()
        stop_event = asyncio.Event()

        if metrics:
            get_metrics().start_server()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)

        await service.start(installed=install)
        try:
            await stop_event.wait()
        finally:
            await service.stop()

    asyncio.run(run_service())


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, metrics_port: int | None) -> None:
    """Run the orchestrator with the local HTTP API."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")

    uvicorn.run(
        "motorscope.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        log_level="info",
    )


@main.command()
def refresh() -> None:
    """Run one refresh pass now and print the outcome."""
    from motorscope.orchestrator.service import OrchestratorService

    async def run_pass():
        service = OrchestratorService()
        await service.connect()
        try:
            await service.sessions.initialize()
            result = await service.pipeline.run_batch()
        finally:
            await service.stop()

        click.echo(f"Outcome: {result.outcome.value}")
        click.echo(f"Refreshed: {result.refreshed}")
        click.echo(f"Errors: {result.errors}")
        if result.next_run_at:
            click.echo(f"Next run: {result.next_run_at.isoformat()}")

    asyncio.run(run_pass())


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def status(as_json: bool) -> None:
    """Show session and refresh status."""
    from motorscope.auth.jwt import get_jwt_time_remaining
    from motorscope.orchestrator.service import OrchestratorService

    async def show():
        service = OrchestratorService()
        await service.connect()
        try:
            session = await service.sessions.initialize()
            refresh_status = await service.status_store.get()
            schedule = await service.schedule_store.get()
        finally:
            await service.stop()

        if as_json:
            click.echo(json.dumps({
                "session": session.to_dict(),
                "refresh": refresh_status.to_wire(),
                "schedule": schedule.model_dump(by_alias=True, mode="json") if schedule else None,
            }, indent=2))
            return

        click.echo("\nSession:")
        click.echo("-" * 40)
        click.echo(f"  Status: {session.status.value}")
        if session.identity:
            click.echo(f"  User: {session.identity.email}")
        if session.session_token:
            remaining = get_jwt_time_remaining(session.session_token)
            click.echo(f"  Token expires in: {remaining // 60} min")

        click.echo("\nRefresh:")
        click.echo("-" * 40)
        click.echo(f"  Running: {refresh_status.is_running}")
        click.echo(f"  Last run: {refresh_status.last_run_at or '-'}")
        click.echo(f"  Last run count: {refresh_status.last_run_count}")
        click.echo(f"  Next run: {refresh_status.next_run_at or '-'}")
        if schedule:
            click.echo(f"  Interval: {schedule.interval_minutes:g} min")
        if refresh_status.recent_errors:
            click.echo(f"\nRecent errors ({len(refresh_status.recent_errors)}):")
            for error in refresh_status.recent_errors[:10]:
                click.echo(click.style(f"  ✗ {error.title}: {error.error}", fg="red"))

    asyncio.run(show())


@main.command()
def login() -> None:
    """Sign in interactively through the identity provider."""
    from motorscope.auth.errors import AuthError
    from motorscope.orchestrator.service import OrchestratorService

    def show_code(code) -> None:
        click.echo(f"To sign in, visit {code.verification_url} and enter code:")
        click.echo(click.style(f"  {code.user_code}", bold=True))

    async def sign_in():
        service = OrchestratorService(on_user_code=show_code)
        await service.connect()
        try:
            session = await service.sessions.interactive_login()
        except AuthError as e:
            click.echo(click.style(f"Login failed: {e}", fg="red"))
            sys.exit(1)
        finally:
            await service.stop()

        name = session.identity.display_name or session.identity.email
        click.echo(click.style(f"Logged in as {name}", fg="green"))

    asyncio.run(sign_in())


@main.command()
def logout() -> None:
    """Sign out; identity-provider consent is kept for silent sign-in."""
    from motorscope.orchestrator.service import OrchestratorService

    async def sign_out():
        service = OrchestratorService()
        await service.connect()
        try:
            await service.sessions.logout()
        finally:
            await service.stop()
        click.echo("Logged out")

    asyncio.run(sign_out())


@main.command()
def disconnect() -> None:
    """Sign out and revoke identity-provider consent."""
    from motorscope.orchestrator.service import OrchestratorService

    async def revoke():
        service = OrchestratorService()
        await service.connect()
        try:
            await service.sessions.disconnect()
        finally:
            await service.stop()
        click.echo("Disconnected")

    asyncio.run(revoke())


@main.command()
@click.argument("minutes", type=float)
def reschedule(minutes: float) -> None:
    """Set the refresh interval; the next run is MINUTES from now."""
    from motorscope.orchestrator.service import OrchestratorService
    from motorscope.refresh.schedule import compute_next_run
    from motorscope.refresh.schemas import utc_now

    async def update():
        service = OrchestratorService()
        await service.connect()
        try:
            await service.sessions.initialize()
            interval = service.pipeline.clamp_interval(minutes)
            next_run_at = compute_next_run(utc_now(), interval)
            await service.pipeline.persist_schedule(interval, next_run_at)
        finally:
            await service.stop()

        click.echo(f"Interval: {interval:g} min")
        click.echo(f"Next run: {next_run_at.isoformat()}")

    asyncio.run(update())


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        from motorscope.backend.client import BackendClient
        from motorscope.storage import RedisKeyValueStore

        results: dict[str, bool] = {}

        try:
            store = RedisKeyValueStore()
            await store.connect()
            results["redis"] = await store.health_check()
            await store.close()
        except Exception as e:
            results["redis"] = False
            logger.error("Redis health check failed", error=str(e))

        try:
            async with BackendClient() as backend:
                results["backend"] = await backend.health_check()
        except Exception as e:
            results["backend"] = False
            logger.error("Backend health check failed", error=str(e))

        settings = get_settings()
        results["extraction_configured"] = settings.extraction_configured

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, ok in results.items():
            icon = "✓" if ok else "✗"
            color = "green" if ok else "red"
            click.echo(click.style(f"  {icon} {name}: {ok}", fg=color))
            if name in ("redis", "backend") and not ok:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
