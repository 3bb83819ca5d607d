"""
Pairing service CLI: pairing-service serve | approve | doctor
"""
import asyncio
import json

import click

from pairing_service.core.exceptions import ConfigurationError, ExhaustedError, ValidationError

EXIT_MANUAL = 2


def _load(config_path: str | None):
    from pairing_service.config.settings import load_settings
    from pairing_service.core.structured_logger import configure_logging

    try:
        settings = load_settings(config_path)
    except ConfigurationError as e:
        click.echo(f"FATAL: {e.message}", err=True)
        raise SystemExit(1) from e
    configure_logging(settings.logging)
    return settings


@click.group()
@click.version_option(package_name="pairing-service")
def cli() -> None:
    """OpenClaw pairing service: approve pairing codes on Railway workers."""
    pass


@cli.command()
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="YAML config file (defaults to environment variables)")
@click.option("--host", default=None, help="Override bind host")
@click.option("--port", type=int, default=None, help="Override bind port")
def serve(config_path: str | None, host: str | None, port: int | None) -> None:
    """Run the HTTP service."""
    from pairing_service.interfaces.web.server import WebInterface

    settings = _load(config_path)
    if host or port:
        web = settings.web.model_copy(update={k: v for k, v in (("host", host), ("port", port)) if v})
        settings = settings.model_copy(update={"web": web})
    asyncio.run(WebInterface(settings).start())


@cli.command()
@click.argument("service_id")
@click.argument("channel")
@click.argument("code")
@click.option("--gateway-token", default=None, help="Auth token for the worker gateway")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="YAML config file (defaults to environment variables)")
def approve(service_id: str, channel: str, code: str, gateway_token: str | None, config_path: str | None) -> None:
    """Approve CODE for CHANNEL on SERVICE_ID once and print the outcome."""
    from pairing_service.approval.factories import create_orchestrator
    from pairing_service.approval.orchestrator import raise_for_manual
    from pairing_service.core.structured_logger import TraceContext
    from pairing_service.core.types import ApprovalRequest
    from pairing_service.interfaces.web.server import manual_body, success_body

    try:
        request = ApprovalRequest.create(service_id, channel, code, gateway_token)
    except ValidationError as e:
        click.echo(f"Error: {e.message}", err=True)
        raise SystemExit(1) from e

    settings = _load(config_path)
    orchestrator = create_orchestrator(settings)
    with TraceContext():
        outcome = asyncio.run(orchestrator.run(request))

    try:
        success = raise_for_manual(outcome)
    except ExhaustedError as e:
        click.echo(json.dumps(manual_body(outcome), indent=2))
        raise SystemExit(EXIT_MANUAL) from e
    click.echo(json.dumps(success_body(success), indent=2))


@cli.command()
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="YAML config file (defaults to environment variables)")
def doctor(config_path: str | None) -> None:
    """Check configuration without starting the service."""
    from pairing_service.config.settings import Settings

    try:
        settings = Settings.from_yaml(config_path) if config_path else Settings.from_env()
    except ValueError as e:
        click.echo(f"Invalid configuration:\n{e}", err=True)
        raise SystemExit(1) from e

    errors, warnings = settings.validate_required_config()
    for warning in warnings:
        click.echo(f"WARNING: {warning}")
    for error in errors:
        click.echo(f"ERROR: {error}", err=True)
    if errors:
        raise SystemExit(1)

    click.echo(f"Directory endpoint: {settings.directory.endpoint}")
    click.echo(f"Gateway: port {settings.gateway.port}, watchdog {settings.gateway.watchdog_seconds:g}s")
    click.echo(f"Fallback: port {settings.fallback.port}{settings.fallback.path}")
    click.echo(
        f"Retry policy: {settings.orchestrator.gateway_attempts} gateway attempt(s), "
        f"{settings.orchestrator.backoff_seconds:g}s backoff"
    )
    click.echo("Configuration OK")


if __name__ == "__main__":
    cli()
