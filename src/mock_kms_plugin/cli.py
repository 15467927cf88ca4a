"""Command-line entry point for the mock KMS plugin."""

from __future__ import annotations

import sys
import threading

import click
import grpc
from loguru import logger
from pydantic import ValidationError

from mock_kms_plugin.client import KMSPluginClient
from mock_kms_plugin.config import Settings
from mock_kms_plugin.exceptions import KMSPluginError
from mock_kms_plugin.logging_config import setup_logging
from mock_kms_plugin.runner import install_shutdown_signals, serve_until
from mock_kms_plugin.service import PluginService


def _load_settings(**overrides) -> Settings:
    """Build Settings from the environment, with explicitly passed CLI flags on top."""
    return Settings(**{key: value for key, value in overrides.items() if value is not None})


@click.group()
def cli():
    """Mock KMS plugin: identity encrypt/decrypt with simulated latency."""
    pass


@cli.command()
@click.option("--listen-addr", default=None, help="gRPC listen address [default: unix:///tmp/kms.socket]")
@click.option("--timeout", default=None, help="gRPC connection timeout, e.g. 5s [default: 5s]")
@click.option("--decryption-latency-min", default=None, help="Decryption latency min, e.g. 100ms")
@click.option("--decryption-latency-max", default=None, help="Decryption latency max, e.g. 200ms")
@click.option("--encryption-latency-min", default=None, help="Encryption latency min, e.g. 100ms")
@click.option("--encryption-latency-max", default=None, help="Encryption latency max, e.g. 200ms")
@click.option("--log-level", default=None, help="Minimum log level [default: INFO]")
@click.option("--log-json/--no-log-json", default=None, help="Emit JSON log lines")
def serve(**options):
    """Serve the KMS plugin API until SIGTERM / SIGINT."""
    try:
        settings = _load_settings(**options)
    except ValidationError as e:
        setup_logging()
        logger.error("Invalid configuration\n{}", e)
        sys.exit(1)

    setup_logging(level=settings.log_level, json=settings.log_json, address=settings.listen_addr)

    try:
        config = settings.to_service_config()
    except KMSPluginError as e:
        logger.error("Failed to parse endpoint or latency configuration: {}", e)
        sys.exit(1)

    service = PluginService(config)
    stop_event = threading.Event()
    install_shutdown_signals(stop_event)

    try:
        serve_until(service, stop_event)
    except KMSPluginError as e:
        logger.error("Failed to serve: {}", e)
        sys.exit(1)


@cli.command()
@click.option("--listen-addr", default=None, help="Plugin address [default: unix:///tmp/kms.socket]")
@click.option("--timeout", default=None, help="Per-call timeout, e.g. 5s [default: 5s]")
def check(listen_addr: str | None, timeout: str | None):
    """Check that a KMS plugin answers Version and echoes the ping sentinel."""
    try:
        settings = _load_settings(listen_addr=listen_addr, timeout=timeout)
        client = KMSPluginClient(settings.listen_addr, timeout=settings.timeout)
    except (ValidationError, KMSPluginError) as e:
        click.echo(f"✗ Invalid configuration: {e}", err=True)
        sys.exit(1)

    with client:
        try:
            client.wait_ready()
            info = client.version()
        except (grpc.FutureTimeoutError, grpc.RpcError) as e:
            click.echo(f"✗ KMS plugin unreachable at {settings.listen_addr}: {e}", err=True)
            sys.exit(1)

        click.echo(f"Version: {info.version}")
        click.echo(f"Runtime: {info.runtime_name} {info.runtime_version}")

        if not client.healthz():
            click.echo("✗ Health check failed", err=True)
            sys.exit(1)
    click.echo("✓ Healthy")


if __name__ == "__main__":
    cli()
