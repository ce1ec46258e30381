"""CLI for clarity-bridge.

Usage:
    clarity-bridge relay                     # HTTP relay on 127.0.0.1:3001
    clarity-bridge relay --port 9000         # Custom port
    clarity-bridge worker                    # MCP stdio server (what the relay spawns)
    clarity-bridge health                    # Query a running relay
    clarity-bridge config                    # Show effective configuration
"""

from __future__ import annotations

import json as json_mod
import os
import sys
from pathlib import Path

import click

from clarity_bridge import __version__
from clarity_bridge.config import CONFIG_ENV_VAR, BridgeConfig, load_config


def _config(ctx: click.Context) -> BridgeConfig:
    return ctx.obj["config"]


@click.group()
@click.version_option(version=__version__, prog_name="clarity-bridge")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="JSON config file (defaults to $CLARITY_BRIDGE_CONFIG)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """Clarity PPM bridge: MCP worker and HTTP relay."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(config_path)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.option("--host", default=None, help="Bind address (default from config)")
@click.option("--port", default=None, type=click.IntRange(1, 65535), help="Listen port (default 3001)")
@click.option("--timeout", default=None, type=click.FloatRange(min=0, min_open=True), help="Per-request timeout in seconds")
@click.option("--max-pending", default=None, type=click.IntRange(min=1), help="Reject requests beyond this many in flight")
@click.option(
    "--worker-command",
    default=None,
    help="Command line for the worker process (default: this package's MCP server)",
)
@click.pass_context
def relay(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    timeout: float | None,
    max_pending: int | None,
    worker_command: str | None,
) -> None:
    """Run the HTTP relay in front of a persistent MCP worker."""
    import shlex

    from clarity_bridge.http_relay import main as relay_main
    from clarity_bridge.logging import setup_logging

    config = _config(ctx)
    if host is not None:
        config.relay.host = host
    if port is not None:
        config.relay.port = port
    if timeout is not None:
        config.relay.request_timeout = timeout
    if max_pending is not None:
        config.relay.max_pending = max_pending
    if worker_command:
        config.relay.worker_command = shlex.split(worker_command)
    if ctx.obj["config_path"] is not None:
        # The spawned worker inherits the environment, and with it the file.
        os.environ[CONFIG_ENV_VAR] = str(ctx.obj["config_path"].resolve())

    setup_logging(config.log_dir, stream=sys.stderr)
    relay_main(config)


@cli.command()
@click.pass_context
def worker(ctx: click.Context) -> None:
    """Run the MCP server on stdio."""
    import asyncio

    from clarity_bridge.mcp_server import _run

    asyncio.run(_run(_config(ctx)))


@cli.command()
@click.option("--url", default=None, help="Relay base URL (default from config)")
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON")
@click.pass_context
def health(ctx: click.Context, url: str | None, as_json: bool) -> None:
    """Show the health of a running relay."""
    import httpx

    config = _config(ctx)
    base = url or f"http://{config.relay.host}:{config.relay.port}"
    try:
        resp = httpx.get(f"{base.rstrip('/')}/health", timeout=5.0)
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        click.echo(f"Relay health check failed: {e}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json_mod.dumps(data, indent=2))
        return
    click.echo(f"Status:  {data.get('status')} ({data.get('state')})")
    click.echo(f"Queue:   {data.get('queueSize')} pending")
    click.echo(f"Worker:  pid {data.get('pid')}, {data.get('restarts', 0)} restart(s)")
    if data.get("status") != "ready":
        sys.exit(2)


@cli.command("config")
@click.option("--show-secrets", is_flag=True, help="Do not mask passwords")
@click.pass_context
def show_config(ctx: click.Context, show_secrets: bool) -> None:
    """Print the effective configuration as JSON."""
    click.echo(json_mod.dumps(_config(ctx).to_dict(mask_secrets=not show_secrets), indent=2))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
