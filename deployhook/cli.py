"""
CLI interface for deployhook.

Provides commands to serve the webhook API, run deployments in the
foreground, and inspect the run log.
"""

import json
import sys
from pathlib import Path

import click
from rich.table import Table

from deployhook import __version__
from deployhook.errors import DeployhookError
from deployhook.schemas import RunStatus, StepStatus
from deployhook.utils import console, setup_logging


def _get_config(ctx):
    """Return the loaded config or exit with the load error."""
    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Run 'deployhook init' to create a configuration file.", err=True)
        raise SystemExit(1)
    return ctx.obj["config"]


def _get_service(ctx):
    from deployhook.service import DeployService

    if "service" not in ctx.obj:
        ctx.obj["service"] = DeployService.from_config(_get_config(ctx))
    return ctx.obj["service"]


@click.group()
@click.version_option(version=__version__, prog_name="deployhook")
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to config.yaml (default: $DEPLOYHOOK_HOME/config.yaml)",
)
@click.pass_context
def main(ctx, config_path):
    """
    deployhook - Webhook-triggered deployment runner.

    Runs configured deployment steps and records every run.
    """
    from deployhook.config import load_config

    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config_path)
    except Exception as e:
        # init works without a config; other commands check ctx.obj
        ctx.obj["config_error"] = str(e)


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize deployhook configuration."""
    from deployhook.config import get_deployhook_home
    import secrets
    import yaml

    home = get_deployhook_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    env_path = home / ".env"
    default_cfg = {
        "shell_path": None,
        "port": 3001,
        "logs_dir": str(home / "logs"),
        "rate_limit": "10/15minutes",
        "env_file": str(env_path),
        "apps": {
            "example": {
                "production": {
                    "path": str(Path.home()),
                    "steps": [
                        {"name": "Hello", "command": "echo hello from deployhook"},
                    ],
                },
            },
        },
    }
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))

    if not env_path.exists():
        env_path.write_text(f"DEPLOYHOOK_AUTH_TOKEN={secrets.token_urlsafe(32)}\n")
        env_path.chmod(0o600)

    click.echo(f"Initialized deployhook config at {cfg_path}")
    click.echo(f"Auth token stored in {env_path}")


@main.command("serve")
@click.option("--host", default=None, help="Bind address (default from config)")
@click.option("--port", type=int, default=None, help="Port (default from config)")
@click.pass_context
def serve(ctx, host, port):
    """Run the webhook HTTP server."""
    import uvicorn
    from deployhook.server import create_app

    config = _get_config(ctx)
    setup_logging(config.log_level, config.log_format)

    try:
        app = create_app(config)
    except DeployhookError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)

    click.echo(f"Webhook deploy server on {host or config.host}:{port or config.port}")
    click.echo(f"Loaded {len(config.registry)} apps")
    uvicorn.run(app, host=host or config.host, port=port or config.port, log_level=config.log_level.lower())


@main.command("apps")
@click.pass_context
def list_apps(ctx):
    """List configured apps and environments."""
    config = _get_config(ctx)

    if len(config.registry) == 0:
        click.echo("No apps configured.")
        return

    table = Table(title="Configured deployments")
    table.add_column("App")
    table.add_column("Env")
    table.add_column("Steps", justify="right")
    table.add_column("Path", overflow="fold")
    for app, env, definition in config.registry.items():
        table.add_row(app, env, str(len(definition.steps)), str(definition.working_directory))
    console.print(table)


@main.command("deploy")
@click.argument("app")
@click.argument("env")
@click.pass_context
def deploy(ctx, app: str, env: str):
    """
    Run a deployment in the foreground.

    Examples:

        deployhook deploy shop production
    """
    config = _get_config(ctx)
    setup_logging(config.log_level, config.log_format)
    service = _get_service(ctx)

    try:
        record = service.run_sync(app, env)
    except DeployhookError as e:
        click.echo(f"✗ {e}", err=True)
        available = getattr(e, "available", None)
        if available:
            click.echo(f"Available: {', '.join(available)}", err=True)
        raise SystemExit(1)
    finally:
        service.shutdown()

    for step in record.steps:
        mark = "✓" if step.status == StepStatus.SUCCESS else "✗"
        click.echo(f"  {mark} {step.order}. {step.name} ({step.duration_ms}ms)")
        if step.error:
            click.echo(f"      {step.error}", err=True)

    if record.status == RunStatus.SUCCESS:
        click.echo(f"✓ {record.deploy_id} completed ({record.duration_ms}ms)")
    else:
        click.echo(f"✗ {record.deploy_id} failed: {record.error}", err=True)
        raise SystemExit(1)


@main.command("logs")
@click.option("--limit", type=int, default=20, show_default=True, help="Maximum runs to show")
@click.option("--app", default=None, help="Filter by app name")
@click.option("--env", default=None, help="Filter by environment name")
@click.option("--date", default=None, help="Day to read as YYYYMMDD (default today)")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
@click.pass_context
def logs(ctx, limit, app, env, date, as_json):
    """Show runs recorded for a day."""
    service = _get_service(ctx)

    try:
        result = service.query(limit=limit, app=app, env=env, date=date)
    except (ValueError, DeployhookError) as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if not result.entries:
        click.echo("No runs found.")
        return

    for entry in result.entries:
        outcome = "failed" if entry.failed else "success"
        click.echo(f"{entry.deploy_id}  {outcome}  ({len(entry.steps)} steps)")
    click.echo(f"\nShowing {len(result.entries)} of {result.total}")


@main.command("show")
@click.argument("deploy_id")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
@click.pass_context
def show(ctx, deploy_id, as_json):
    """Show one run by deploy id (searches the last 7 days)."""
    service = _get_service(ctx)
    entry = service.find_by_id(deploy_id)

    if entry is None:
        click.echo(f"✗ Log not found: {deploy_id}", err=True)
        raise SystemExit(1)

    if as_json:
        click.echo(json.dumps(entry.to_dict(), indent=2))
        return

    click.echo(entry.deploy_id)
    for step in entry.steps:
        click.echo(f"  [{step.status.value}] {step.order}. {step.name}: {step.command} ({step.duration_ms}ms)")
        if step.output:
            click.echo(step.output.rstrip())
        if step.error:
            click.echo(f"    error: {step.error}")


if __name__ == "__main__":
    sys.exit(main())
