"""Click-based CLI entrypoint for workspace-git."""

from __future__ import annotations

import json
import sqlite3
import sys

import click

from workspace_git.auth import SessionAuthenticator
from workspace_git.config import GitApiConfig, load_config
from workspace_git.errors import ConfigError
from workspace_git.store import WorkspaceStore


def _load(ctx: click.Context) -> GitApiConfig:
    try:
        return load_config(ctx.obj.get("config_path"))
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)


@click.group()
@click.option(
    "--config", "config_path", type=click.Path(dir_okay=False), default=None,
    help="YAML configuration file (defaults to $WORKSPACE_GIT_CONFIG).",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None) -> None:
    """Workspace git API server and administration."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.option("--host", default=None, help="Bind address (overrides config).")
@click.option("--port", type=int, default=None, help="TCP port (overrides config).")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the HTTP API."""
    from workspace_git.api import create_app, run_server
    from workspace_git.logging_config import setup_logging

    config = _load(ctx)
    setup_logging()
    app = create_app(config)
    run_server(app, host or config.bind, port or config.port)


# ---------------------------------------------------------------------------
# Workspace administration
# ---------------------------------------------------------------------------


@cli.group()
def workspace() -> None:
    """Manage workspace ownership records."""


@workspace.command("create")
@click.argument("user_id")
@click.option("--name", default="", help="Display name.")
@click.option("--location", default=None,
              help="Directory (local executor) or container id (docker executor). "
                   "Defaults to the workspace id.")
@click.option("--id", "workspace_id", default=None, help="Explicit workspace id.")
@click.pass_context
def workspace_create(
    ctx: click.Context,
    user_id: str,
    name: str,
    location: str | None,
    workspace_id: str | None,
) -> None:
    """Create a workspace owned by USER_ID."""
    import uuid

    config = _load(ctx)
    store = WorkspaceStore(config.db_path)
    workspace_id = workspace_id or str(uuid.uuid4())
    try:
        ws = store.create(
            user_id,
            location=location or workspace_id,
            name=name,
            workspace_id=workspace_id,
        )
    except sqlite3.IntegrityError:
        click.echo(f"Error: workspace already exists: {workspace_id}", err=True)
        sys.exit(1)
    click.echo(json.dumps(ws.to_dict()))


@workspace.command("list")
@click.argument("user_id")
@click.pass_context
def workspace_list(ctx: click.Context, user_id: str) -> None:
    """List workspaces owned by USER_ID."""
    config = _load(ctx)
    store = WorkspaceStore(config.db_path)
    for ws in store.list_for_user(user_id):
        click.echo(json.dumps(ws.to_dict()))


@workspace.command("delete")
@click.argument("user_id")
@click.argument("workspace_id")
@click.pass_context
def workspace_delete(ctx: click.Context, user_id: str, workspace_id: str) -> None:
    """Delete WORKSPACE_ID if it is owned by USER_ID."""
    config = _load(ctx)
    store = WorkspaceStore(config.db_path)
    if not store.delete(workspace_id, user_id):
        click.echo("Error: workspace not found", err=True)
        sys.exit(1)
    click.echo(f"Deleted {workspace_id}")


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@cli.group()
def token() -> None:
    """Session token utilities."""


@token.command("issue")
@click.argument("user_id")
@click.pass_context
def token_issue(ctx: click.Context, user_id: str) -> None:
    """Print a session token for USER_ID."""
    config = _load(ctx)
    auth = SessionAuthenticator(config.session_secret, max_age=config.session_max_age)
    try:
        click.echo(auth.issue(user_id))
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
