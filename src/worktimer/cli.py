"""CLI entrypoint — worktimer start, pause, resume, complete, status, list, estimate, config, serve."""

from __future__ import annotations

import logging
import time
from pathlib import Path

import click

from worktimer.config import CONFIG_PATH, load_config, set_config_value
from worktimer.errors import (
    InvalidInputError,
    InvalidTransitionError,
    SessionNotFoundError,
    StorageError,
)
from worktimer.models import COMPLETED, PAUSE_REASONS, SESSION_STATUSES, WORK_TYPES, Session
from worktimer.predictor import Predictor, format_duration
from worktimer.scope import detect_scope
from worktimer.store import SessionStore


def _open_store(ctx: click.Context) -> SessionStore:
    config = ctx.obj["config"]
    try:
        return SessionStore(config.db_path)
    except StorageError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1)


def _scope(ctx: click.Context, scope: str | None) -> str:
    return scope or ctx.obj["config"].default_scope or detect_scope()


def _resolve_session(ctx: click.Context, store: SessionStore, session_id: str | None) -> Session:
    """Look up an explicit session id, or the active session of the current scope."""
    try:
        if session_id:
            return store.get_session(session_id)
        session = store.get_active_session(_scope(ctx, None))
    except SessionNotFoundError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1)
    if session is None:
        click.echo("No active session.", err=True)
        raise SystemExit(1)
    return session


@click.group()
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file (default: ~/.config/worktimer/config.yaml).",
)
@click.option("--db-path", default=None, type=click.Path(dir_okay=False, path_type=Path),
              help="Override the database file.")
@click.option("--log-level", default=None, help="Logging level (default from config: WARNING).")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, db_path: Path | None, log_level: str | None):
    """worktimer — track work sessions and estimate how long work takes."""
    config = load_config(config_path)
    if db_path is not None:
        config.db_path = db_path.expanduser()
    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"config": config, "config_path": config_path or CONFIG_PATH}


@cli.command()
@click.option("--feature-id", default=None, help="Branch name or feature identifier.")
@click.option("--description", default="Coding session", help="What you are building.")
@click.option("--work-type", type=click.Choice(WORK_TYPES), default=None, help="Type of work.")
@click.option("--scope", default=None, help="Project scope (auto-detected if omitted).")
@click.pass_context
def start(
    ctx: click.Context,
    feature_id: str | None,
    description: str,
    work_type: str | None,
    scope: str | None,
):
    """Start tracking a work session."""
    store = _open_store(ctx)
    scope = _scope(ctx, scope)

    existing = store.get_active_session(scope)
    if existing:
        click.echo(
            f"Session already {existing.status}: {existing.feature_id} ({existing.id})."
        )
        return

    if not feature_id:
        feature_id = f"work-{int(time.time())}"

    session = store.create_session(
        feature_id=feature_id,
        description=description,
        scope=scope,
        work_type=work_type,
    )
    click.echo(f"Started session {session.id} ({session.feature_id}) in {scope}.")

    estimate = Predictor(store).get_estimate(work_type=work_type)
    if estimate.sample_count > 0:
        click.echo(f"Estimate ({estimate.confidence} confidence): {estimate.message}")


@cli.command()
@click.option("--session-id", default=None, help="Session ID (uses the active session if omitted).")
@click.option("--reason", type=click.Choice(PAUSE_REASONS), default="unknown", help="Why pausing.")
@click.pass_context
def pause(ctx: click.Context, session_id: str | None, reason: str):
    """Pause a session (closes the current segment)."""
    store = _open_store(ctx)
    session = _resolve_session(ctx, store, session_id)
    try:
        paused = store.pause_session(session.id, reason)
    except InvalidTransitionError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1)
    click.echo(
        f"Paused {paused.feature_id} after {format_duration(paused.total_active_seconds)} of work."
    )


@cli.command()
@click.option("--session-id", default=None, help="Session ID (uses the paused session if omitted).")
@click.pass_context
def resume(ctx: click.Context, session_id: str | None):
    """Resume a paused session."""
    store = _open_store(ctx)
    session = _resolve_session(ctx, store, session_id)
    try:
        resumed = store.resume_session(session.id)
    except InvalidTransitionError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1)
    click.echo(f"Resumed {resumed.feature_id}.")


@cli.command()
@click.option("--session-id", default=None, help="Session ID (uses the active session if omitted).")
@click.option("--satisfaction", type=click.IntRange(1, 5), default=None, help="How well it went (1-5).")
@click.option("--notes", default=None, help="Learnings or blockers.")
@click.option("--files-touched", type=int, default=None, help="Number of files modified.")
@click.option("--lines-added", type=int, default=None, help="Lines of code added.")
@click.option("--lines-removed", type=int, default=None, help="Lines of code removed.")
@click.option("--complexity", type=click.IntRange(1, 5), default=None, help="Complexity (1-5).")
@click.option("--work-type", type=click.Choice(WORK_TYPES), default=None, help="Type of work.")
@click.pass_context
def complete(
    ctx: click.Context,
    session_id: str | None,
    satisfaction: int | None,
    notes: str | None,
    files_touched: int | None,
    lines_added: int | None,
    lines_removed: int | None,
    complexity: int | None,
    work_type: str | None,
):
    """Complete a session and record its final metrics."""
    store = _open_store(ctx)
    session = _resolve_session(ctx, store, session_id)
    metrics = {
        "work_type": work_type,
        "complexity_rating": complexity,
        "files_touched": files_touched,
        "lines_added": lines_added,
        "lines_removed": lines_removed,
    }
    try:
        completed = store.complete_session(
            session.id, satisfaction=satisfaction, notes=notes, metrics=metrics
        )
    except InvalidTransitionError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1)

    minutes = round(completed.total_active_seconds / 60)
    click.echo(f"Completed {completed.feature_id} after {minutes} minutes of active work.")

    comparison = Predictor(store).compare(
        completed.total_active_seconds, work_type=work_type or completed.work_type
    )
    if comparison:
        click.echo(comparison)


@cli.command()
@click.option("--scope", default=None, help="Project scope (auto-detected if omitted).")
@click.pass_context
def status(ctx: click.Context, scope: str | None):
    """Show the active or paused session for a scope."""
    store = _open_store(ctx)
    session = store.get_active_session(_scope(ctx, scope))
    if session is None:
        click.echo("No active session.")
        return

    segments = store.get_segments(session.id)
    click.echo(f"{session.feature_id}: {session.description}")
    click.echo(f"  id:       {session.id}")
    click.echo(f"  status:   {session.status}")
    click.echo(f"  started:  {session.created_at.isoformat()}")
    click.echo(f"  elapsed:  {format_duration(store.elapsed_seconds(session))}")
    click.echo(f"  segments: {len(segments)}")


@cli.command(name="list")
@click.option("--scope", default=None, help="Only sessions in this scope.")
@click.option("--status", "status_filter", type=click.Choice(SESSION_STATUSES), default=None)
@click.option("--limit", type=click.IntRange(min=0), default=20, help="Maximum sessions to show.")
@click.pass_context
def list_cmd(ctx: click.Context, scope: str | None, status_filter: str | None, limit: int):
    """List recent sessions."""
    store = _open_store(ctx)
    sessions = store.list_sessions(scope=scope, status=status_filter, limit=limit)
    if not sessions:
        click.echo("No sessions found.")
        return

    for s in sessions:
        duration = (
            format_duration(s.total_active_seconds)
            if s.status == COMPLETED
            else format_duration(store.elapsed_seconds(s))
        )
        click.echo(
            f"{s.created_at.date().isoformat()}  {s.status:<9}  {duration:>12}  "
            f"{s.feature_id} [{s.scope}]"
        )


@cli.command()
@click.option("--work-type", type=click.Choice(WORK_TYPES), default=None, help="Type of work.")
@click.option("--complexity", type=click.IntRange(1, 5), default=None, help="Complexity (1-5).")
@click.pass_context
def estimate(ctx: click.Context, work_type: str | None, complexity: int | None):
    """Estimate how long work like this usually takes."""
    store = _open_store(ctx)
    result = Predictor(store).get_estimate(work_type=work_type, complexity_rating=complexity)

    click.echo(f"{result.message} ({result.confidence} confidence, {result.sample_count} samples)")
    if result.similar_sessions:
        click.echo("\nSimilar sessions:")
        for s in result.similar_sessions:
            click.echo(f"  {s.feature_id}: {s.description} ({format_duration(s.duration_seconds)})")


@cli.command()
@click.option("--port", default=None, type=int, help="Port to serve on (default: 8788).")
@click.pass_context
def serve(ctx: click.Context, port: int | None):
    """Start the JSON API server."""
    config = ctx.obj["config"]
    serve_port = port or config.port

    from worktimer.web.app import create_app

    click.echo(f"Serving worktimer API at http://localhost:{serve_port}")
    click.echo("Press Ctrl+C to stop.")
    app = create_app(config)
    app.run(host="localhost", port=serve_port)


@cli.group()
def config():
    """Show or change settings in the config file."""


@config.command(name="show")
@click.pass_context
def config_show(ctx: click.Context):
    """Print the effective configuration."""
    cfg = ctx.obj["config"]
    click.echo(f"config:        {ctx.obj['config_path'].expanduser()}")
    click.echo(f"db_path:       {cfg.db_path}")
    click.echo(f"default_scope: {cfg.default_scope or '-'}")
    click.echo(f"port:          {cfg.port}")
    click.echo(f"log_level:     {cfg.log_level}")


@config.command(name="set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str):
    """Set KEY to VALUE (db_path, default_scope, port, log_level)."""
    try:
        stored = set_config_value(key, value, config_path=ctx.obj["config_path"])
    except InvalidInputError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1)
    if stored is None:
        click.echo(f"Cleared {key}.")
    else:
        click.echo(f"Set {key} = {stored}.")
