# src/swarmsync/cli/app.py
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer

from swarmsync.cli import helper
from swarmsync.config.loader import DEFAULT_CONFIG_FILE
from swarmsync.config.settings import load_settings
from swarmsync.errors import PreflightError, SwarmSyncError
from swarmsync.logging.log import init_logging
from swarmsync.observers.console import ConsoleObserver
from swarmsync.observers.events import new_ctx
from swarmsync.observers.jsonfile import JsonFileObserver
from swarmsync.observers.logger import LoggerObserver
from swarmsync.swarm.manager import SwarmClusterManager


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Homelab Docker Swarm membership and label reconciler")

ConfigOption = typer.Option(DEFAULT_CONFIG_FILE, "--config", "-c", help="Topology YAML")
TokenFileOption = typer.Option(
    None, "--token-file", help="Join token file (default: $SWARM_TOKEN_FILE or ./.swarm_token)"
)
SkipPreflightOption = typer.Option(False, "--skip-preflight", help="Do not run preflight checks")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="DEBUG output on the console"),
    show_events: bool = typer.Option(False, "--show-events", help="Print lifecycle events"),
):
    ctx.obj = {"verbose": verbose, "show_events": show_events}


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

@contextmanager
def session(
    ctx: typer.Context,
    command: str,
    config: Optional[str],
    *,
    token_file: Optional[Path] = None,
) -> Iterator[SwarmClusterManager]:
    """
    Set up logging and observers for one command, and turn swarmsync
    errors into a red message and exit code 1.
    """
    opts = ctx.obj or {}
    settings = load_settings(token_file=token_file)
    logger, run_id, log_path = init_logging(base_dir=settings.log_dir, verbose=opts.get("verbose", False))
    logger.debug("command=%s config=%s token_file=%s", command, config, settings.token_file)

    observers = [
        LoggerObserver(logger),
        JsonFileObserver(settings.log_dir / f"{run_id}.jsonl"),
    ]
    if opts.get("show_events"):
        observers.append(ConsoleObserver())

    run_ctx = new_ctx(env=command, context=config, run_id=run_id)
    manager = helper.build_manager(settings, observers=observers, run_ctx=run_ctx)

    try:
        yield manager
    except PreflightError as exc:
        for failure in exc.failures:
            typer.secho(f"  ✗ {failure.machine_id} ({failure.user_host}): {failure.reason}", fg=typer.colors.RED, err=True)
        typer.secho(f"ERROR: {exc}", fg=typer.colors.RED, err=True)
        typer.echo(f"Logs: {log_path}", err=True)
        raise typer.Exit(1)
    except SwarmSyncError as exc:
        typer.secho(f"ERROR: {exc}", fg=typer.colors.RED, err=True)
        typer.echo(f"Logs: {log_path}", err=True)
        raise typer.Exit(1)
    finally:
        manager.close()


def _finish(report) -> None:
    helper.echo_report(report)
    if not report.ok:
        raise typer.Exit(1)


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command("init-cluster")
def init_cluster(
    ctx: typer.Context,
    config: str = ConfigOption,
    token_file: Optional[Path] = TokenFileOption,
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the plan, change nothing"),
    evict: bool = typer.Option(True, "--evict/--no-evict", help="Evict workers missing from the topology"),
    skip_preflight: bool = SkipPreflightOption,
):
    """Bootstrap the swarm, join missing workers and sync node labels."""
    with session(ctx, "init-cluster", config, token_file=token_file) as manager:
        report = manager.init_cluster(config, dry_run=dry_run, evict=evict, preflight=not skip_preflight)
        if report.dry_run:
            for line in helper.render_plan(report.plan):
                typer.echo(line)
            return
        _finish(report)


@app.command("join-workers")
def join_workers(
    ctx: typer.Context,
    config: str = ConfigOption,
    token_file: Optional[Path] = TokenFileOption,
    evict: bool = typer.Option(True, "--evict/--no-evict", help="Evict workers missing from the topology"),
    skip_preflight: bool = SkipPreflightOption,
):
    """Join workers that are not yet in the swarm, using the saved join token."""
    with session(ctx, "join-workers", config, token_file=token_file) as manager:
        _finish(manager.join_workers(config, evict=evict, preflight=not skip_preflight))


@app.command("label-nodes")
def label_nodes(
    ctx: typer.Context,
    config: str = ConfigOption,
    skip_preflight: bool = SkipPreflightOption,
):
    """Sync node labels with the topology."""
    with session(ctx, "label-nodes", config) as manager:
        _finish(manager.label_nodes(config, preflight=not skip_preflight))


def monitor_cluster(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Topology YAML; query its manager instead of this host"
    ),
):
    """Show node health, roles and services."""
    with session(ctx, "monitor-cluster", config) as manager:
        health, text = manager.cluster_health(config)
        typer.echo(text)
        if not health.all_healthy:
            raise typer.Exit(1)


app.command("monitor-cluster")(monitor_cluster)
app.command("cluster-status")(monitor_cluster)


@app.command("ensure-network")
def ensure_network(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Overlay network name"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Topology YAML"),
    attachable: bool = typer.Option(True, "--attachable/--no-attachable"),
):
    """Create an overlay network unless it already exists."""
    with session(ctx, "ensure-network", config) as manager:
        created = manager.ensure_network(name, config, attachable=attachable)
        typer.echo(f"Network '{name}' {'created' if created else 'already exists'}")


@app.command()
def preflight(
    ctx: typer.Context,
    config: str = ConfigOption,
):
    """Validate the topology file, SSH access and Docker on every machine."""
    with session(ctx, "preflight", config) as manager:
        topology = manager.preflight(config)
        typer.secho(
            f"Preflight OK: {len(topology.machines)} machine(s), manager={topology.manager.id}",
            fg=typer.colors.GREEN,
        )


if __name__ == "__main__":
    app()
