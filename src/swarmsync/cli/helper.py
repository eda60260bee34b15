# src/swarmsync/cli/helper.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

import typer

from swarmsync.config.settings import Settings
from swarmsync.swarm.manager import ReconcileReport, SwarmClusterManager
from swarmsync.swarm.plan import ReconciliationPlan


def build_manager(
    settings: Settings,
    *,
    observers: Optional[List] = None,
    run_ctx: Optional[Dict[str, Any]] = None,
) -> SwarmClusterManager:
    return SwarmClusterManager(settings, observers=observers, run_ctx=run_ctx)


def render_plan(plan: ReconciliationPlan) -> List[str]:
    lines = ["Planned changes:"]
    if plan.empty:
        lines.append("  nothing to do, cluster matches the topology")
        return lines

    if plan.bootstrap:
        lines.append("  initialize swarm on the manager")
    for machine in plan.to_join:
        lines.append(f"  join   {machine.id} ({machine.user_host})")
    for node in plan.to_evict:
        lines.append(f"  evict  {node.hostname or node.id} (drain, remove, leave)")
    for machine_id, delta in plan.label_delta.items():
        for key in delta.remove_keys():
            lines.append(f"  label  {machine_id}: -{key}")
        for label in sorted(delta.to_add):
            lines.append(f"  label  {machine_id}: +{label}")
    for machine in plan.unreachable:
        lines.append(f"  skip   {machine.id} (unreachable)")
    return lines


def echo_report(report: ReconcileReport) -> None:
    if report.bootstrap is not None:
        state = "initialized" if report.bootstrap.initialized else "already active"
        typer.echo(f"[bootstrap] swarm {state}")

    for phase in report.phases:
        for outcome in phase.outcomes:
            line = f"[{phase.phase}] {outcome.name}: {outcome.action} {outcome.status}"
            if outcome.details:
                line += f" ({', '.join(outcome.details)})"
            if outcome.error:
                line += f" - {outcome.error}"
            color = typer.colors.RED if outcome.status == "FAILED" else None
            typer.secho(line, fg=color)

    summary_color = typer.colors.GREEN if report.ok else typer.colors.RED
    typer.secho(f"Summary: {report.summary()}", fg=summary_color, bold=True)
