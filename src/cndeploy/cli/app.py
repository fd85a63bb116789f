# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cndeploy/cli/app.py
from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer

from cndeploy.bootstrap.os_tweaks import OsTweaksBootstrapper
from cndeploy.config.loader import load_config, validate_tweaks
from cndeploy.config.models import DeployConfig, HostSpec
from cndeploy.errors import CndeployError
from cndeploy.host.ops import HostOps
from cndeploy.logging.log import DEFAULT_KEEP, DEFAULT_LOG_DIR, init_logging
from cndeploy.observers.console import ConsoleObserver
from cndeploy.observers.dispatcher import EventBus
from cndeploy.observers.jsonfile import JsonFileObserver
from cndeploy.observers.logger import LoggerObserver
from cndeploy.swap.reconciler import SwapReconciler
from cndeploy.utils.execution import ExecutionContext
from cndeploy.utils.ssh import open_ssh


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Prepare host operating systems for blockchain nodes")


def _load(config: Path) -> DeployConfig:
    try:
        cfg = load_config(config)
        validate_tweaks(cfg.tweaks)
    except CndeployError as e:
        typer.secho(f"config error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return cfg


def _select_hosts(
    cfg: DeployConfig,
    only: Optional[str],
    ssh_user: Optional[str],
    ssh_key: Optional[Path],
) -> List[HostSpec]:
    hosts = cfg.hosts
    if only:
        wanted = {h.strip() for h in only.split(",") if h.strip()}
        unknown = wanted - set(cfg.by_name())
        if unknown:
            raise typer.BadParameter(
                f"Unknown hosts: {', '.join(sorted(unknown))}\n"
                f"Valid hosts: {', '.join(sorted(cfg.by_name()))}"
            )
        hosts = [h for h in hosts if h.hostname in wanted]

    update = {}
    if ssh_user:
        update["username"] = ssh_user
    if ssh_key:
        update["pkey_path"] = ssh_key
    return [h.model_copy(update=update) for h in hosts]


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def validate(
    config: Path = typer.Argument(..., help="Deploy config (YAML)"),
):
    """
    Load and validate a config without touching any host.
    """
    cfg = _load(config)
    typer.echo(f"OK: {len(cfg.hosts)} host(s), environment={cfg.environment}")


@app.command()
def run(
    config: Path = typer.Argument(..., help="Deploy config (YAML)"),
    hosts: Optional[str] = typer.Option(None, "--hosts", help="Comma separated host names (default: all)"),
    ssh_user: Optional[str] = typer.Option(None, "--ssh-user", help="Override SSH username"),
    ssh_key: Optional[Path] = typer.Option(None, "--ssh-key", help="Override SSH private key"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Query hosts but change nothing"),
    events: bool = typer.Option(False, "--events", help="Print lifecycle events to the console"),
    debug: bool = typer.Option(False, "--debug", help="Verbose console logging"),
    log_dir: Path = typer.Option(DEFAULT_LOG_DIR, "--log-dir", help="Where run logs are written"),
    keep_logs: int = typer.Option(DEFAULT_KEEP, "--keep-logs", min=1, help="Run logs kept in --log-dir"),
):
    """
    Apply the OS tweaks to every selected host.
    """
    cfg = _load(config)
    targets = _select_hosts(cfg, hosts, ssh_user, ssh_key)

    logger, run_id, log_path = init_logging(base_dir=log_dir, verbose=debug, keep=keep_logs)
    observers = [
        LoggerObserver(logger),
        JsonFileObserver(log_dir / f"{run_id}.jsonl"),
    ]
    if events:
        observers.append(ConsoleObserver())

    bootstrapper = OsTweaksBootstrapper(
        ctx=ExecutionContext(dry_run=dry_run),
        bus=EventBus(observers),
        env=cfg.environment,
        run_id=run_id,
        ssh_client_ip=cfg.ssh_client_ip,
        connect=open_ssh,
    )

    results = bootstrapper.bootstrap(targets, cfg.tweaks)

    for r in results:
        if r.ok:
            changed = ", ".join(r.changed) or "nothing"
            typer.echo(f"[{r.hostname}] ok, changed: {changed}")
        else:
            typer.secho(f"[{r.hostname}] FAILED: {r.error}", fg=typer.colors.RED, err=True)
    typer.echo(f"log: {log_path}")
    if not all(r.ok for r in results):
        raise typer.Exit(code=1)


@app.command("swap-plan")
def swap_plan(
    config: Path = typer.Argument(..., help="Deploy config (YAML)"),
    host: str = typer.Option(..., "--host", help="Host name from the config"),
    ssh_user: Optional[str] = typer.Option(None, "--ssh-user", help="Override SSH username"),
    ssh_key: Optional[Path] = typer.Option(None, "--ssh-key", help="Override SSH private key"),
):
    """
    Observe the swap state of one host and print the actions a run would apply.
    """
    cfg = _load(config)
    selected = _select_hosts(cfg, host, ssh_user, ssh_key)
    if len(selected) != 1:
        raise typer.BadParameter("takes exactly one host name", param_hint="--host")
    target = selected[0]

    try:
        desired = cfg.tweaks.desired_swap()
    except ValueError as e:
        typer.secho(f"config error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    runner = open_ssh(target)
    try:
        ops = HostOps(runner, hostname=target.hostname, ctx=ExecutionContext(dry_run=True))
        report = SwapReconciler(ops).plan(desired)
    except CndeployError as e:
        typer.secho(f"[FAILED] {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    finally:
        runner.close()

    obs = report.observed
    typer.echo(
        f"[{target.hostname}] {desired.path}: exists={obs.file_exists} size={obs.file_size_mb}MB "
        f"active={obs.is_active} formatted={obs.is_formatted} fstab={obs.fstab_entry_present}"
    )
    if not report.plan:
        typer.echo("  (no actions)")
    for i, action in enumerate(report.plan, 1):
        marker = "!" if action.disruptive else " "
        typer.echo(f"  {i}. {marker} {action.describe()}")


if __name__ == "__main__":
    app()
