# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cndeploy/swap/executor.py

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional

from .models import Action, ActionKind, ActionOutcome, ReconcileReport
from ..errors import ActionFailure
from ..host.ops import CommandResult, HostOps
from ..observers.dispatcher import EventBus
from ..observers.events import (
    SwapActionApplied,
    SwapActionFailed,
    SwapReconciled,
    new_ctx,
)
from ..utils.ssh_runner import shq

log = logging.getLogger("cndeploy")


def _deactivate(ops: HostOps, a: Action) -> CommandResult:
    return ops.run_command(f"swapoff {shq(a.path)}")


def _delete_file(ops: HostOps, a: Action) -> CommandResult:
    return ops.delete_file(a.path)


def _remove_fstab_entry(ops: HostOps, a: Action) -> CommandResult:
    return ops.remove_fstab_entry(a.path)


def _create_or_resize(ops: HostOps, a: Action) -> CommandResult:
    # Overwriting with zeroes both creates and resizes the file.
    return ops.run_command(f"dd if=/dev/zero of={shq(a.path)} count={int(a.size_mb)} bs=1MiB")


def _chmod(ops: HostOps, a: Action) -> CommandResult:
    return ops.set_file_permissions(a.path, a.mode)


def _format(ops: HostOps, a: Action) -> CommandResult:
    return ops.run_command(f"mkswap {shq(a.path)}")


def _add_fstab_entry(ops: HostOps, a: Action) -> CommandResult:
    return ops.upsert_fstab_entry(a.path, fstype="swap", opts="sw")


def _activate(ops: HostOps, a: Action) -> CommandResult:
    # fstab is authoritative at this point
    return ops.run_command("swapon -a")


def _set_swappiness(ops: HostOps, a: Action) -> CommandResult:
    return ops.set_sysctl("vm.swappiness", a.swappiness)


HANDLERS: Dict[ActionKind, Callable[[HostOps, Action], CommandResult]] = {
    ActionKind.DEACTIVATE: _deactivate,
    ActionKind.DELETE_FILE: _delete_file,
    ActionKind.REMOVE_FSTAB_ENTRY: _remove_fstab_entry,
    ActionKind.CREATE_OR_RESIZE_FILE: _create_or_resize,
    ActionKind.CHMOD: _chmod,
    ActionKind.FORMAT: _format,
    ActionKind.ADD_FSTAB_ENTRY: _add_fstab_entry,
    ActionKind.ACTIVATE: _activate,
    ActionKind.SET_SWAPPINESS: _set_swappiness,
}


def apply_plan(
    plan: List[Action],
    ops: HostOps,
    bus: Optional[EventBus] = None,
    run_ctx: Optional[dict] = None,
    report: Optional[ReconcileReport] = None,
) -> ReconcileReport:
    """
    Apply `plan` in order. The first failing action raises ActionFailure and
    nothing after it runs; re-running the reconciler is the retry.
    """
    bus = bus or EventBus()
    ctx = run_ctx or new_ctx(env="dev", context=ops.hostname)
    report = report or ReconcileReport(plan=list(plan))

    for action in plan:
        t0 = time.time()
        res = HANDLERS[action.kind](ops, action)
        duration_ms = int((time.time() - t0) * 1000)

        if not res.ok:
            err = ActionFailure(action, rc=res.rc, stdout=res.stdout, stderr=res.stderr)
            report.add(ActionOutcome(action=action, status="FAILED", duration_ms=duration_ms, error=str(err)))
            bus.emit(SwapActionFailed(action=action.kind.value, path=action.path, error=str(err), **ctx))
            log.error("[%s] %s", ops.hostname, err)
            raise err

        report.add(ActionOutcome(action=action, status="OK", changed=res.changed, duration_ms=duration_ms))
        bus.emit(SwapActionApplied(
            action=action.kind.value,
            path=action.path,
            changed=res.changed,
            duration_ms=duration_ms,
            **ctx,
        ))
        log.debug("[%s] %s ok (%dms)", ops.hostname, action.describe(), duration_ms)

    bus.emit(SwapReconciled(summary=report.summary(), **ctx))
    log.info("[%s] swap reconciled: %s", ops.hostname, report.summary())
    return report
