# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cndeploy/swap/reconciler.py

from __future__ import annotations

import logging
from typing import List, Optional

from .models import (
    SWAP_FILE_MODE,
    Action,
    ActionKind,
    DesiredSwapConfig,
    ObservedSwapState,
    ReconcileReport,
)
from .probe import observe
from .executor import apply_plan
from ..host.ops import HostOps
from ..observers.dispatcher import EventBus
from ..observers.events import SwapObserved, SwapPlanComputed, new_ctx

log = logging.getLogger("cndeploy")


def reconcile(desired: DesiredSwapConfig, observed: ObservedSwapState) -> List[Action]:
    """
    Compute the ordered actions that bring the swap file on the host from
    `observed` to `desired`. Pure function, no I/O.
    """
    path = desired.path
    actions: List[Action] = []

    wrong_size = (not observed.file_exists) or observed.file_size_mb != desired.size_mb

    # Swap must be offline before it can be resized or removed.
    deactivated = False
    if observed.is_active and (not desired.enabled or wrong_size):
        actions.append(Action(ActionKind.DEACTIVATE, path))
        deactivated = True

    if not desired.enabled:
        if observed.file_exists:
            actions.append(Action(ActionKind.DELETE_FILE, path))
        actions.append(Action(ActionKind.REMOVE_FSTAB_ENTRY, path))
        return actions

    recreated = False
    if wrong_size:
        actions.append(Action(ActionKind.CREATE_OR_RESIZE_FILE, path, size_mb=desired.size_mb))
        recreated = True

    actions.append(Action(ActionKind.CHMOD, path, mode=SWAP_FILE_MODE))

    # mkswap metadata encodes the file size
    if not observed.is_formatted or recreated:
        actions.append(Action(ActionKind.FORMAT, path))

    actions.append(Action(ActionKind.ADD_FSTAB_ENTRY, path))

    if not observed.is_active or deactivated:
        actions.append(Action(ActionKind.ACTIVATE, path))

    actions.append(Action(ActionKind.SET_SWAPPINESS, path, swappiness=desired.swappiness))
    return actions


class SwapReconciler:
    """
    Observe, plan and apply for one host. The caller must not run two
    reconcilers against the same host at the same time.
    """

    def __init__(
        self,
        ops: HostOps,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
    ):
        self.ops = ops
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(env="dev", context=ops.hostname)

    def plan(self, desired: DesiredSwapConfig) -> ReconcileReport:
        observed = observe(self.ops, desired.path)
        self.bus.emit(SwapObserved(path=desired.path, state=observed.__dict__.copy(), **self.run_ctx))

        actions = reconcile(desired, observed)
        log.info(
            "[%s] swap plan for %s: %s",
            self.ops.hostname,
            desired.path,
            ", ".join(a.describe() for a in actions) or "(empty)",
        )
        self.bus.emit(SwapPlanComputed(path=desired.path, actions=[a.kind.value for a in actions], **self.run_ctx))
        return ReconcileReport(observed=observed, plan=actions, dry_run=self.ops.ctx.dry_run)

    def run(self, desired: DesiredSwapConfig) -> ReconcileReport:
        report = self.plan(desired)
        if report.dry_run:
            log.info("[%s] dry-run, swap plan not applied", self.ops.hostname)
            return report
        return apply_plan(report.plan, self.ops, bus=self.bus, run_ctx=self.run_ctx, report=report)
