# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cndeploy/swap/probe.py

from __future__ import annotations

import logging

from .models import ObservedSwapState
from ..errors import ObservationFailure, SSHCommandError
from ..host.ops import FSTAB_PATH, HostOps, has_fstab_entry
from ..utils.ssh_runner import shq

log = logging.getLogger("cndeploy")


def _ask(ops: HostOps, what: str, condition: str) -> bool:
    q = ops.shell_query(f"if {condition}; then echo yes; else echo no; fi")
    answer = q.stdout.strip()
    if q.exit_code != 0 or answer not in ("yes", "no"):
        raise ObservationFailure(
            f"cannot tell whether {what} (exit {q.exit_code}): {q.stderr.strip() or answer!r}"
        )
    return answer == "yes"


def observe(ops: HostOps, path: str) -> ObservedSwapState:
    """
    Read the current swap state of `path` from the host.

    Every query must answer explicitly. A failed command (sudo refusing,
    broken shell, unreadable fstab) raises ObservationFailure instead of
    being read as "absent" or "inactive".
    """
    try:
        st = ops.stat_file(path)
    except SSHCommandError as e:
        raise ObservationFailure(f"cannot stat swap file {path}: {e}") from e

    size_mb = int(st.size_bytes / 1024 / 1024) if st.exists else 0
    if st.exists:
        log.debug("[%s] existing swap file size: %sMB", ops.hostname, size_mb)

    active = _ask(
        ops, f"{path} is an active swap",
        f"swapon --show=NAME --noheadings | grep -Fxq {shq(path)}",
    )

    formatted = False
    if st.exists:
        formatted = _ask(ops, f"{path} is formatted as swap", f'file {shq(path)} | grep -q "swap file"')

    try:
        fstab = ops.read_file(FSTAB_PATH) or ""
    except SSHCommandError as e:
        raise ObservationFailure(f"cannot read {FSTAB_PATH}: {e}") from e

    return ObservedSwapState(
        file_exists=st.exists,
        file_size_mb=size_mb,
        is_active=active,
        is_formatted=formatted,
        fstab_entry_present=has_fstab_entry(fstab, path),
    )
