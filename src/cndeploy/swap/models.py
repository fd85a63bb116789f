# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cndeploy/swap/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

SWAP_FILE_MODE = 0o600


@dataclass(frozen=True)
class DesiredSwapConfig:
    """
    What the swap file on the host should look like.
    """
    enabled: bool
    path: str = "/swapfile"
    size_mb: int = 2048
    swappiness: int = 10   # applied only when enabled

    def __post_init__(self):
        if not self.path.startswith("/"):
            raise ValueError(f"swap file path must be absolute: {self.path!r}")
        if self.enabled:
            if self.size_mb < 1:
                raise ValueError("swap_file_size_mb must be an integer greater than 1")
            if not 0 <= self.swappiness <= 100:
                raise ValueError("swappiness must be a number between 0 and 100")


@dataclass(frozen=True)
class ObservedSwapState:
    """
    Swap state read from the host at reconciliation time. Never reused
    across runs.
    """
    file_exists: bool = False
    file_size_mb: int = 0          # meaningful only if file_exists
    is_active: bool = False
    is_formatted: bool = False
    fstab_entry_present: bool = False


class ActionKind(str, Enum):
    DEACTIVATE = "Deactivate"
    DELETE_FILE = "DeleteFile"
    REMOVE_FSTAB_ENTRY = "RemoveFstabEntry"
    CREATE_OR_RESIZE_FILE = "CreateOrResizeFile"
    CHMOD = "Chmod"
    FORMAT = "Format"
    ADD_FSTAB_ENTRY = "AddFstabEntry"
    ACTIVATE = "Activate"
    SET_SWAPPINESS = "SetSwappiness"


DISRUPTIVE_KINDS = frozenset({
    ActionKind.DEACTIVATE,
    ActionKind.CREATE_OR_RESIZE_FILE,
    ActionKind.FORMAT,
    ActionKind.DELETE_FILE,
})


@dataclass(frozen=True)
class Action:
    kind: ActionKind
    path: str
    size_mb: Optional[int] = None
    mode: Optional[int] = None
    swappiness: Optional[int] = None

    @property
    def disruptive(self) -> bool:
        return self.kind in DISRUPTIVE_KINDS

    def describe(self) -> str:
        if self.kind is ActionKind.CREATE_OR_RESIZE_FILE:
            return f"{self.kind.value}({self.path}, {self.size_mb}MB)"
        if self.kind is ActionKind.CHMOD:
            return f"{self.kind.value}({self.path}, {oct(self.mode)[2:]})"
        if self.kind is ActionKind.SET_SWAPPINESS:
            return f"{self.kind.value}({self.swappiness})"
        return f"{self.kind.value}({self.path})"


@dataclass
class ActionOutcome:
    action: Action
    status: str                 # "OK" | "FAILED"
    changed: bool = False
    duration_ms: int = 0
    error: Optional[str] = None


@dataclass
class ReconcileReport:
    observed: Optional[ObservedSwapState] = None
    plan: List[Action] = field(default_factory=list)
    outcomes: List[ActionOutcome] = field(default_factory=list)
    dry_run: bool = False

    def add(self, outcome: ActionOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def changed(self) -> bool:
        return any(o.changed for o in self.outcomes)

    def summary(self) -> str:
        ok = sum(1 for o in self.outcomes if o.status == "OK")
        failed = sum(1 for o in self.outcomes if o.status == "FAILED")
        return f"PLANNED={len(self.plan)} OK={ok} FAILED={failed}"
