# src/cndeploy/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single invocation
    env: str          # dev/staging/prod
    context: Optional[str]  # target host

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(env: str, context: Optional[str], run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.utcnow().isoformat(timespec="seconds") + "Z",
        "run_id": run_id or str(uuid.uuid4()),
        "env": env,
        "context": context,
    }


# ---------------------------------------------------------------------
# Bootstrap steps
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class HostStarted(BaseEvent):
    hostname: str
    address: str

@dataclass(frozen=True)
class StepStarted(BaseEvent):
    step: str

@dataclass(frozen=True)
class StepSkipped(BaseEvent):
    step: str
    reason: str

@dataclass(frozen=True)
class StepSucceeded(BaseEvent):
    step: str
    changed: bool
    duration_ms: int

@dataclass(frozen=True)
class StepFailed(BaseEvent):
    step: str
    error: str

@dataclass(frozen=True)
class HostSummary(BaseEvent):
    hostname: str
    status: str         # "OK" | "FAILED"
    changed: List[str]
    error: Optional[str] = None


# ---------------------------------------------------------------------
# Swap reconciliation
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class SwapObserved(BaseEvent):
    path: str
    state: Dict[str, Any]

@dataclass(frozen=True)
class SwapPlanComputed(BaseEvent):
    path: str
    actions: List[str]

@dataclass(frozen=True)
class SwapActionApplied(BaseEvent):
    action: str
    path: str
    changed: bool
    duration_ms: int

@dataclass(frozen=True)
class SwapActionFailed(BaseEvent):
    action: str
    path: str
    error: str

@dataclass(frozen=True)
class SwapReconciled(BaseEvent):
    summary: str


# ---------------------------------------------------------------------
# Firewall
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class FirewallBackendSelected(BaseEvent):
    backend: Optional[str]

@dataclass(frozen=True)
class FirewallRuleApplied(BaseEvent):
    backend: str
    port: int
    proto: str
    source: Optional[str] = None
