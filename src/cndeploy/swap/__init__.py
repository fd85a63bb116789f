from .models import Action, ActionKind, DesiredSwapConfig, ObservedSwapState, ReconcileReport
from .reconciler import SwapReconciler, reconcile
from .probe import observe
from .executor import apply_plan

__all__ = [
    "Action",
    "ActionKind",
    "DesiredSwapConfig",
    "ObservedSwapState",
    "ReconcileReport",
    "SwapReconciler",
    "reconcile",
    "observe",
    "apply_plan",
]
