import pytest

from cndeploy.errors import ActionFailure, ObservationFailure
from cndeploy.host.ops import HostOps
from cndeploy.observers.dispatcher import EventBus
from cndeploy.observers.events import (
    SwapActionApplied,
    SwapActionFailed,
    SwapObserved,
    SwapPlanComputed,
    SwapReconciled,
)
from cndeploy.swap.models import ActionKind, DesiredSwapConfig
from cndeploy.swap.reconciler import SwapReconciler
from cndeploy.utils.execution import ExecutionContext


class Collect:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)


DESIRED = DesiredSwapConfig(enabled=True, path="/swapfile", size_mb=1024, swappiness=10)


def test_fresh_host_gets_swap_file(fake_host, ops):
    report = SwapReconciler(ops).run(DESIRED)

    assert fake_host.mutating_calls() == [
        "dd if=/dev/zero of='/swapfile' count=1024 bs=1MiB",
        "chmod 600 '/swapfile'",
        "mkswap '/swapfile'",
        "put /etc/fstab",
        "swapon -a",
        "sysctl -w 'vm.swappiness=10'",
        "put /etc/sysctl.d/99-cndeploy.conf",
    ]
    assert "/swapfile none swap sw 0 0" in fake_host.files["/etc/fstab"]
    assert fake_host.files["/etc/sysctl.d/99-cndeploy.conf"] == "vm.swappiness = 10\n"
    assert fake_host.modes["/swapfile"] == 0o600
    assert "/swapfile" in fake_host.active
    assert report.changed
    assert report.summary() == "PLANNED=6 OK=6 FAILED=0"


def test_second_run_changes_nothing(fake_host, ops):
    SwapReconciler(ops).run(DESIRED)
    fake_host.calls.clear()

    report = SwapReconciler(ops).run(DESIRED)

    assert [a.kind for a in report.plan] == [
        ActionKind.CHMOD, ActionKind.ADD_FSTAB_ENTRY, ActionKind.SET_SWAPPINESS,
    ]
    assert fake_host.mutating_calls() == ["sysctl -w 'vm.swappiness=10'"]
    assert not report.changed


def test_failing_format_stops_the_plan(fake_host, ops):
    fake_host.fail["mkswap"] = (1, "", "mkswap: error: swap area needs to be at least 40 KiB\n")

    with pytest.raises(ActionFailure) as exc:
        SwapReconciler(ops).run(DESIRED)

    assert exc.value.action.kind is ActionKind.FORMAT
    assert exc.value.rc == 1
    assert "at least 40 KiB" in str(exc.value)
    assert "swapon -a" not in fake_host.calls
    assert "put /etc/fstab" not in fake_host.calls


def test_events_follow_the_plan(fake_host, ops):
    seen = Collect()
    SwapReconciler(ops, bus=EventBus([seen])).run(DESIRED)

    types = [type(e) for e in seen.events]
    assert types[:2] == [SwapObserved, SwapPlanComputed]
    assert types[2:-1] == [SwapActionApplied] * 6
    assert types[-1] is SwapReconciled
    assert seen.events[1].actions[0] == "CreateOrResizeFile"
    assert seen.events[-1].summary == "PLANNED=6 OK=6 FAILED=0"


def test_failure_emits_event(fake_host, ops):
    fake_host.fail["dd if="] = (1, "", "dd: No space left on device\n")
    seen = Collect()

    with pytest.raises(ActionFailure):
        SwapReconciler(ops, bus=EventBus([seen])).run(DESIRED)

    failed = [e for e in seen.events if isinstance(e, SwapActionFailed)]
    assert len(failed) == 1
    assert failed[0].action == "CreateOrResizeFile"
    assert not any(isinstance(e, SwapReconciled) for e in seen.events)


def test_dry_run_touches_nothing(fake_host):
    ops = HostOps(fake_host, hostname="relay-1", ctx=ExecutionContext(dry_run=True))

    report = SwapReconciler(ops).run(DESIRED)

    assert report.dry_run
    assert len(report.plan) == 6
    assert report.outcomes == []
    assert fake_host.mutating_calls() == []


def test_disable_removes_file_and_fstab_entry(fake_host, ops):
    fake_host.add_swapfile("/swapfile", 1024, active=True)

    report = SwapReconciler(ops).run(DesiredSwapConfig(enabled=False, path="/swapfile"))

    assert fake_host.mutating_calls() == ["swapoff '/swapfile'", "rm -f '/swapfile'", "put /etc/fstab"]
    assert "/swapfile" not in fake_host.files
    assert "/swapfile" not in fake_host.files["/etc/fstab"]
    assert "UUID=abcd / ext4 defaults 0 1" in fake_host.files["/etc/fstab"]
    assert report.changed


def test_resize_replaces_active_file(fake_host, ops):
    fake_host.add_swapfile("/swapfile", 512, active=True)

    SwapReconciler(ops).run(DESIRED)

    calls = fake_host.mutating_calls()
    assert calls[:3] == [
        "swapoff '/swapfile'",
        "dd if=/dev/zero of='/swapfile' count=1024 bs=1MiB",
        "chmod 600 '/swapfile'",
    ]
    assert calls.index("mkswap '/swapfile'") < calls.index("swapon -a")
    assert fake_host.sizes["/swapfile"] == 1024 * 1024 * 1024
    assert "/swapfile" in fake_host.active


def test_tightening_permissions_counts_as_change(fake_host, ops):
    fake_host.add_swapfile("/swapfile", 1024, active=True)
    fake_host.files["/etc/sysctl.d/99-cndeploy.conf"] = "vm.swappiness = 10\n"

    first = SwapReconciler(ops).run(DESIRED)
    second = SwapReconciler(ops).run(DESIRED)

    assert first.changed
    assert fake_host.modes["/swapfile"] == 0o600
    assert not second.changed


def test_disable_with_failing_sudo_leaves_host_alone(fake_host, ops):
    fake_host.add_swapfile("/swapfile", 1024, active=True)
    fake_host.fail[""] = (1, "", "sudo: 1 incorrect password attempt\n")

    with pytest.raises(ObservationFailure, match="incorrect password"):
        SwapReconciler(ops).run(DesiredSwapConfig(enabled=False, path="/swapfile"))

    assert "/swapfile" in fake_host.files
    assert "/swapfile" in fake_host.active
