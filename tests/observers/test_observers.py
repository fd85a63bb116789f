import json
import logging

from cndeploy.observers.dispatcher import EventBus, Observer
from cndeploy.observers.events import StepFailed, StepSkipped, SwapReconciled, new_ctx
from cndeploy.observers.jsonfile import JsonFileObserver
from cndeploy.observers.logger import LoggerObserver

CTX = new_ctx(env="dev", context="relay-1", run_id="run-1")


class Capture(Observer):
    def __init__(self): self.events = []
    def notify(self, event): self.events.append(event)


class Broken(Observer):
    def notify(self, event): raise RuntimeError("boom")


def test_broken_observer_does_not_stop_others():
    cap = Capture()
    bus = EventBus([Broken(), cap])

    bus.emit(SwapReconciled(summary="PLANNED=0 OK=0 FAILED=0", **CTX))

    assert len(cap.events) == 1


def test_subscribe():
    cap = Capture()
    bus = EventBus()
    bus.subscribe(cap)

    bus.emit(SwapReconciled(summary="x", **CTX))

    assert cap.events[0].run_id == "run-1"


def test_new_ctx_generates_run_id():
    ctx = new_ctx(env="prod", context=None)

    assert ctx["run_id"] and ctx["ts"].endswith("Z")


def test_json_file_observer(tmp_path):
    path = tmp_path / "events" / "run-1.jsonl"
    ob = JsonFileObserver(path)

    ob.notify(StepFailed(step="swap", error="Format(/swapfile) failed", **CTX))
    ob.notify(SwapReconciled(summary="PLANNED=1 OK=1 FAILED=0", **CTX))

    records = [json.loads(line) for line in path.read_text().splitlines()]
    assert [r["type"] for r in records] == ["StepFailed", "SwapReconciled"]
    assert records[0]["context"] == "relay-1"


def test_logger_observer_levels(caplog):
    ob = LoggerObserver(logging.getLogger("cndeploy.events-test"))

    with caplog.at_level(logging.DEBUG, logger="cndeploy.events-test"):
        ob.notify(StepFailed(step="ssh", error="denied", **CTX))
        ob.notify(StepSkipped(step="swap", reason="swap_configure is off", **CTX))
        ob.notify(SwapReconciled(summary="ok", **CTX))

    levels = [(r.levelno, r.getMessage()) for r in caplog.records]
    assert levels[0] == (logging.ERROR, "[relay-1] [EVENT] StepFailed: step=ssh, error=denied")
    assert levels[1][0] == logging.DEBUG
    assert levels[2][0] == logging.INFO
