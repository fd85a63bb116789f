from __future__ import annotations
import logging
from .events import BaseEvent

_CTX_KEYS = ("ts", "run_id", "env", "context")


class LoggerObserver:
    """
    Mirror events into the run log. *Failed events are logged at ERROR,
    skips at DEBUG, the rest at INFO.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        etype = event.__class__.__name__
        msg = ", ".join(f"{k}={v}" for k, v in d.items() if k not in _CTX_KEYS)

        if etype.endswith("Failed"):
            level = logging.ERROR
        elif etype.endswith("Skipped"):
            level = logging.DEBUG
        else:
            level = logging.INFO
        self.logger.log(level, "[%s] [EVENT] %s: %s", d.get("context") or "-", etype, msg)
