# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cndeploy/logging/log.py

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

DEFAULT_LOG_DIR = Path.home() / ".cndeploy" / "logs"
DEFAULT_KEEP = 20

FILE_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
CONSOLE_FORMAT = "%(levelname)-7s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _prune(base_dir: Path, name: str, keep: int, current: Path) -> None:
    """Delete the oldest `{name}-*.log` files so at most `keep` remain."""
    older = sorted(
        (p for p in base_dir.glob(f"{name}-*.log") if p != current),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    for stale in older[max(keep - 1, 0):]:
        stale.unlink(missing_ok=True)


def init_logging(
    *,
    base_dir: Optional[Path] = None,
    name: str = "cndeploy",
    verbose: bool = False,
    run_id: Optional[str] = None,
    keep: Optional[int] = DEFAULT_KEEP,
) -> tuple[logging.Logger, str, Path]:
    """
    Point the `name` logger at a fresh per-run file (everything, DEBUG
    included) and at stderr (INFO, or DEBUG when verbose).

    Earlier handlers on the logger are closed first, so calling this twice
    in one process does not duplicate output. With `keep` set, only the
    newest `keep` run logs survive in `base_dir`.

    Returns (logger, run_id, log_path); the run id is shared with the
    event observers.
    """
    run_id = run_id or str(uuid.uuid4())
    base_dir = base_dir or DEFAULT_LOG_DIR
    base_dir.mkdir(parents=True, exist_ok=True)

    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{name}-{stamp}-{run_id}.log"

    logger = logging.getLogger(name)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    to_file = logging.FileHandler(log_path, encoding="utf-8")
    to_file.setLevel(logging.DEBUG)
    to_file.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(to_file)

    to_console = logging.StreamHandler()
    to_console.setLevel(logging.DEBUG if verbose else logging.INFO)
    to_console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(to_console)

    if keep is not None:
        _prune(base_dir, name, keep, log_path)

    logger.debug("run %s logging to %s", run_id, log_path)
    logger.info("cndeploy run %s started", run_id)
    return logger, run_id, log_path
