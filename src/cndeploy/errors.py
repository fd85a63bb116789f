# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cndeploy/errors.py
from __future__ import annotations

from typing import Optional


class CndeployError(RuntimeError):
    """Base class for cndeploy failures."""


class ConfigError(CndeployError):
    """Raised when the input variables fail validation."""


class SSHCommandError(CndeployError):
    """Raised when a remote command that must succeed exits non-zero."""

    def __init__(self, cmd: str, rc: int, stderr: str = ""):
        self.cmd = cmd
        self.rc = rc
        self.stderr = stderr
        super().__init__(f"command failed (rc={rc}): {cmd}: {stderr.strip()}")


class ObservationFailure(CndeployError):
    """Raised when the state of the host could not be determined."""


class ActionFailure(CndeployError):
    """
    Raised when a planned action fails. Carries the failing action and the
    diagnostic output of the command behind it.
    """

    def __init__(
        self,
        action,
        rc: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
    ):
        self.action = action
        self.rc = rc
        self.stdout = stdout
        self.stderr = stderr
        detail = (stderr or stdout).strip()
        msg = f"{action.describe()} failed"
        if rc is not None:
            msg += f" (rc={rc})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class StepError(CndeployError):
    """Raised when a bootstrap step cannot complete."""
