# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cndeploy/host/ops.py

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from ..errors import SSHCommandError
from ..utils.execution import ExecutionContext
from ..utils.ssh_runner import SSHRunner, shq

log = logging.getLogger("cndeploy")

FSTAB_PATH = "/etc/fstab"
SYSCTL_CONF_PATH = "/etc/sysctl.d/99-cndeploy.conf"
BLOCK_MARKER = "# {mark} CNDEPLOY MANAGED BLOCK"
# printed when the path is missing; a non-zero exit is always an error
ABSENT_MARKER = "__CNDEPLOY_ABSENT__"


@dataclass(frozen=True)
class FileStat:
    exists: bool
    size_bytes: int = 0


@dataclass(frozen=True)
class QueryResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""


@dataclass(frozen=True)
class CommandResult:
    rc: int
    stdout: str = ""
    stderr: str = ""
    changed: bool = True

    @property
    def ok(self) -> bool:
        return self.rc == 0


def _fstab_source(line: str) -> Optional[str]:
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    return stripped.split()[0]


def has_fstab_entry(content: str, src: str) -> bool:
    return any(_fstab_source(ln) == src for ln in content.splitlines())


class HostOps:
    """
    OS primitives on one remote host. Every mutating call goes through
    `run_command` or `put_content`, which honour `ctx.dry_run`.
    """

    def __init__(
        self,
        runner: SSHRunner,
        *,
        hostname: str,
        ctx: Optional[ExecutionContext] = None,
    ):
        self.runner = runner
        self.hostname = hostname
        self.ctx = ctx or ExecutionContext()

    # ------------------ queries ------------------

    def shell_query(self, cmd: str) -> QueryResult:
        """Run a read-only command. Non-zero exit is a result, not an error."""
        rc, out, err = self.runner.run(cmd, sudo=self.ctx.sudo)
        return QueryResult(exit_code=rc, stdout=out, stderr=err)

    def _if_exists(self, path: str, then: str) -> Optional[str]:
        """
        Run `then` when `path` exists and return its stdout, or None when
        the path is missing. Any non-zero exit raises SSHCommandError.
        """
        cmd = f"if [ -e {shq(path)} ]; then {then}; else echo {ABSENT_MARKER}; fi"
        rc, out, err = self.runner.run(cmd, sudo=self.ctx.sudo)
        if rc != 0:
            raise SSHCommandError(cmd, rc, err)
        if out.strip() == ABSENT_MARKER:
            return None
        return out

    def path_exists(self, path: str) -> bool:
        return self._if_exists(path, "true") is not None

    def stat_file(self, path: str) -> FileStat:
        cmd = f"stat -c %s {shq(path)}"
        out = self._if_exists(path, cmd)
        if out is None:
            return FileStat(exists=False)
        try:
            return FileStat(exists=True, size_bytes=int(out.strip()))
        except ValueError:
            raise SSHCommandError(cmd, 0, f"unexpected stat output: {out!r}")

    def read_file(self, path: str) -> Optional[str]:
        """Return the file content, or None when it does not exist."""
        return self._if_exists(path, f"cat {shq(path)}")

    # ------------------ mutations ------------------

    def run_command(self, cmd: str) -> CommandResult:
        if self.ctx.dry_run:
            log.info("[%s] (dry-run) would run: %s", self.hostname, cmd)
            return CommandResult(rc=0)
        rc, out, err = self.runner.run(cmd, sudo=self.ctx.sudo)
        return CommandResult(rc=rc, stdout=out, stderr=err)

    def put_content(
        self,
        content: str,
        path: str,
        *,
        mode: int = 0o644,
        owner: str = "root:root",
    ) -> CommandResult:
        """Write `content` to `path` unless it is already there."""
        if self.read_file(path) == content:
            return CommandResult(rc=0, changed=False)
        if self.ctx.dry_run:
            log.info("[%s] (dry-run) would write %s", self.hostname, path)
            return CommandResult(rc=0)
        rc, out, err = self.runner.put_text(content, path, mode=mode, owner=owner, sudo=self.ctx.sudo)
        return CommandResult(rc=rc, stdout=out, stderr=err)

    def set_file_permissions(self, path: str, mode: int) -> CommandResult:
        """chmod `path` unless it already has `mode`."""
        rc, out, _ = self.runner.run(f"stat -c %a {shq(path)}", sudo=self.ctx.sudo)
        if rc == 0 and out.strip().isdigit() and int(out.strip(), 8) == mode:
            return CommandResult(rc=0, changed=False)
        return self.run_command(f"chmod {oct(mode)[2:]} {shq(path)}")

    def delete_file(self, path: str) -> CommandResult:
        return self.run_command(f"rm -f {shq(path)}")

    def replace_line(self, path: str, regexp: str, line: str, *, mode: int = 0o644) -> CommandResult:
        """
        Replace the last line matching `regexp` with `line`, or append `line`
        when nothing matches.
        """
        lines = (self.read_file(path) or "").splitlines()
        pattern = re.compile(regexp)
        matches = [i for i, ln in enumerate(lines) if pattern.search(ln)]
        if matches:
            lines[matches[-1]] = line
        else:
            lines.append(line)
        return self.put_content("\n".join(lines) + "\n", path, mode=mode)

    def upsert_block(self, path: str, block: str, *, mode: int = 0o644) -> CommandResult:
        """
        Insert or update a marker-delimited block at the end of `path`.
        """
        begin = BLOCK_MARKER.format(mark="BEGIN")
        end = BLOCK_MARKER.format(mark="END")
        lines = (self.read_file(path) or "").splitlines()

        new_block = [begin] + block.rstrip("\n").splitlines() + [end]
        if begin in lines and end in lines[lines.index(begin):]:
            start = lines.index(begin)
            stop = lines.index(end, start)
            lines[start:stop + 1] = new_block
        else:
            lines.extend(new_block)
        return self.put_content("\n".join(lines) + "\n", path, mode=mode)

    def upsert_fstab_entry(self, src: str, *, fstype: str = "swap", opts: str = "sw") -> CommandResult:
        entry = f"{src} none {fstype} {opts} 0 0"
        content = self.read_file(FSTAB_PATH) or ""
        lines: List[str] = []
        placed = False
        for ln in content.splitlines():
            if _fstab_source(ln) != src:
                lines.append(ln)
            elif not placed:
                lines.append(entry)
                placed = True
        if not placed:
            lines.append(entry)
        return self.put_content("\n".join(lines) + "\n", FSTAB_PATH)

    def remove_fstab_entry(self, src: str) -> CommandResult:
        content = self.read_file(FSTAB_PATH) or ""
        if not has_fstab_entry(content, src):
            return CommandResult(rc=0, changed=False)
        kept = [ln for ln in content.splitlines() if _fstab_source(ln) != src]
        return self.put_content("\n".join(kept) + "\n", FSTAB_PATH)

    def set_sysctl(self, name: str, value) -> CommandResult:
        """Apply a kernel tunable now and persist it for the next boot."""
        res = self.run_command(f"sysctl -w {shq(f'{name}={value}')}")
        if not res.ok:
            return res
        return self.replace_line(
            SYSCTL_CONF_PATH,
            rf"^\s*{re.escape(name)}\s*=",
            f"{name} = {value}",
        )
