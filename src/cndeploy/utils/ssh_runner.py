# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cndeploy/utils/ssh_runner.py

from __future__ import annotations

import itertools
import logging
import os
from typing import Optional

import paramiko

log = logging.getLogger("cndeploy")

_counter = itertools.count(1)


def shq(s: str) -> str:
    """
    Quote for bash -c.
    """
    return "'" + str(s).replace("'", "'\"'\"'") + "'"


class SSHRunner:
    def __init__(
        self,
        client: paramiko.SSHClient,
        *,
        become_password: Optional[str] = None,
        cmd_timeout: Optional[float] = 120.0,
    ):
        self.client = client
        self.become_password = become_password
        self.cmd_timeout = cmd_timeout

    def run(
        self,
        cmd: str,
        *,
        sudo: bool = False,
        timeout: Optional[float] = None,
    ) -> tuple[int, str, str]:
        if sudo:
            final = f"sudo -S -H bash -c {shq(cmd)}"
        else:
            final = f"bash -c {shq(cmd)}"

        log.debug("$ %s", final)
        stdin, stdout, stderr = self.client.exec_command(final, timeout=timeout or self.cmd_timeout)
        if sudo and self.become_password:
            stdin.write(self.become_password + "\n")
        stdin.flush()
        out = stdout.read().decode("utf-8", errors="replace")
        err = stderr.read().decode("utf-8", errors="replace")
        rc = stdout.channel.recv_exit_status()
        log.debug("[exit %s] %s", rc, out.strip())
        return rc, out, err

    def put_text(
        self,
        content: str,
        remote_path: str,
        *,
        mode: int = 0o644,
        owner: str = "root:root",
        sudo: bool = True,
    ) -> tuple[int, str, str]:
        """
        Upload content to a temp path then install it with sudo so root-owned
        targets keep their ownership and mode.
        """
        tmp = f"/tmp/.cndeploy_tmp_{os.getpid()}_{next(_counter)}"
        sftp = self.client.open_sftp()
        try:
            with sftp.open(tmp, "w") as f:
                f.write(content)
        finally:
            sftp.close()

        user, _, group = owner.partition(":")
        cmd = (
            f"install -m {oct(mode)[2:]} -o {shq(user)} -g {shq(group or user)} "
            f"{shq(tmp)} {shq(remote_path)}; rc=$?; rm -f {shq(tmp)}; exit $rc"
        )
        return self.run(cmd, sudo=sudo)

    def close(self) -> None:
        self.client.close()
