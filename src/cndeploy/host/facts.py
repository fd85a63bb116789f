# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cndeploy/host/facts.py

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from typing import Dict, Optional

from .ops import HostOps

log = logging.getLogger("cndeploy")

# ID / ID_LIKE values from /etc/os-release -> family
_FAMILIES = {
    "debian": "Debian",
    "ubuntu": "Debian",
    "rhel": "RedHat",
    "fedora": "RedHat",
    "centos": "RedHat",
    "rocky": "RedHat",
    "almalinux": "RedHat",
    "suse": "Suse",
    "opensuse": "Suse",
    "arch": "Archlinux",
    "alpine": "Alpine",
}


@dataclass(frozen=True)
class HostFacts:
    """
    What we know about the target host. Built once per host and passed to
    every step that needs it.
    """
    os_family: str = "unknown"
    distribution: str = "unknown"
    distribution_version: str = "unknown"
    user_id: str = "unknown"
    ssh_client_ip: Optional[str] = None     # the controller ("master") address

    @property
    def is_root(self) -> bool:
        return self.user_id == "root"


def parse_os_release(content: str) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        try:
            parts = shlex.split(value)
        except ValueError:
            parts = [value]
        out[key.strip()] = parts[0] if parts else ""
    return out


def os_family(release: Dict[str, str]) -> str:
    candidates = [release.get("ID", "")] + release.get("ID_LIKE", "").split()
    for c in candidates:
        fam = _FAMILIES.get(c.lower())
        if fam:
            return fam
    return "unknown"


def gather_facts(ops: HostOps, ssh_client_ip: Optional[str] = None) -> HostFacts:
    """
    Read OS release, connected user and SSH client address from the host.
    `id -un` and `$SSH_CLIENT` are read without sudo, as the login user.
    """
    release: Dict[str, str] = {}
    rc, out, _ = ops.runner.run("cat /etc/os-release", sudo=False)
    if rc == 0:
        release = parse_os_release(out)
    else:
        log.warning("[%s] /etc/os-release not readable, OS family unknown", ops.hostname)

    rc, out, _ = ops.runner.run("id -un", sudo=False)
    user_id = out.strip() if rc == 0 and out.strip() else "unknown"

    if ssh_client_ip is None:
        rc, out, _ = ops.runner.run('echo "$SSH_CLIENT"', sudo=False)
        fields = out.split()
        ssh_client_ip = fields[0] if rc == 0 and fields else None

    facts = HostFacts(
        os_family=os_family(release),
        distribution=release.get("NAME", "unknown"),
        distribution_version=release.get("VERSION_ID", "unknown"),
        user_id=user_id,
        ssh_client_ip=ssh_client_ip,
    )
    log.info("[%s] master IP (origin of current connection): %s", ops.hostname, facts.ssh_client_ip)
    log.debug("[%s] facts: %s", ops.hostname, facts)
    return facts
