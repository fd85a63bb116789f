# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cndeploy/firewall/backends.py

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from ..config.models import OsTweaksConfig
from ..errors import StepError
from ..host.ops import HostOps
from ..observers.dispatcher import EventBus
from ..observers.events import FirewallBackendSelected, FirewallRuleApplied, new_ctx
from ..utils.ssh_runner import shq

log = logging.getLogger("cndeploy")

SSH_PORT = 22


class FirewallBackend(Protocol):
    name: str

    def allow_port(self, port: int, proto: str = "tcp", source: Optional[str] = None) -> bool: ...

    def enable_default_deny(self) -> bool: ...


class _CommandBackend:
    name = "base"

    def __init__(self, ops: HostOps):
        self.ops = ops

    def _must(self, cmd: str) -> None:
        res = self.ops.run_command(cmd)
        if not res.ok:
            raise StepError(f"{self.name}: {cmd} failed (rc={res.rc}): {(res.stderr or res.stdout).strip()}")


class UfwBackend(_CommandBackend):
    name = "ufw"
    binary = "/usr/sbin/ufw"

    def allow_port(self, port: int, proto: str = "tcp", source: Optional[str] = None) -> bool:
        if source:
            self._must(f"ufw allow proto {proto} from {shq(source)} to any port {int(port)}")
        else:
            self._must(f"ufw allow {int(port)}/{proto}")
        return True

    def enable_default_deny(self) -> bool:
        self._must("ufw logging on")
        self._must("ufw default deny incoming")
        self._must("ufw --force enable")
        return True


class FirewalldBackend(_CommandBackend):
    name = "firewalld"
    binary = "/usr/sbin/firewalld"

    def allow_port(self, port: int, proto: str = "tcp", source: Optional[str] = None) -> bool:
        if source:
            rule = (
                f'rule family="ipv4" source address="{source}" '
                f'port port="{int(port)}" protocol="{proto}" accept'
            )
            self._must(f"firewall-cmd --permanent --add-rich-rule={shq(rule)}")
        else:
            self._must(f"firewall-cmd --permanent --add-port={int(port)}/{proto}")
        return True

    def enable_default_deny(self) -> bool:
        # firewalld zones already drop what is not allowed
        self._must("firewall-cmd --reload")
        return True


class IptablesBackend(_CommandBackend):
    """
    iptables is detected but not managed: rules would not survive a reboot
    without a distro specific persistence service.
    """
    name = "iptables"
    binary = "/usr/sbin/iptables"

    def allow_port(self, port: int, proto: str = "tcp", source: Optional[str] = None) -> bool:
        return False

    def enable_default_deny(self) -> bool:
        log.warning(
            "[%s] iptables is the only known firewall available on the host, "
            "but it can't be set up as it is not yet supported",
            self.ops.hostname,
        )
        return False


BACKENDS = (UfwBackend, FirewalldBackend, IptablesBackend)


def select_backend(ops: HostOps) -> Optional[_CommandBackend]:
    """
    Probe once for the available firewalls; the first one found wins.
    """
    for cls in BACKENDS:
        if ops.path_exists(cls.binary):
            log.info("[%s] firewall backend: %s", ops.hostname, cls.name)
            return cls(ops)
    log.warning("[%s] no supported firewall found (ufw, firewalld, iptables)", ops.hostname)
    return None


def configure_firewall(
    backend: FirewallBackend,
    cfg: OsTweaksConfig,
    bus: Optional[EventBus] = None,
    run_ctx: Optional[dict] = None,
) -> List[str]:
    """
    Open SSH to the management hosts and the node port according to the node
    type, then turn on default deny. Returns the rules applied.
    """
    bus = bus or EventBus()
    ctx = run_ctx or new_ctx(env="dev", context=None)
    bus.emit(FirewallBackendSelected(backend=backend.name, **ctx))

    rules = []
    for ip in cfg.management_ip:
        rules.append((SSH_PORT, str(ip)))
    if cfg.node_type == "relay":
        rules.append((cfg.node_port, None))
    elif cfg.node_type == "bp":
        for ip in cfg.relay_nodes_ip:
            rules.append((cfg.node_port, str(ip)))

    applied: List[str] = []
    for port, source in rules:
        if backend.allow_port(port, "tcp", source):
            applied.append(f"{port}/tcp from {source or 'any'}")
            bus.emit(FirewallRuleApplied(backend=backend.name, port=port, proto="tcp", source=source, **ctx))

    backend.enable_default_deny()
    return applied
