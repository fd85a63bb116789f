# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cndeploy/bootstrap/os_tweaks.py

from __future__ import annotations

import logging
import textwrap
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from ..config.models import HostSpec, OsTweaksConfig
from ..errors import CndeployError, StepError
from ..firewall.backends import configure_firewall, select_backend
from ..host.facts import HostFacts, gather_facts
from ..host.ops import HostOps
from ..observers.dispatcher import EventBus
from ..observers.events import (
    HostStarted,
    HostSummary,
    StepFailed,
    StepSkipped,
    StepStarted,
    StepSucceeded,
    new_ctx,
)
from ..swap.models import ReconcileReport
from ..swap.reconciler import SwapReconciler
from ..utils.execution import ExecutionContext
from ..utils.ssh import open_ssh
from ..utils.ssh_runner import SSHRunner, shq

log = logging.getLogger("cndeploy")

SSHD_DROPIN_PATH = "/etc/ssh/sshd_config.d/05-ssh-secured.conf"
SSHD_HARDENING = textwrap.dedent("""\
    PermitRootLogin prohibit-password
    PubkeyAuthentication yes
    PasswordAuthentication no
    PermitEmptyPasswords no
    ChallengeResponseAuthentication no
    UsePAM yes
    X11Forwarding yes
""")

ALLOWHOSTNAME_URL = "https://raw.githubusercontent.com/jmhoms/allow-hostname/master/allow-hostname.bash"
ALLOWHOSTNAME_PATH = "/usr/local/bin/allow-hostname.bash"
ALLOWHOSTNAME_CRON_PATH = "/etc/cron.d/allow-hostname"
ALLOWHOSTNAME_CRON = (
    f"*/5 * * * * root {ALLOWHOSTNAME_PATH} 2>&1 | logger -t allow-hostname\n"
)

# handlers run once, after all steps of a host succeeded
HANDLER_RESTART_SSH = "restart-ssh"


@dataclass
class HostRunResult:
    hostname: str
    facts: Optional[HostFacts] = None
    changed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    swap: Optional[ReconcileReport] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class OsTweaksBootstrapper:
    """
    Prepares hosts for a blockchain node:
      - hostname          (hostnamectl)
      - hosts             (managed block in /etc/hosts)
      - ssh               (sshd drop-in, restart when changed)
      - allowhostname     (cron helper that opens the firewall to a DNS name, Debian only)
      - firewall          (ufw / firewalld / iptables, first found)
      - swap              (swap file reconciliation)
    Hosts are handled one after the other; a failing host does not stop the
    others.
    """

    def __init__(
        self,
        *,
        ctx: Optional[ExecutionContext] = None,
        bus: Optional[EventBus] = None,
        env: str = "dev",
        run_id: Optional[str] = None,
        ssh_client_ip: Optional[str] = None,
        connect: Callable[[HostSpec], SSHRunner] = open_ssh,
    ):
        self.ctx = ctx or ExecutionContext()
        self.bus = bus or EventBus()
        self.env = env
        self.run_id = run_id or str(uuid.uuid4())
        self.ssh_client_ip = ssh_client_ip
        self.connect = connect
        self._pending: List[str] = []
        self._swap_report: Optional[ReconcileReport] = None

    # ------------------ steps ------------------

    def step_hostname(self, ops: HostOps, facts: HostFacts, cfg: OsTweaksConfig) -> bool:
        rc, out, _ = ops.runner.run("hostname", sudo=False)
        if rc == 0 and out.strip() == cfg.hostname:
            return False
        res = ops.run_command(f"hostnamectl set-hostname {shq(cfg.hostname)}")
        if not res.ok:
            raise StepError(f"cannot set hostname to {cfg.hostname}: {res.stderr.strip()}")
        return True

    def step_hosts(self, ops: HostOps, facts: HostFacts, cfg: OsTweaksConfig) -> bool:
        res = ops.upsert_block("/etc/hosts", cfg.hosts)
        if not res.ok:
            raise StepError(f"cannot update /etc/hosts: {res.stderr.strip()}")
        return res.changed

    def step_ssh(self, ops: HostOps, facts: HostFacts, cfg: OsTweaksConfig) -> bool:
        res = ops.put_content(SSHD_HARDENING, SSHD_DROPIN_PATH, mode=0o644)
        if not res.ok:
            raise StepError(f"cannot write {SSHD_DROPIN_PATH}: {res.stderr.strip()}")
        if res.changed:
            self._notify(HANDLER_RESTART_SSH)
        return res.changed

    def step_allowhostname(self, ops: HostOps, facts: HostFacts, cfg: OsTweaksConfig) -> bool:
        changed = False
        # download only once, later runs keep the local copy
        if not ops.path_exists(ALLOWHOSTNAME_PATH):
            res = ops.run_command(
                f"curl -fsSL -o {shq(ALLOWHOSTNAME_PATH)} {shq(ALLOWHOSTNAME_URL)}"
                f" && chmod 700 {shq(ALLOWHOSTNAME_PATH)}"
            )
            if not res.ok:
                raise StepError(f"cannot download allow-hostname script: {res.stderr.strip()}")
            changed = True

        for regexp, line in (
            (r"^HOSTNAME=", f"HOSTNAME={cfg.allowhostname}"),
            (r"^UFWMODE=", "UFWMODE=yes"),
        ):
            res = ops.replace_line(ALLOWHOSTNAME_PATH, regexp, line, mode=0o700)
            if not res.ok:
                raise StepError(f"cannot configure {ALLOWHOSTNAME_PATH}: {res.stderr.strip()}")
            changed = changed or res.changed

        res = ops.put_content(ALLOWHOSTNAME_CRON, ALLOWHOSTNAME_CRON_PATH, mode=0o644)
        if not res.ok:
            raise StepError(f"cannot write {ALLOWHOSTNAME_CRON_PATH}: {res.stderr.strip()}")
        return changed or res.changed

    def step_firewall(self, ops: HostOps, facts: HostFacts, cfg: OsTweaksConfig) -> bool:
        backend = select_backend(ops)
        if backend is None:
            return False
        applied = configure_firewall(backend, cfg, bus=self.bus, run_ctx=self._ctx(ops.hostname))
        log.info("[%s] firewall rules (%s): %s", ops.hostname, backend.name, applied or "none")
        return bool(applied)

    def step_swap(self, ops: HostOps, facts: HostFacts, cfg: OsTweaksConfig) -> bool:
        reconciler = SwapReconciler(ops, bus=self.bus, run_ctx=self._ctx(ops.hostname))
        self._swap_report = reconciler.run(cfg.desired_swap())
        return self._swap_report.changed

    # ------------------ handlers ------------------

    def handler_restart_ssh(self, ops: HostOps, facts: HostFacts) -> None:
        service = "ssh" if facts.os_family == "Debian" else "sshd"
        res = ops.run_command("sshd -t")
        if not res.ok:
            raise StepError(f"sshd config check failed, not restarting: {res.stderr.strip()}")
        res = ops.run_command(f"systemctl restart {service}")
        if not res.ok:
            raise StepError(f"cannot restart {service}: {res.stderr.strip()}")

    # ------------------ plumbing ------------------

    def _ctx(self, hostname: str) -> dict:
        return new_ctx(env=self.env, context=hostname, run_id=self.run_id)

    def _notify(self, handler: str) -> None:
        if handler not in self._pending:
            self._pending.append(handler)

    def _plan_steps(
        self, facts: HostFacts, cfg: OsTweaksConfig
    ) -> List[Tuple[str, Optional[str], Callable]]:
        """(name, skip reason or None, step) in execution order."""
        return [
            ("hostname",
             None if cfg.hostname_change and cfg.hostname else "hostname_change is off",
             self.step_hostname),
            ("hosts",
             None if cfg.hosts_change and cfg.hosts is not None else "hosts_change is off",
             self.step_hosts),
            ("ssh",
             ("ssh_restrict is off" if not cfg.ssh_restrict
              else "connected as root" if facts.is_root else None),
             self.step_ssh),
            ("allowhostname",
             ("allowhostname_enabled is off" if not (cfg.allowhostname_enabled and cfg.allowhostname)
              else f"os family {facts.os_family} is not Debian" if facts.os_family != "Debian" else None),
             self.step_allowhostname),
            ("firewall",
             None if cfg.firewall_enabled else "firewall_enabled is off",
             self.step_firewall),
            ("swap",
             None if cfg.swap_configure else "swap_configure is off",
             self.step_swap),
        ]

    def run_host(self, ops: HostOps, cfg: OsTweaksConfig) -> HostRunResult:
        """
        Run every enabled step on an already connected host. The first
        failing step aborts the host; pending handlers are not run then.
        """
        self._pending = []
        self._swap_report = None
        ctx = self._ctx(ops.hostname)
        result = HostRunResult(hostname=ops.hostname)

        try:
            facts = gather_facts(ops, ssh_client_ip=self.ssh_client_ip)
            result.facts = facts

            for name, skip_reason, step in self._plan_steps(facts, cfg):
                if skip_reason:
                    log.debug("[%s] skipping %s: %s", ops.hostname, name, skip_reason)
                    result.skipped.append(name)
                    self.bus.emit(StepSkipped(step=name, reason=skip_reason, **ctx))
                    continue

                log.info("[%s] running %s...", ops.hostname, name)
                self.bus.emit(StepStarted(step=name, **ctx))
                t0 = time.time()
                try:
                    changed = step(ops, facts, cfg)
                except Exception as e:
                    self.bus.emit(StepFailed(step=name, error=str(e), **ctx))
                    raise
                duration_ms = int((time.time() - t0) * 1000)
                if changed:
                    result.changed.append(name)
                self.bus.emit(StepSucceeded(step=name, changed=bool(changed), duration_ms=duration_ms, **ctx))

            if HANDLER_RESTART_SSH in self._pending:
                log.info("[%s] restarting SSH service...", ops.hostname)
                self.handler_restart_ssh(ops, facts)

        except Exception as e:
            self.bus.emit(HostSummary(hostname=ops.hostname, status="FAILED", changed=result.changed, error=str(e), **ctx))
            raise

        result.swap = self._swap_report
        self.bus.emit(HostSummary(hostname=ops.hostname, status="OK", changed=result.changed, **ctx))
        log.info("[%s] OS tweaks complete (changed: %s)", ops.hostname, ", ".join(result.changed) or "nothing")
        return result

    # ------------------ public API ------------------

    def bootstrap(self, hosts: List[HostSpec], cfg: OsTweaksConfig) -> List[HostRunResult]:
        """
        Connect to each host and apply the role. A host that fails is
        recorded with its error and the remaining hosts still run.
        """
        results: List[HostRunResult] = []
        for i, host in enumerate(hosts, 1):
            log.info("[hosts] Preparing %s (%d/%d)...", host.hostname, i, len(hosts))
            ctx = self._ctx(host.hostname)
            self.bus.emit(HostStarted(hostname=host.hostname, address=host.address, **ctx))
            try:
                runner = self.connect(host)
            except CndeployError as e:
                log.error("[%s] cannot connect: %s", host.hostname, e)
                self.bus.emit(HostSummary(hostname=host.hostname, status="FAILED", changed=[], error=str(e), **ctx))
                results.append(HostRunResult(hostname=host.hostname, error=str(e)))
                continue
            try:
                ops = HostOps(runner, hostname=host.hostname, ctx=self.ctx)
                results.append(self.run_host(ops, cfg))
            except CndeployError as e:
                log.error("[%s] OS tweaks failed: %s", host.hostname, e)
                results.append(HostRunResult(hostname=host.hostname, error=str(e)))
            finally:
                runner.close()
        return results
