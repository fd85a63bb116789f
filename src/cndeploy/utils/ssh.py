# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging

import paramiko

from cndeploy.config.models import HostSpec
from cndeploy.errors import CndeployError
from cndeploy.utils.retry import retry
from cndeploy.utils.ssh_runner import SSHRunner

log = logging.getLogger("cndeploy")


def _load_pkey(key_path: str):
    for key_cls in (
        paramiko.RSAKey,
        paramiko.Ed25519Key,
        paramiko.ECDSAKey,
    ):
        try:
            return key_cls.from_private_key_file(key_path)
        except paramiko.SSHException:
            continue
    raise paramiko.SSHException(f"Unsupported private key format for {key_path}")


def connect(host: HostSpec, *, connect_timeout: float = 20.0) -> paramiko.SSHClient:
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    pkey = _load_pkey(str(host.pkey_path)) if host.pkey_path else None

    client.connect(
        hostname=host.address,
        port=host.port,
        username=host.username,
        password=host.password if not pkey else None,
        pkey=pkey,
        timeout=connect_timeout,
        allow_agent=pkey is None,
        look_for_keys=pkey is None,
    )
    return client


def open_ssh(
    host: HostSpec,
    *,
    connect_timeout: float = 20.0,
    attempts: int = 5,
    delay: float = 10.0,
) -> SSHRunner:
    """
    Connect to `host`, retrying while the node is not reachable yet.
    """

    def _log_retry(attempt: int, exc: Exception) -> None:
        log.info(
            "[%s] SSH not ready (attempt %d/%d, %s: %s)",
            host.hostname, attempt, attempts, type(exc).__name__, exc,
        )

    @retry(
        retries=attempts,
        delay=delay,
        backoff=1.5,
        max_delay=60.0,
        retry_on=(paramiko.SSHException, OSError),
        on_retry=_log_retry,
    )
    def _connect() -> paramiko.SSHClient:
        try:
            return connect(host, connect_timeout=connect_timeout)
        except paramiko.AuthenticationException as e:
            # not retried
            raise CndeployError(f"[{host.hostname}] SSH authentication failed for {host.username}: {e}") from e

    return SSHRunner(_connect(), become_password=host.become_password)
