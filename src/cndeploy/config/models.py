# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cndeploy/config/models.py

from __future__ import annotations

import re
from ipaddress import IPv4Address
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from cndeploy.swap.models import DesiredSwapConfig

HOSTNAME_RE = re.compile(r"^[a-zA-Z0-9_.-]{1,253}$")


class HostSpec(BaseModel):
    """
    A server to prepare over SSH.
    """
    hostname: str                 # inventory name, used in logs
    address: str                  # IP or DNS to connect
    username: str = "root"
    port: int = 22
    password: Optional[str] = None
    pkey_path: Optional[Path] = None
    become_password: Optional[str] = None     # fed to sudo -S


class OsTweaksConfig(BaseModel):
    """
    Variables of the OS preparation role. Each step is off unless its flag
    is set.
    """
    # hostname / hosts
    hostname_change: bool = False
    hostname: Optional[str] = None
    hosts_change: bool = False
    hosts: Optional[str] = None

    # ssh
    ssh_restrict: bool = False

    # allow-hostname helper
    allowhostname_enabled: bool = False
    allowhostname: Optional[str] = None

    # firewall
    firewall_enabled: bool = False
    node_type: Literal["relay", "bp"] = "relay"
    node_port: int = 6000
    relay_nodes_ip: List[IPv4Address] = Field(default_factory=list)
    management_ip: List[IPv4Address] = Field(default_factory=list)

    # swap
    swap_configure: bool = False
    swap_enable: bool = False
    swap_file_path: str = "/swapfile"
    swap_file_size_mb: int = 2048
    swappiness: int = 10

    @field_validator("node_type", mode="before")
    @classmethod
    def _lower_node_type(cls, v):
        if isinstance(v, str):
            v = v.lower()
        if v not in ("relay", "bp"):
            raise ValueError('Valid type values are "relay" and "bp".')
        return v

    @field_validator("node_port", "swap_file_size_mb", "swappiness", mode="before")
    @classmethod
    def _strict_int(cls, v, info):
        # bools are ints in Python, "6000" is not an integer in YAML either
        if isinstance(v, bool) or not isinstance(v, int):
            raise ValueError(f"{info.field_name} must be an integer")
        return v

    @field_validator("node_port")
    @classmethod
    def _port_range(cls, v: int) -> int:
        if not 1 <= v <= 65535:
            raise ValueError("port must be an integer between 1 and 65535.")
        return v

    @field_validator("swap_file_path")
    @classmethod
    def _absolute_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("swap_file_path must be an absolute path.")
        return v

    @model_validator(mode="after")
    def _check_enabled_steps(self) -> "OsTweaksConfig":
        if self.hostname_change:
            if not self.hostname or not HOSTNAME_RE.fullmatch(self.hostname):
                raise ValueError(
                    "hostname must be a string formed by up to 253 characters, "
                    "(a to z, A to Z, 0 to 9, _, -, .)"
                )
        if self.allowhostname_enabled and not self.allowhostname:
            raise ValueError("allowhostname must be defined and resolve to an IPv4 address.")
        if self.swap_configure and self.swap_enable:
            if self.swap_file_size_mb < 1:
                raise ValueError("swap_file_size_mb must be an integer greater than 1.")
            if not 0 <= self.swappiness <= 100:
                raise ValueError("swappiness must be a number between 0 and 100.")
        return self

    def desired_swap(self) -> DesiredSwapConfig:
        return DesiredSwapConfig(
            enabled=self.swap_enable,
            path=self.swap_file_path,
            size_mb=self.swap_file_size_mb,
            swappiness=self.swappiness,
        )


class DeployConfig(BaseModel):
    environment: Literal["dev", "staging", "prod"] = "dev"
    hosts: List[HostSpec] = Field(default_factory=list)
    tweaks: OsTweaksConfig = Field(default_factory=OsTweaksConfig)
    ssh_client_ip: Optional[str] = None     # overrides $SSH_CLIENT detection

    def by_name(self) -> dict:
        return {h.hostname: h for h in self.hosts}
