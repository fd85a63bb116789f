# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cndeploy/config/loader.py

import logging
import os
import socket
from pathlib import Path
from typing import Callable

import yaml
from pydantic import ValidationError

from cndeploy.errors import ConfigError
from .models import DeployConfig, OsTweaksConfig

log = logging.getLogger("cndeploy")


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _find_secrets_file(config_path: Path) -> Path | None:
    """
    Locate secrets.yaml using this priority:

    1. CNDEPLOY_SECRETS_FILE environment variable (explicit override)
    2. secrets.yaml in the same directory as the config
    """
    env = os.environ.get("CNDEPLOY_SECRETS_FILE")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("CNDEPLOY_SECRETS_FILE=%s does not exist, skipping", env)
        return None

    p = config_path.parent / "secrets.yaml"
    if p.is_file():
        return p

    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    try:
        data = yaml.safe_load(expanded) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"{path}: invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def load_config(path: str | Path) -> DeployConfig:
    """
    Load and validate a deploy config.

    Secrets (SSH passwords, sudo passwords) can live in a ``secrets.yaml``
    with the same structure; it is deep-merged before validation. Discovery:
      1. ``CNDEPLOY_SECRETS_FILE`` env var
      2. ``secrets.yaml`` next to the config file

    ``${ENV_VAR}`` placeholders are expanded in both files.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"config file not found: {path}")
    data = _load_yaml(path)

    secrets_path = _find_secrets_file(path)
    if secrets_path:
        log.debug("Merging secrets from %s", secrets_path)
        _deep_merge(data, _load_yaml(secrets_path))
    else:
        log.debug("No secrets.yaml found, proceeding without secrets merge")

    try:
        return DeployConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid value -> {e}") from e


def validate_tweaks(
    cfg: OsTweaksConfig,
    resolver: Callable[[str], str] = socket.gethostbyname,
) -> None:
    """
    Checks that need the outside world. Raises ConfigError.
    """
    if cfg.allowhostname_enabled:
        try:
            addr = resolver(cfg.allowhostname)
        except OSError as e:
            raise ConfigError(
                f"Invalid value -> allowhostname {cfg.allowhostname!r} must resolve to an IPv4 address: {e}"
            ) from e
        log.debug("allowhostname %s resolves to %s", cfg.allowhostname, addr)
