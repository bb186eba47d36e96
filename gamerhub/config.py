"""
gamerhub.config — YAML Configuration Loader
============================================

Reads ``config.yaml`` for infrastructure settings (identity, port, presence
grace period, notification retention, dispatcher retry policy).  Secrets and
URLs come from the environment (see :mod:`gamerhub.api.deps`).

Usage::

    from gamerhub.config import load_config

    cfg = load_config()                 # reads ./config.yaml by default
    print(cfg.community_name)           # "GamerHub"
    print(cfg.presence_grace_seconds)   # 5.0
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

DEFAULT_CONFIG_PATH = "config.yaml"


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GamerHubConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # API
    api_port: int

    # Presence: seconds a chat user stays online after the last socket closes
    presence_grace_seconds: float = 5.0

    # Notifications
    notification_retention_days: int = 90
    cleanup_interval_minutes: int = 60

    # Real-time delivery
    dispatch_max_attempts: int = 3
    dispatch_retry_delay: float = 1.0
    dispatch_send_timeout: float = 5.0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> GamerHubConfig:
    """Read *path* and return a :class:`GamerHubConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  Defaults to the
        ``GAMERHUB_CONFIG`` env var, then ``config.yaml`` in the current
        working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    if path is None:
        path = os.getenv("GAMERHUB_CONFIG", DEFAULT_CONFIG_PATH)
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return GamerHubConfig(
        community_name=raw["community_name"],
        api_port=int(raw["api_port"]),
        presence_grace_seconds=float(raw.get("presence_grace_seconds", 5)),
        notification_retention_days=int(raw.get("notification_retention_days", 90)),
        cleanup_interval_minutes=int(raw.get("cleanup_interval_minutes", 60)),
        dispatch_max_attempts=int(raw.get("dispatch_max_attempts", 3)),
        dispatch_retry_delay=float(raw.get("dispatch_retry_delay", 1.0)),
        dispatch_send_timeout=float(raw.get("dispatch_send_timeout", 5.0)),
    )
