# SPDX-FileCopyrightText: 2025 shadowshare contributors
# SPDX-License-Identifier: MIT

"""Centralised runtime configuration.

The policy gathers the sharing defaults and the network and audit tunables so
that the CLI, the roles and the transports share one source of truth. Every
value can be overridden by a ``SHADOWSHARE_*`` environment variable; values
that cannot be parsed fall back to the default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

_FALSE_VALUES = {"0", "false", "no", "off"}


def _load_str(name: str, default: str) -> str:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _load_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _load_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _load_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() not in _FALSE_VALUES


def clamp_parameters(total_shares: int, threshold: int) -> tuple[int, int]:
    """Force ``2 <= threshold <= total_shares <= 255``."""

    total = min(255, max(2, total_shares))
    return total, max(2, min(threshold, total))


@dataclass(frozen=True)
class SharePolicy:
    """Holds runtime tunables for splitting and distribution."""

    total_shares: int = 5
    threshold: int = 3
    session: str = "default"
    topic_suffix: str = "rendezvous-v1"
    host: str = "127.0.0.1"
    port: int = 47311
    handshake_timeout: float = 10.0
    audit_enabled: bool = True
    log_level: str = "INFO"


def load_policy() -> SharePolicy:
    """Load the policy considering environment overrides."""

    total, threshold = clamp_parameters(
        _load_int("SHADOWSHARE_SHARES", 5),
        _load_int("SHADOWSHARE_THRESHOLD", 3),
    )
    return SharePolicy(
        total_shares=total,
        threshold=threshold,
        session=_load_str("SHADOWSHARE_SESSION", "default"),
        topic_suffix=_load_str("SHADOWSHARE_TOPIC_SUFFIX", "rendezvous-v1"),
        host=_load_str("SHADOWSHARE_HOST", "127.0.0.1"),
        port=_load_int("SHADOWSHARE_PORT", 47311),
        handshake_timeout=_load_float("SHADOWSHARE_HANDSHAKE_TIMEOUT", 10.0),
        audit_enabled=_load_bool("SHADOWSHARE_AUDIT", True),
        log_level=_load_str("SHADOWSHARE_LOG_LEVEL", "INFO").upper(),
    )


policy = load_policy()


__all__ = ["SharePolicy", "clamp_parameters", "load_policy", "policy"]
