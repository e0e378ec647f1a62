# SPDX-FileCopyrightText: 2025 shadowshare contributors
# SPDX-License-Identifier: MIT

"""Rendezvous topics derived from human-chosen session names."""

from __future__ import annotations

import hashlib

from shadowshare.policy import policy

NAMESPACE = "shadowshare"
TOPIC_SIZE = 32


def derive_topic(session: str, *, suffix: str | None = None) -> bytes:
    """Return the 32-byte BLAKE2b digest of ``shadowshare:session:<name>:<suffix>``.

    Processes using the same session name and suffix arrive at the same topic
    without exchanging anything beforehand.
    """
    if suffix is None:
        suffix = policy.topic_suffix
    seed = f"{NAMESPACE}:session:{session}:{suffix}".encode("utf-8")
    return hashlib.blake2b(seed, digest_size=TOPIC_SIZE).digest()


def topic_hex(session: str, *, suffix: str | None = None) -> str:
    return derive_topic(session, suffix=suffix).hex()


__all__ = ["NAMESPACE", "TOPIC_SIZE", "derive_topic", "topic_hex"]
