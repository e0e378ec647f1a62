# SPDX-FileCopyrightText: 2025 shadowshare contributors
# SPDX-License-Identifier: MIT

"""Text form of a share: ``XX:YYYY...`` (hex index, colon, hex payload)."""

from __future__ import annotations

import re

from shadowshare.errors import MalformedShare
from shadowshare.shamir import MAX_SHARES, Share

_INDEX_RE = re.compile(r"[0-9a-fA-F]{1,2}")
_PAYLOAD_RE = re.compile(r"(?:[0-9a-fA-F]{2})+")


def encode(share: Share) -> str:
    return f"{share.x:02x}:{share.y.hex()}"


def decode(text: str) -> Share:
    """Parse share text produced by :func:`encode`.

    Raises :class:`MalformedShare` when the separator is missing, the index is
    not a hex byte in ``1..255`` or the payload is not an even number of hex
    digits.
    """
    index_hex, sep, payload_hex = str(text).strip().partition(":")
    if not sep:
        raise MalformedShare("Share is missing the ':' separator")
    if not _INDEX_RE.fullmatch(index_hex):
        raise MalformedShare(f"Share index {index_hex!r} is not a hex byte")
    index = int(index_hex, 16)
    if not 1 <= index <= MAX_SHARES:
        raise MalformedShare(f"Share index {index} out of range")
    if not _PAYLOAD_RE.fullmatch(payload_hex):
        raise MalformedShare("Share payload must be a non-empty, even-length hex string")
    return Share(x=index, y=bytes.fromhex(payload_hex))


__all__ = ["decode", "encode"]
