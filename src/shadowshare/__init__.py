# SPDX-FileCopyrightText: 2025 shadowshare contributors
# SPDX-License-Identifier: MIT

"""K-of-N threshold secret sharing over GF(256) with peer distribution."""

from __future__ import annotations

from shadowshare.codec import decode, encode
from shadowshare.shamir import Share, combine, reconstruct, split, validate
from shadowshare.topic import derive_topic

__version__ = "0.1.0"

__all__ = [
    "Share",
    "combine",
    "decode",
    "derive_topic",
    "encode",
    "reconstruct",
    "split",
    "validate",
]
