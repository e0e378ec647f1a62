# SPDX-FileCopyrightText: 2025 shadowshare contributors
# SPDX-License-Identifier: MIT

"""Error taxonomy shared by the sharing core and the distribution roles."""

from __future__ import annotations


class ShareError(Exception):
    """Base class for failures of the sharing primitives."""


class DivisionByZero(ShareError, ZeroDivisionError):
    """Raised when a GF(256) division has a zero divisor.

    During reconstruction this means two shares carried the same index.
    """


class MalformedShare(ShareError, ValueError):
    """Raised when share text or a share payload cannot be used."""


class EmptySecret(ShareError, ValueError):
    """Raised when there is nothing to split."""


class InvalidParameters(ShareError, ValueError):
    """Raised when ``n``/``k`` fall outside ``2 <= k <= n <= 255``."""


class InsufficientShares(ShareError, ValueError):
    """Raised when fewer shares than required are supplied."""


class DuplicateShareIndex(ShareError, ValueError):
    """Raised when two shares in one set carry the same index."""


class ProtocolError(ValueError):
    """Raised when a wire message cannot be decoded."""


class TransportError(RuntimeError):
    """Raised when a peer connection cannot carry a message."""


__all__ = [
    "DivisionByZero",
    "DuplicateShareIndex",
    "EmptySecret",
    "InsufficientShares",
    "InvalidParameters",
    "MalformedShare",
    "ProtocolError",
    "ShareError",
    "TransportError",
]
