# SPDX-FileCopyrightText: 2025 shadowshare contributors
# SPDX-License-Identifier: MIT

"""Shamir's Secret Sharing over GF(256), one polynomial per secret byte.

``split``
    Split a byte string into ``n`` shares with a reconstruction threshold of
    ``k``. Every byte position gets its own random polynomial of degree
    ``k - 1`` whose constant term is that byte.

``reconstruct``
    Recover the secret from share points with Lagrange interpolation at
    ``x = 0``. It trusts the caller: fewer than ``k`` shares give a wrong
    answer rather than an error.

``validate`` / ``combine``
    The checked path: verify a share set against a threshold before
    interpolating.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Sequence

from shadowshare import gf256
from shadowshare.errors import (
    DuplicateShareIndex,
    EmptySecret,
    InsufficientShares,
    InvalidParameters,
    MalformedShare,
)

MAX_SHARES = 255


@dataclass(frozen=True)
class Share:
    """One evaluation point: index ``x`` and one payload byte per secret byte."""

    x: int
    y: bytes


def _random_coefficients(count: int, *, reject_zero: bool) -> bytes:
    coeffs = bytearray(secrets.token_bytes(count))
    if reject_zero:
        for i, value in enumerate(coeffs):
            while value == 0:
                value = secrets.token_bytes(1)[0]
            coeffs[i] = value
    return bytes(coeffs)


def split(secret: bytes, n: int, k: int, *, reject_zero: bool = False) -> list[Share]:
    """Split ``secret`` into ``n`` shares with threshold ``k``.

    Coefficients are drawn uniformly from the whole field. With
    ``reject_zero`` a zero draw is resampled instead, which keeps every
    polynomial at full degree but makes the coefficient distribution
    non-uniform (for ``k == 2`` a share byte can then never equal the secret
    byte).
    """
    if not (2 <= k <= n <= MAX_SHARES):
        raise InvalidParameters(f"Invalid n or k: need 2 <= k <= n <= {MAX_SHARES}, got n={n}, k={k}")
    if not secret:
        raise EmptySecret("Secret is empty")

    xs = range(1, n + 1)
    payloads = [bytearray(len(secret)) for _ in xs]
    for pos, byte in enumerate(secret):
        coeffs = bytes([byte]) + _random_coefficients(k - 1, reject_zero=reject_zero)
        for payload, x in zip(payloads, xs):
            payload[pos] = gf256.evaluate(coeffs, x)
    return [Share(x=x, y=bytes(payload)) for x, payload in zip(xs, payloads)]


def reconstruct(shares: Sequence[Share]) -> bytes:
    """Interpolate ``shares`` at ``x = 0`` byte by byte.

    Repeated indices surface as :class:`~shadowshare.errors.DivisionByZero`.
    """
    if not shares:
        raise InsufficientShares("At least one share is required")

    weights = []
    for i, share in enumerate(shares):
        num = 1
        den = 1
        for j, other in enumerate(shares):
            if i == j:
                continue
            num = gf256.multiply(num, other.x)
            den = gf256.multiply(den, share.x ^ other.x)
        weights.append(gf256.divide(num, den))

    result = bytearray(len(shares[0].y))
    for pos in range(len(result)):
        value = 0
        for share, weight in zip(shares, weights):
            value ^= gf256.multiply(share.y[pos], weight)
        result[pos] = value
    return bytes(result)


def validate(shares: Sequence[Share], k: int) -> None:
    """Raise if ``shares`` cannot reconstruct a secret split with threshold ``k``."""
    if not shares or len(shares) < k:
        raise InsufficientShares(f"Need {k} shares, got {len(shares)}")
    seen: set[int] = set()
    length = len(shares[0].y)
    for share in shares:
        if not 1 <= share.x <= MAX_SHARES:
            raise MalformedShare(f"Share index {share.x} out of range")
        if share.x in seen:
            raise DuplicateShareIndex(f"Share index {share.x} appears more than once")
        seen.add(share.x)
        if not share.y or len(share.y) != length:
            raise MalformedShare(f"Share {share.x} has payload length {len(share.y)}, expected {length}")


def combine(shares: Sequence[Share], k: int) -> bytes:
    """Validate ``shares`` against ``k`` and reconstruct from the first ``k``."""
    validate(shares, k)
    return reconstruct(list(shares)[:k])


__all__ = ["MAX_SHARES", "Share", "combine", "reconstruct", "split", "validate"]
