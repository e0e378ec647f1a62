# SPDX-FileCopyrightText: 2025 shadowshare contributors
# SPDX-License-Identifier: MIT

"""GF(2^8) arithmetic over the irreducible polynomial x^8 + x^4 + x^3 + x^2 + 1.

Addition and subtraction are XOR. Multiplication and division go through
exponent/logarithm tables built once at import time with generator ``2``.
These tables are read-only afterwards and may be shared freely.
"""

from __future__ import annotations

from typing import Sequence

from shadowshare.errors import DivisionByZero

POLYNOMIAL = 0x11D
ORDER = 255


def _build_tables() -> tuple[tuple[int, ...], tuple[int, ...]]:
    exp = [0] * ORDER
    log = [0] * 256
    x = 1
    for i in range(ORDER):
        exp[i] = x
        log[x] = i
        x <<= 1
        if x & 0x100:
            x ^= POLYNOMIAL
    # mirrored so LOG[a] + LOG[b] (at most 508) indexes without a modulo
    return tuple(exp + exp), tuple(log)


EXP, LOG = _build_tables()


def multiply(a: int, b: int) -> int:
    if a == 0 or b == 0:
        return 0
    return EXP[LOG[a] + LOG[b]]


def divide(a: int, b: int) -> int:
    """Return ``a / b`` in GF(256); raises :class:`DivisionByZero` for ``b == 0``."""
    if b == 0:
        raise DivisionByZero("GF(256) division by zero")
    if a == 0:
        return 0
    return EXP[(LOG[a] - LOG[b] + ORDER) % ORDER]


def evaluate(coeffs: Sequence[int], x: int) -> int:
    """Evaluate the polynomial ``coeffs[0] + coeffs[1]*x + ...`` at ``x`` (Horner)."""
    result = 0
    for coeff in reversed(coeffs):
        result = multiply(result, x) ^ coeff
    return result


__all__ = ["EXP", "LOG", "POLYNOMIAL", "divide", "evaluate", "multiply"]
