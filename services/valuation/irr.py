from __future__ import annotations
import math
from typing import Optional, Sequence


def irr(
    cashflows: Sequence[float],
    guess: float = 0.1,
    max_iter: int = 100,
    tol: float = 1e-7,
) -> Optional[float]:
    """Internal rate of return by Newton-Raphson on Σ CF(k)/(1+r)^k = 0.

    Returns None (undefined, not zero) when the derivative vanishes, the
    iterate leaves the finite reals, or no convergence within max_iter.
    """
    rate = guess
    for _ in range(max_iter):
        try:
            npv = 0.0
            d_npv = 0.0
            for k, cf in enumerate(cashflows):
                denom = (1.0 + rate) ** k
                npv += cf / denom
                d_npv -= k * cf / (denom * (1.0 + rate))
        except (OverflowError, ZeroDivisionError):
            return None
        if abs(d_npv) < 1e-12:
            return None
        new_rate = rate - npv / d_npv
        if not math.isfinite(new_rate):
            return None
        if abs(new_rate - rate) < tol:
            return new_rate
        rate = new_rate
        if rate <= -1.0:
            return None
    return None
