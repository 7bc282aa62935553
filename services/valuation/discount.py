from __future__ import annotations
from typing import Iterable, List, Sequence


def discount_factors(rate: float, periods: int) -> List[float]:
    """Return [1/(1+r)^1, ..., 1/(1+r)^periods]."""
    return [1.0 / ((1.0 + rate) ** t) for t in range(1, periods + 1)]


def present_value(cashflows: Iterable[float], rate: float) -> float:
    """PV of flows at t=1..n (the first element is discounted one period)."""
    flows = [float(cf) for cf in cashflows]
    return sum(cf * df for cf, df in zip(flows, discount_factors(rate, len(flows))))


def npv(cashflows: Sequence[float], rate: float) -> float:
    """Σ CF(k)/(1+r)^k for k = 0..n; CF(0) is undiscounted."""
    if not cashflows:
        return 0.0
    return float(cashflows[0]) + present_value(cashflows[1:], rate)
