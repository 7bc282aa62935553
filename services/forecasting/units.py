from __future__ import annotations
from typing import List, Optional, Sequence


def to_kg(grams: float) -> float:
    return float(grams) / 1000.0


def safe_div(a: float, b: Optional[float]) -> float:
    """a / b, or 0.0 when b is zero or missing."""
    if not b:
        return 0.0
    return float(a) / float(b)


def per_piece_to_per_kg(value_per_piece: float, weight_kg: float) -> float:
    return float(value_per_piece) / weight_kg if weight_kg > 0 else 0.0


def compound_inflation_series(rates: Sequence[Optional[float]], years: int = 10) -> List[float]:
    """Cumulative multipliers [(1+r1), (1+r1)(1+r2), ...] for `years` years.

    Index 0 is year 1 (its rate is conventionally 0). Shorter series repeat
    their last rate; missing entries count as 0.
    """
    out: List[float] = []
    acc = 1.0
    last = 0.0
    for i in range(years):
        if i < len(rates):
            last = float(rates[i] or 0.0)
        acc *= 1.0 + last
        out.append(acc)
    return out
