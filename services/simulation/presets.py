"""Named sensitivity variables and the quick scenario adjuster.

Each named variable moves one or more parameters on every SKU by a
fractional delta, clamped to its valid range.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from services.forecasting.assumptions import BusinessCase
from services.simulation.paths import Lens, ParameterKey, perturb


@dataclass(frozen=True)
class NamedVariable:
    id: str
    label: str
    keys: Tuple[ParameterKey, ...]
    floor: Optional[float] = 0.0
    ceiling: Optional[float] = None
    whole: bool = False  # round to a whole number (piece counts)

    def clamp(self, value: float) -> float:
        if self.whole:
            value = float(round(value))
        if self.floor is not None:
            value = max(self.floor, value)
        if self.ceiling is not None:
            value = min(self.ceiling, value)
        return value


VARIABLES: Tuple[NamedVariable, ...] = (
    NamedVariable("volume", "Volume", (ParameterKey("sales.base_annual_volume_pieces"),), whole=True),
    NamedVariable("conversionRecovery", "Conversion Recovery", (ParameterKey("sales.conversion_recovery_rs_per_piece"),)),
    NamedVariable(
        "resinPrice",
        "Resin price",
        (ParameterKey("costing.resin_rs_per_kg"), ParameterKey("costing.mb_rs_per_kg")),
    ),
    NamedVariable("conversionCost", "Conversion cost", (ParameterKey("plant_master.conversion_per_kg"),)),
    NamedVariable("oee", "Operating Efficiency", (ParameterKey("ops.oee"),), floor=None, ceiling=1.0),
    NamedVariable("machineCost", "Machine Cost", (ParameterKey("ops.cost_of_new_machine"),)),
    NamedVariable("mouldCost", "Mould Cost", (ParameterKey("ops.cost_of_new_mould"),)),
    NamedVariable("sga", "S, G&A", (ParameterKey("plant_master.sga_per_kg"),)),
)

VARIABLES_BY_ID: Dict[str, NamedVariable] = {v.id: v for v in VARIABLES}


def apply_delta(bc: BusinessCase, variable: NamedVariable, delta: float, percent: bool = True) -> BusinessCase:
    """Move every key of `variable` on every SKU by delta (fractional when percent)."""
    def move(current):
        moved = perturb(current, delta, percent)
        return None if moved is None else variable.clamp(moved)

    out = bc
    for key in variable.keys:
        out = Lens(key=key).update(out, move)
    return out


def _scale(bc: BusinessCase, key: ParameterKey, pct: float, whole: bool = False) -> BusinessCase:
    def move(current):
        if current is None:
            return None
        value = current * (1.0 + pct / 100.0)
        return max(0.0, float(round(value)) if whole else value)

    return Lens(key=key).update(bc, move)


def apply_scenario(
    bc: BusinessCase,
    volume_pct: float = 0.0,
    conversion_recovery_pct: float = 0.0,
    conversion_cost_pct: float = 0.0,
    wc_days_pct: float = 0.0,
    baseline_wc_days: float = 60.0,
) -> BusinessCase:
    """Apply percentage moves (10 == +10%) to every SKU; 0 leaves a lever alone.

    Working-capital days move relative to their current value, or to
    `baseline_wc_days` when unset or zero.
    """
    out = bc
    if volume_pct:
        out = _scale(out, ParameterKey("sales.base_annual_volume_pieces"), volume_pct, whole=True)
    if conversion_recovery_pct:
        out = _scale(out, ParameterKey("sales.conversion_recovery_rs_per_piece"), conversion_recovery_pct)
    if conversion_cost_pct:
        out = _scale(out, ParameterKey("plant_master.conversion_per_kg"), conversion_cost_pct)
    if wc_days_pct:
        def move_days(current):
            days = current if current else baseline_wc_days
            return max(0.0, float(round(days * (1.0 + wc_days_pct / 100.0))))

        out = Lens(key=ParameterKey("ops.working_capital_days")).update(out, move_days)
    return out
