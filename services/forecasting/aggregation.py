"""Cross-SKU merge of per-SKU results.

Two weighting policies for per-kg averages:

- PER_YEAR: each year uses that year's kg share (mix may drift with growth).
  Used for `CalcOutput.prices`.
- FROZEN_BASELINE: every year uses the year-1 kg share, so per-kg figures are
  not distorted by SKUs growing at different rates. Used for
  `CalcOutput.weighted_avg_per_kg`.
"""
from __future__ import annotations
from dataclasses import fields
from enum import Enum
from typing import List, Sequence

from services.forecasting.outputs import (
    PnlYear,
    PriceComponentsPerKg,
    PriceYear,
    SkuCalcOutput,
    WeightedAvgPerKgYear,
    YearVolumes,
)
from services.forecasting.pnl import tax_on
from services.forecasting.units import safe_div


class WeightingPolicy(str, Enum):
    PER_YEAR = "per_year"
    FROZEN_BASELINE = "frozen_baseline"


# lines that add up across SKUs; the rest of the waterfall is recomputed
ADDITIVE_PNL_FIELDS = (
    "revenue_gross",
    "revenue_net",
    "material_cost",
    "power_cost",
    "manpower_cost",
    "value_add_cost",
    "packaging_cost",
    "freight_out_cost",
    "conversion_recovery_cost",
    "r_and_m_cost",
    "other_mfg_cost",
    "plant_sga_cost",
    "corp_sga_cost",
    "sga_cost",
    "conversion_cost",
    "depreciation",
    "interest",
)


def weighted_average(values: Sequence[float], weights: Sequence[float]) -> float:
    """Σ(v·w)/Σw; 0 when the total weight is not positive."""
    total = sum(weights)
    if total <= 0:
        return 0.0
    return sum(v * w for v, w in zip(values, weights)) / total


def aggregate_volumes(by_sku: List[SkuCalcOutput]) -> List[YearVolumes]:
    years = len(by_sku[0].volumes) if by_sku else 0
    return [
        YearVolumes(
            year=i + 1,
            volume_pieces=sum(s.volumes[i].volume_pieces for s in by_sku),
            weight_kg=sum(s.volumes[i].weight_kg for s in by_sku),
        )
        for i in range(years)
    ]


def aggregate_pnl(by_sku: List[SkuCalcOutput], tax_rate: float) -> List[PnlYear]:
    """Sum additive lines, then rebuild margins, EBITDA, EBIT, PBT, tax and PAT.

    Tax is charged on consolidated PBT, so a loss-making SKU offsets a
    profitable one.
    """
    years = len(by_sku[0].pnl) if by_sku else 0
    out: List[PnlYear] = []
    for i in range(years):
        sums = {name: sum(getattr(s.pnl[i], name) for s in by_sku) for name in ADDITIVE_PNL_FIELDS}
        material_margin = sums["revenue_net"] - sums["material_cost"]
        gross_margin = material_margin - sums["conversion_cost"]
        ebitda = gross_margin - sums["sga_cost"]
        ebit = ebitda - sums["depreciation"]
        pbt = ebit - sums["interest"]
        tax = tax_on(pbt, tax_rate)
        out.append(PnlYear(
            year=i + 1,
            material_margin=material_margin,
            gross_margin=gross_margin,
            ebitda=ebitda,
            ebit=ebit,
            pbt=pbt,
            tax=tax,
            pat=pbt - tax,
            **sums,
        ))
    return out


def _weights(by_sku: List[SkuCalcOutput], year_index: int, policy: WeightingPolicy) -> List[float]:
    current = [s.volumes[year_index].weight_kg for s in by_sku]
    if policy is WeightingPolicy.FROZEN_BASELINE:
        baseline = [s.volumes[0].weight_kg for s in by_sku]
        # nothing sold in year 1: fall back to the current mix
        if sum(baseline) > 0:
            return baseline
    return current


def weighted_avg_prices(
    by_sku: List[SkuCalcOutput],
    policy: WeightingPolicy = WeightingPolicy.PER_YEAR,
) -> List[PriceYear]:
    """Kg-weighted per-kg components and piece-weighted price per piece."""
    years = len(by_sku[0].prices) if by_sku else 0
    component_names = [f.name for f in fields(PriceComponentsPerKg)]
    out: List[PriceYear] = []
    for i in range(years):
        weights = _weights(by_sku, i, policy)
        per_kg = PriceComponentsPerKg(**{
            name: weighted_average([getattr(s.prices[i].per_kg, name) for s in by_sku], weights)
            for name in component_names
        })
        pieces = [s.volumes[i].volume_pieces for s in by_sku]
        price_per_piece = weighted_average([s.prices[i].price_per_piece for s in by_sku], pieces)
        out.append(PriceYear(year=i + 1, per_kg=per_kg, price_per_piece=price_per_piece))
    return out


# WeightedAvgPerKgYear field -> PnlYear field
_PER_KG_SOURCES = {
    "revenue_net_per_kg": "revenue_net",
    "material_cost_per_kg": "material_cost",
    "material_margin_per_kg": "material_margin",
    "conversion_cost_per_kg": "conversion_cost",
    "gross_margin_per_kg": "gross_margin",
    "sga_cost_per_kg": "sga_cost",
    "ebitda_per_kg": "ebitda",
    "depreciation_per_kg": "depreciation",
    "ebit_per_kg": "ebit",
    "interest_per_kg": "interest",
    "pbt_per_kg": "pbt",
    "pat_per_kg": "pat",
}


def weighted_avg_per_kg_table(
    by_sku: List[SkuCalcOutput],
    policy: WeightingPolicy = WeightingPolicy.FROZEN_BASELINE,
) -> List[WeightedAvgPerKgYear]:
    """Per-kg P&L table across SKUs (each SKU's line / its own kg, then weighted)."""
    years = len(by_sku[0].pnl) if by_sku else 0
    out: List[WeightedAvgPerKgYear] = []
    for i in range(years):
        weights = _weights(by_sku, i, policy)
        values = {}
        for target, source in _PER_KG_SOURCES.items():
            per_kg = [safe_div(getattr(s.pnl[i], source), s.volumes[i].weight_kg) for s in by_sku]
            values[target] = weighted_average(per_kg, weights)
        out.append(WeightedAvgPerKgYear(year=i + 1, **values))
    return out
