from __future__ import annotations
from typing import List

from services.forecasting.assumptions import FinanceAssumptions, Sku
from services.forecasting.outputs import YearVolumes
from services.forecasting.units import to_kg


def project_volumes(
    product_weight_grams: float,
    base_annual_volume_pieces: float,
    annual_growth_pct: float = 0.0,
    years: int = 10,
) -> List[YearVolumes]:
    """Year 1 = base volume; year k = year k-1 * (1 + growth). Growth compounds."""
    weight_kg = to_kg(product_weight_grams)
    rows: List[YearVolumes] = []
    pieces = float(base_annual_volume_pieces)
    for year in range(1, years + 1):
        if year > 1:
            pieces = pieces * (1.0 + annual_growth_pct)
        rows.append(YearVolumes(year=year, volume_pieces=pieces, weight_kg=pieces * weight_kg))
    return rows


def growth_for_sku(sku: Sku, finance: FinanceAssumptions) -> float:
    if sku.sales.yoy_growth_pct is not None:
        return sku.sales.yoy_growth_pct
    return finance.annual_volume_growth_pct or 0.0


def volumes_for_sku(sku: Sku, finance: FinanceAssumptions, years: int = 10) -> List[YearVolumes]:
    return project_volumes(
        sku.sales.product_weight_grams,
        sku.sales.base_annual_volume_pieces,
        growth_for_sku(sku, finance),
        years,
    )
