from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional

from services.forecasting.assumptions import (
    AltConversionInputs,
    CostingInputs,
    NpdInputs,
    OpsInputs,
    SalesInputs,
    Sku,
)
from services.forecasting.capacity import compute_capacity
from services.forecasting.outputs import PriceComponentsPerKg, PriceYear
from services.forecasting.units import compound_inflation_series, per_piece_to_per_kg, to_kg


@dataclass(frozen=True)
class MaterialCostPerKg:
    resin_net: float  # after discount, plus freight-in
    rm: float
    mb: float


def material_cost_per_kg(costing: CostingInputs) -> MaterialCostPerKg:
    """Year-1 raw material and masterbatch cost per kg of finished product."""
    wastage = 1.0 + (costing.wastage_pct or 0.0)
    resin_net = max(0.0, costing.resin_rs_per_kg * (1.0 - (costing.resin_discount_pct or 0.0)))
    resin_net += costing.freight_inwards_rs_per_kg or 0.0
    mb_base = costing.mb_rs_per_kg if costing.use_mb_price_override else resin_net
    return MaterialCostPerKg(
        resin_net=resin_net,
        rm=resin_net * wastage,
        mb=mb_base * (costing.mb_ratio_pct or 0.0) * wastage,
    )


def conversion_recovery_per_piece(
    sales: SalesInputs,
    npd: NpdInputs,
    ops: OpsInputs,
    alt: Optional[AltConversionInputs] = None,
) -> float:
    """Explicit conversion recovery, else machine-day rate spread over daily output."""
    explicit = sales.conversion_recovery_rs_per_piece or 0.0
    if explicit > 0:
        return explicit
    if alt is not None and alt.machine_rate_per_day_rs:
        units_per_day = compute_capacity(npd, ops).units_per_day
        return alt.machine_rate_per_day_rs / (units_per_day or 1.0)
    return explicit


def build_price_by_year(
    sales: SalesInputs,
    costing: CostingInputs,
    npd: NpdInputs,
    ops: OpsInputs,
    alt: Optional[AltConversionInputs] = None,
    years: int = 10,
) -> List[PriceYear]:
    """Per-year unit economics for one SKU.

    RM and MB follow the raw-material inflation series; value-add, packaging,
    freight-out and conversion follow the conversion inflation series.
    price_per_piece == total_per_kg * weight_kg for every year.
    """
    weight_kg = to_kg(sales.product_weight_grams)
    material = material_cost_per_kg(costing)
    conversion_pc = conversion_recovery_per_piece(sales, npd, ops, alt)

    value_add_kg = per_piece_to_per_kg(costing.value_add_rs_per_piece, weight_kg)
    packaging_kg = costing.packaging_rs_per_kg or per_piece_to_per_kg(costing.packaging_rs_per_piece, weight_kg)
    freight_out_kg = costing.freight_out_rs_per_kg or per_piece_to_per_kg(costing.freight_out_rs_per_piece, weight_kg)
    conversion_kg = per_piece_to_per_kg(conversion_pc, weight_kg)

    rm_factors = compound_inflation_series(costing.rm_inflation_pct, years)
    conv_factors = compound_inflation_series(costing.conversion_inflation_pct, years)

    out: List[PriceYear] = []
    for year in range(1, years + 1):
        rm_f = rm_factors[year - 1]
        conv_f = conv_factors[year - 1]
        if weight_kg > 0:
            per_kg = PriceComponentsPerKg(
                rm_per_kg=material.rm * rm_f,
                mb_per_kg=material.mb * rm_f,
                value_add_per_kg=value_add_kg * conv_f,
                packaging_per_kg=packaging_kg * conv_f,
                freight_out_per_kg=freight_out_kg * conv_f,
                conversion_per_kg=conversion_kg * conv_f,
                total_per_kg=0.0,
            )
            total = (
                per_kg.rm_per_kg + per_kg.mb_per_kg + per_kg.value_add_per_kg
                + per_kg.packaging_per_kg + per_kg.freight_out_per_kg + per_kg.conversion_per_kg
            )
            per_kg = PriceComponentsPerKg(**{**per_kg.__dict__, "total_per_kg": total})
            price_per_piece = total * weight_kg
        else:
            # weightless piece: no per-kg basis, only per-piece items survive
            per_kg = PriceComponentsPerKg(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)
            per_piece_items = (
                costing.value_add_rs_per_piece + costing.packaging_rs_per_piece
                + costing.freight_out_rs_per_piece + conversion_pc
            )
            price_per_piece = per_piece_items * conv_f
        out.append(PriceYear(year=year, per_kg=per_kg, price_per_piece=price_per_piece))
    return out


def price_for_sku(sku: Sku, years: int = 10) -> List[PriceYear]:
    return build_price_by_year(sku.sales, sku.costing, sku.npd, sku.ops, sku.alt_conversion, years)
