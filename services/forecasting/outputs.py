"""Derived records produced by one calculation run.

Everything here is recomputed on each `calculate()` call and owned by that
call; nothing references the input BusinessCase.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from services.forecasting.assumptions import to_camel_dict


@dataclass(frozen=True)
class YearVolumes:
    year: int
    volume_pieces: float
    weight_kg: float


@dataclass(frozen=True)
class PriceComponentsPerKg:
    rm_per_kg: float
    mb_per_kg: float
    value_add_per_kg: float
    packaging_per_kg: float
    freight_out_per_kg: float
    conversion_per_kg: float
    total_per_kg: float


@dataclass(frozen=True)
class PriceYear:
    year: int
    per_kg: PriceComponentsPerKg
    price_per_piece: float


@dataclass(frozen=True)
class PnlYear:
    year: int
    revenue_gross: float = 0.0
    revenue_net: float = 0.0
    material_cost: float = 0.0
    material_margin: float = 0.0
    power_cost: float = 0.0
    manpower_cost: float = 0.0
    value_add_cost: float = 0.0
    packaging_cost: float = 0.0
    freight_out_cost: float = 0.0
    conversion_recovery_cost: float = 0.0
    r_and_m_cost: float = 0.0
    other_mfg_cost: float = 0.0
    plant_sga_cost: float = 0.0
    corp_sga_cost: float = 0.0
    sga_cost: float = 0.0
    conversion_cost: float = 0.0
    gross_margin: float = 0.0
    ebitda: float = 0.0
    depreciation: float = 0.0
    ebit: float = 0.0
    interest: float = 0.0
    pbt: float = 0.0
    tax: float = 0.0
    pat: float = 0.0


@dataclass
class CashflowYear:
    year: int  # 0 = initial capex
    nwc: float
    change_in_nwc: float
    fcf: float
    pv: float = 0.0
    cumulative_fcf: float = 0.0


@dataclass(frozen=True)
class RoceYear:
    year: int
    roce: float
    net_block: float
    net_working_capital: float
    capital_employed: float


@dataclass(frozen=True)
class ReturnsSummary:
    wacc: float
    npv: float
    irr: Optional[float]  # None when the solver does not converge
    payback_years: Optional[float]  # None when never recovered in the horizon
    roce_by_year: List[RoceYear]


@dataclass(frozen=True)
class WeightedAvgPerKgYear:
    year: int
    revenue_net_per_kg: float = 0.0
    material_cost_per_kg: float = 0.0
    material_margin_per_kg: float = 0.0
    conversion_cost_per_kg: float = 0.0
    gross_margin_per_kg: float = 0.0
    sga_cost_per_kg: float = 0.0
    ebitda_per_kg: float = 0.0
    depreciation_per_kg: float = 0.0
    ebit_per_kg: float = 0.0
    interest_per_kg: float = 0.0
    pbt_per_kg: float = 0.0
    pat_per_kg: float = 0.0


@dataclass
class SkuCalcOutput:
    sku_id: str
    name: str
    volumes: List[YearVolumes]
    prices: List[PriceYear]
    pnl: List[PnlYear]
    cashflow: List[CashflowYear] = field(default_factory=list)
    returns: Optional[ReturnsSummary] = None


@dataclass
class CalcOutput:
    volumes: List[YearVolumes]
    prices: List[PriceYear]  # weighted average across SKUs, per-year weight shares
    pnl: List[PnlYear]
    weighted_avg_per_kg: List[WeightedAvgPerKgYear]  # frozen year-1 weight shares
    cashflow: List[CashflowYear]
    returns: ReturnsSummary
    by_sku: List[SkuCalcOutput]

    def to_dict(self) -> Dict[str, Any]:
        return to_camel_dict(self)
