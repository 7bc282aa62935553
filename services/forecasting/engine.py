from __future__ import annotations
from typing import List, Optional

from services.config.env import CalcConfig, get_calc_config
from services.config.logging import get_logger
from services.forecasting.aggregation import (
    WeightingPolicy,
    aggregate_pnl,
    aggregate_volumes,
    weighted_avg_per_kg_table,
    weighted_avg_prices,
)
from services.forecasting.assumptions import BusinessCase, OpsInputs, Sku, validate_business_case
from services.forecasting.outputs import CalcOutput, SkuCalcOutput
from services.forecasting.pnl import build_pnl, capitalized_assets, depreciable_base, initial_capex
from services.forecasting.pricing import price_for_sku
from services.forecasting.volumes import volumes_for_sku
from services.valuation.returns import build_cashflows_and_returns

logger = get_logger(__name__)


def working_capital_days(ops: OpsInputs, default: float = 60.0) -> float:
    """Unset => default; an explicit 0 is kept."""
    return default if ops.working_capital_days is None else ops.working_capital_days


def calculate_sku(bc: BusinessCase, sku: Sku, config: CalcConfig) -> SkuCalcOutput:
    volumes = volumes_for_sku(sku, bc.finance, config.years)
    prices = price_for_sku(sku, config.years)
    pnl = build_pnl(sku, bc.finance, prices, volumes, config)
    cashflow, returns = build_cashflows_and_returns(
        bc.finance,
        pnl,
        capex0=initial_capex(sku.ops),
        working_capital_days=working_capital_days(sku.ops, config.default_wc_days),
        depreciable_base=depreciable_base(capitalized_assets(sku.ops, config)),
        default_wacc=config.default_wacc,
    )
    return SkuCalcOutput(
        sku_id=sku.id,
        name=sku.name,
        volumes=volumes,
        prices=prices,
        pnl=pnl,
        cashflow=cashflow,
        returns=returns,
    )


def calculate(bc: BusinessCase, config: Optional[CalcConfig] = None) -> CalcOutput:
    """Full projection for a business case.

    Pipeline: per-SKU volumes, prices and P&L; cross-SKU merge; cash flow and
    returns on the merged P&L. Deterministic and side-effect free: the
    input case is never mutated and no output references it.

    Raises InputError for an invalid case before any math runs.
    """
    validate_business_case(bc)
    cfg = config or get_calc_config()
    logger.debug("calculate case=%s skus=%d years=%d", bc.id, len(bc.skus), cfg.years)

    by_sku: List[SkuCalcOutput] = [calculate_sku(bc, sku, cfg) for sku in bc.skus]

    volumes = aggregate_volumes(by_sku)
    pnl = aggregate_pnl(by_sku, bc.finance.corporate_tax_rate_pct)
    prices = weighted_avg_prices(by_sku, WeightingPolicy.PER_YEAR)
    per_kg = weighted_avg_per_kg_table(by_sku, WeightingPolicy.FROZEN_BASELINE)

    capex0 = sum(initial_capex(s.ops) for s in bc.skus)
    wc_days = max(working_capital_days(s.ops, cfg.default_wc_days) for s in bc.skus)
    base = sum(depreciable_base(capitalized_assets(s.ops, cfg)) for s in bc.skus)
    cashflow, returns = build_cashflows_and_returns(
        bc.finance,
        pnl,
        capex0=capex0,
        working_capital_days=wc_days,
        depreciable_base=base,
        default_wacc=cfg.default_wacc,
    )
    logger.debug("calculate case=%s npv=%.2f irr=%s", bc.id, returns.npv, returns.irr)

    return CalcOutput(
        volumes=volumes,
        prices=prices,
        pnl=pnl,
        weighted_avg_per_kg=per_kg,
        cashflow=cashflow,
        returns=returns,
        by_sku=by_sku,
    )
