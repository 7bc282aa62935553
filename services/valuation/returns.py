from __future__ import annotations
from typing import List, Optional, Sequence, Tuple

from services.forecasting.assumptions import FinanceAssumptions
from services.forecasting.outputs import CashflowYear, PnlYear, ReturnsSummary, RoceYear
from services.valuation.cashflow import build_cashflows
from services.valuation.discount import npv
from services.valuation.irr import irr
from services.valuation.wacc import wacc_for


def payback_years(cashflow: Sequence[CashflowYear]) -> Optional[float]:
    """First crossing of cumulative FCF from negative to >= 0, with a fractional year.

    0.0 when nothing is ever outstanding; None when never recovered.
    """
    if not cashflow:
        return None
    if cashflow[0].cumulative_fcf >= 0:
        return 0.0
    for prev, cur in zip(cashflow, cashflow[1:]):
        if prev.cumulative_fcf < 0 <= cur.cumulative_fcf:
            return prev.year + abs(prev.cumulative_fcf) / (cur.fcf or 1.0)
    return None


def net_block(base: float, depreciation: Sequence[float]) -> List[float]:
    """Remaining book value after each year's accumulated depreciation, floored at 0."""
    out: List[float] = []
    accumulated = 0.0
    for d in depreciation:
        accumulated += d
        out.append(max(0.0, base - accumulated))
    return out


def roce(ebit: float, net_block_value: float, nwc: float) -> float:
    capital = net_block_value + nwc
    if capital <= 0:
        return 0.0
    return ebit / capital


def roce_by_year(pnl: List[PnlYear], base: float, cashflow: List[CashflowYear]) -> List[RoceYear]:
    blocks = net_block(base, [y.depreciation for y in pnl])
    nwc_by_year = {c.year: c.nwc for c in cashflow}
    out: List[RoceYear] = []
    for y, block in zip(pnl, blocks):
        nwc = nwc_by_year.get(y.year, 0.0)
        out.append(RoceYear(
            year=y.year,
            roce=roce(y.ebit, block, nwc),
            net_block=block,
            net_working_capital=nwc,
            capital_employed=block + nwc,
        ))
    return out


def build_cashflows_and_returns(
    finance: FinanceAssumptions,
    pnl: List[PnlYear],
    capex0: float,
    working_capital_days: float,
    depreciable_base: float,
    default_wacc: Optional[float] = None,
) -> Tuple[List[CashflowYear], ReturnsSummary]:
    rate = wacc_for(finance, default_wacc)
    cashflow = build_cashflows(pnl, capex0, working_capital_days, rate)
    series = [c.fcf for c in cashflow]
    summary = ReturnsSummary(
        wacc=rate,
        npv=npv(series, rate),
        irr=irr(series),
        payback_years=payback_years(cashflow),
        roce_by_year=roce_by_year(pnl, depreciable_base, cashflow),
    )
    return cashflow, summary
