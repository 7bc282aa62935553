from __future__ import annotations
from typing import List

from services.forecasting.outputs import CashflowYear, PnlYear
from services.valuation.discount import discount_factors

DAYS_PER_YEAR = 365.0


def working_capital(days: float, revenue_net: float) -> float:
    return (days or 0.0) / DAYS_PER_YEAR * revenue_net


def free_cash_flow(ebitda: float, interest: float, tax: float, change_in_nwc: float) -> float:
    """FCF = EBITDA - interest - tax - ΔNWC."""
    return float(ebitda - interest - tax - change_in_nwc)


def build_cashflows(pnl: List[PnlYear], capex0: float, working_capital_days: float, rate: float) -> List[CashflowYear]:
    """Year 0 (capex outflow) followed by one row per P&L year.

    PV(0) = FCF(0); PV(k) = FCF(k)/(1+rate)^k. NWC(0) = 0.
    """
    rows = [CashflowYear(year=0, nwc=0.0, change_in_nwc=0.0, fcf=-capex0, pv=-capex0, cumulative_fcf=-capex0)]
    prev_nwc = 0.0
    cumulative = -capex0
    factors = discount_factors(rate, max((y.year for y in pnl), default=0))
    for y in pnl:
        nwc = working_capital(working_capital_days, y.revenue_net)
        change = nwc - prev_nwc
        prev_nwc = nwc
        fcf = free_cash_flow(y.ebitda, y.interest, y.tax, change)
        cumulative += fcf
        rows.append(CashflowYear(
            year=y.year,
            nwc=nwc,
            change_in_nwc=change,
            fcf=fcf,
            pv=fcf * factors[y.year - 1],
            cumulative_fcf=cumulative,
        ))
    return rows
