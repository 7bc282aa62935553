from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from services.forecasting.assumptions import FinanceAssumptions

DEFAULT_WACC = 0.14


@dataclass(frozen=True)
class WACCInputs:
    debt_ratio: float  # D / (D + E)
    rd: float  # pre-tax cost of debt
    coe: float  # cost of equity
    tax_rate: float


def wacc(i: WACCInputs) -> float:
    """Weighted Average Cost of Capital.
    After-tax cost of debt = rd * (1 - tax_rate)
    WACC = D/(D+E) * CoD_aftertax + (1 - D/(D+E)) * CoE
    """
    cod = i.rd * (1.0 - i.tax_rate)
    return float(i.debt_ratio * cod + (1.0 - i.debt_ratio) * i.coe)


def wacc_for(finance: FinanceAssumptions, default: Optional[float] = None) -> float:
    """Explicit override, else the default when no capital-structure input is set, else the formula."""
    if finance.wacc_pct is not None:
        return float(finance.wacc_pct)
    if not (finance.debt_pct or finance.cost_of_debt_pct or finance.cost_of_equity_pct):
        return DEFAULT_WACC if default is None else default
    return wacc(WACCInputs(
        debt_ratio=finance.debt_pct or 0.0,
        rd=finance.cost_of_debt_pct or 0.0,
        coe=finance.cost_of_equity_pct or 0.0,
        tax_rate=finance.corporate_tax_rate_pct or 0.0,
    ))
