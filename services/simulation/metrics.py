from __future__ import annotations
from enum import Enum
from typing import Dict, Iterable, Optional

from services.forecasting.outputs import CalcOutput


class OutcomeMetric(str, Enum):
    NPV = "NPV"
    IRR = "IRR"
    PNL_Y1 = "PNL_Y1"  # year-1 PAT
    PNL_Y5 = "PNL_Y5"  # year-5 PAT
    PNL_TOTAL = "PNL_TOTAL"  # PAT summed over the horizon
    PAYBACK = "PAYBACK"
    EBITDA_Y1 = "EBITDA_Y1"
    REVENUE_Y1 = "REVENUE_Y1"
    ROCE_Y1 = "ROCE_Y1"


DEFAULT_METRICS = (OutcomeMetric.NPV, OutcomeMetric.IRR, OutcomeMetric.PNL_Y1, OutcomeMetric.PNL_TOTAL)

MetricValues = Dict[str, Optional[float]]


def parse_metrics(names: Iterable) -> list:
    """Accept enum members or their names; ValueError on an unknown name."""
    out = []
    for n in names:
        out.append(n if isinstance(n, OutcomeMetric) else OutcomeMetric(str(n).strip().upper()))
    return out


def _pat(calc: CalcOutput, index: int) -> float:
    return calc.pnl[index].pat if index < len(calc.pnl) else 0.0


def _value(calc: CalcOutput, metric: OutcomeMetric) -> Optional[float]:
    r = calc.returns
    if metric is OutcomeMetric.NPV:
        return r.npv
    if metric is OutcomeMetric.IRR:
        return r.irr
    if metric is OutcomeMetric.PNL_Y1:
        return _pat(calc, 0)
    if metric is OutcomeMetric.PNL_Y5:
        return _pat(calc, 4)
    if metric is OutcomeMetric.PNL_TOTAL:
        return sum(y.pat for y in calc.pnl)
    if metric is OutcomeMetric.PAYBACK:
        return r.payback_years
    if metric is OutcomeMetric.EBITDA_Y1:
        return calc.pnl[0].ebitda if calc.pnl else 0.0
    if metric is OutcomeMetric.REVENUE_Y1:
        return calc.pnl[0].revenue_net if calc.pnl else 0.0
    if metric is OutcomeMetric.ROCE_Y1:
        return r.roce_by_year[0].roce if r.roce_by_year else 0.0
    raise ValueError(f"unsupported metric {metric}")


def empty_metrics() -> MetricValues:
    return {m.value: None for m in OutcomeMetric}


def extract_metrics(calc: CalcOutput, metrics: Iterable = DEFAULT_METRICS) -> MetricValues:
    """Every metric key is present; the ones not requested stay None."""
    out = empty_metrics()
    for m in parse_metrics(metrics):
        out[m.value] = _value(calc, m)
    return out
