from __future__ import annotations
import math
from typing import Dict, Any, List

from services.forecasting.assumptions import BusinessCase
from services.forecasting.outputs import CalcOutput
from services.forecasting.units import to_kg


def assumptions_md(assumptions: Dict[str, Any], warnings: List[str] | None = None) -> str:
    lines = ["# Assumptions", ""]
    for k, v in assumptions.items():
        lines.append(f"- {k}: {v}")
    if warnings:
        lines.append("\n## Warnings")
        for w in warnings:
            lines.append(f"- {w}")
    return "\n".join(lines) + "\n"


def validation_report_md(checks: Dict[str, bool], details: Dict[str, Any] | None = None) -> str:
    lines = ["# Validation Report", ""]
    for k, ok in checks.items():
        lines.append(f"- {k}: {'PASS' if ok else 'FAIL'}")
    if details:
        lines.append("\n## Details")
        for k, v in details.items():
            lines.append(f"- {k}: {v}")
    return "\n".join(lines) + "\n"


def case_assumptions(bc: BusinessCase, calc: CalcOutput) -> Dict[str, Any]:
    f = bc.finance
    out: Dict[str, Any] = {
        "case": f"{bc.name} ({bc.id})",
        "skus": len(bc.skus),
        "wacc": f"{calc.returns.wacc:.4f}" + (" (override)" if f.wacc_pct is not None else ""),
        "debt_pct": f.debt_pct,
        "cost_of_debt_pct": f.cost_of_debt_pct,
        "cost_of_equity_pct": f.cost_of_equity_pct,
        "corporate_tax_rate_pct": f.corporate_tax_rate_pct,
        "include_corp_sga": f.include_corp_sga,
        "annual_volume_growth_pct": f.annual_volume_growth_pct,
    }
    for s in bc.skus:
        out[f"sku {s.id}"] = (
            f"{s.sales.product_weight_grams} g, {s.sales.base_annual_volume_pieces} pcs/yr, "
            f"resin {s.costing.resin_rs_per_kg} Rs/kg"
        )
    return out


def case_warnings(bc: BusinessCase, calc: CalcOutput) -> List[str]:
    warnings: List[str] = []
    if calc.returns.irr is None:
        warnings.append("IRR undefined (solver did not converge)")
    if calc.returns.payback_years is None:
        warnings.append("capex not recovered within the projection horizon")
    for s in bc.skus:
        if s.ops.working_capital_days is None:
            warnings.append(f"sku {s.id}: working-capital days unset, default applied")
    return warnings


def validation_checks(bc: BusinessCase, calc: CalcOutput, tol: float = 1e-6) -> Dict[str, bool]:
    """Internal consistency checks over one calculation."""
    weights = {s.id: to_kg(s.sales.product_weight_grams) for s in bc.skus}
    reconciles = all(
        math.isclose(p.per_kg.total_per_kg * weights[s.sku_id], p.price_per_piece, rel_tol=tol, abs_tol=1e-9)
        for s in calc.by_sku
        for p in s.prices
    )
    tax_ok = all(y.tax >= 0 for y in calc.pnl) and all(y.tax >= 0 for s in calc.by_sku for y in s.pnl)
    npv_ok = math.isclose(sum(c.pv for c in calc.cashflow), calc.returns.npv, rel_tol=tol, abs_tol=1e-6)
    finite = all(
        math.isfinite(v)
        for y in calc.pnl
        for v in (y.revenue_net, y.ebitda, y.pat)
    ) and math.isfinite(calc.returns.npv)
    return {
        "price_per_piece_reconciles": reconciles,
        "tax_non_negative": tax_ok,
        "npv_matches_discounted_cashflow": npv_ok,
        "values_finite": finite,
    }
