from __future__ import annotations
from dataclasses import asdict
from typing import List, Dict, Any, Iterable, Optional
import csv
import io

from services.forecasting.outputs import CalcOutput

# CSV schemas, one row per projection year
SCHEMAS = {
    "volumes": [
        "sku_id","year","volume_pieces","weight_kg"
    ],
    "prices": [
        "sku_id","year","rm_per_kg","mb_per_kg","value_add_per_kg","packaging_per_kg","freight_out_per_kg","conversion_per_kg","total_per_kg","price_per_piece"
    ],
    "pnl": [
        "sku_id","year","revenue_gross","revenue_net","material_cost","material_margin","power_cost","manpower_cost","value_add_cost","packaging_cost","freight_out_cost","conversion_recovery_cost","r_and_m_cost","other_mfg_cost","conversion_cost","gross_margin","plant_sga_cost","corp_sga_cost","sga_cost","ebitda","depreciation","ebit","interest","pbt","tax","pat"
    ],
    "cashflow": [
        "year","nwc","change_in_nwc","fcf","pv","cumulative_fcf","net_block","roce"
    ],
    "returns": [
        "wacc","npv","irr","payback_years"
    ],
}

AGGREGATE = "ALL"  # sku_id of the cross-SKU rows


def write_csv(rows: Iterable[Dict[str, Any]], columns: List[str]) -> str:
    buf = io.StringIO()
    w = csv.DictWriter(buf, fieldnames=columns, extrasaction="ignore")
    w.writeheader()
    for r in rows:
        w.writerow({k: r.get(k) for k in columns})
    return buf.getvalue()


def _shown(year: int, years: Optional[int]) -> bool:
    return years is None or year <= years


def volume_rows(calc: CalcOutput, years: Optional[int] = None) -> List[Dict[str, Any]]:
    rows = [{"sku_id": AGGREGATE, **asdict(v)} for v in calc.volumes if _shown(v.year, years)]
    for s in calc.by_sku:
        rows.extend({"sku_id": s.sku_id, **asdict(v)} for v in s.volumes if _shown(v.year, years))
    return rows


def price_rows(calc: CalcOutput, years: Optional[int] = None) -> List[Dict[str, Any]]:
    def flat(sku_id, p):
        return {"sku_id": sku_id, "year": p.year, "price_per_piece": p.price_per_piece, **asdict(p.per_kg)}

    rows = [flat(AGGREGATE, p) for p in calc.prices if _shown(p.year, years)]
    for s in calc.by_sku:
        rows.extend(flat(s.sku_id, p) for p in s.prices if _shown(p.year, years))
    return rows


def pnl_rows(calc: CalcOutput, years: Optional[int] = None) -> List[Dict[str, Any]]:
    rows = [{"sku_id": AGGREGATE, **asdict(y)} for y in calc.pnl if _shown(y.year, years)]
    for s in calc.by_sku:
        rows.extend({"sku_id": s.sku_id, **asdict(y)} for y in s.pnl if _shown(y.year, years))
    return rows


def cashflow_rows(calc: CalcOutput, years: Optional[int] = None) -> List[Dict[str, Any]]:
    """Year 0 is always kept; `years` caps the projection rows."""
    roce = {r.year: r for r in calc.returns.roce_by_year}
    rows = []
    for c in calc.cashflow:
        if not _shown(c.year, years):
            continue
        row = asdict(c)
        if c.year in roce:
            row["net_block"] = roce[c.year].net_block
            row["roce"] = roce[c.year].roce
        rows.append(row)
    return rows


def write_volumes(calc: CalcOutput, years: Optional[int] = None) -> str:
    return write_csv(volume_rows(calc, years), SCHEMAS["volumes"])


def write_prices(calc: CalcOutput, years: Optional[int] = None) -> str:
    return write_csv(price_rows(calc, years), SCHEMAS["prices"])


def write_pnl(calc: CalcOutput, years: Optional[int] = None) -> str:
    return write_csv(pnl_rows(calc, years), SCHEMAS["pnl"])


def write_cashflow(calc: CalcOutput, years: Optional[int] = None) -> str:
    return write_csv(cashflow_rows(calc, years), SCHEMAS["cashflow"])


def write_returns(calc: CalcOutput) -> str:
    r = calc.returns
    return write_csv([{"wacc": r.wacc, "npv": r.npv, "irr": r.irr, "payback_years": r.payback_years}], SCHEMAS["returns"])
