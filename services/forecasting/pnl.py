from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional

from services.config.env import CalcConfig
from services.forecasting.assumptions import FinanceAssumptions, OpsInputs, PlantMaster, Sku
from services.forecasting.outputs import PnlYear, PriceYear, YearVolumes


@dataclass(frozen=True)
class Asset:
    name: str
    cost: float
    life_years: float


def _life(value: Optional[float], default: float) -> float:
    return value if value is not None and value > 0 else default


def capitalized_assets(ops: OpsInputs, config: Optional[CalcConfig] = None) -> List[Asset]:
    """New and old machine/mould/infra, each with its own useful life.

    Unset (or non-positive) lives take the configured default; old assets
    default to the life of their new counterpart.
    """
    cfg = config or CalcConfig()
    machine = _life(ops.life_of_new_machine_years, cfg.default_machine_life_years)
    mould = _life(ops.life_of_new_mould_years, cfg.default_mould_life_years)
    infra = _life(ops.life_of_new_infra_years, cfg.default_infra_life_years)
    return [
        Asset("new_machine", ops.cost_of_new_machine or 0.0, machine),
        Asset("old_machine", ops.cost_of_old_machine or 0.0, _life(ops.life_of_old_machine_years, machine)),
        Asset("new_mould", ops.cost_of_new_mould or 0.0, mould),
        Asset("old_mould", ops.cost_of_old_mould or 0.0, _life(ops.life_of_old_mould_years, mould)),
        Asset("new_infra", ops.cost_of_new_infra or 0.0, infra),
        Asset("old_infra", ops.cost_of_old_infra or 0.0, _life(ops.life_of_old_infra_years, infra)),
    ]


def depreciation_schedule(assets: List[Asset], years: int = 10) -> List[float]:
    """Straight-line depreciation per year summed across assets.

    Each asset stops depreciating once its cost is exhausted; a fractional
    life leaves a partial charge in its last year.
    """
    out = [0.0] * years
    for asset in assets:
        if asset.cost <= 0:
            continue
        annual = asset.cost / asset.life_years
        remaining = asset.cost
        for i in range(years):
            charge = min(annual, remaining)
            if charge <= 0:
                break
            out[i] += charge
            remaining -= charge
    return out


def depreciable_base(assets: List[Asset]) -> float:
    return sum(max(0.0, a.cost) for a in assets)


def initial_capex(ops: OpsInputs) -> float:
    """Year-0 outflow: newly purchased machine, mould and infrastructure."""
    return (ops.cost_of_new_machine or 0.0) + (ops.cost_of_new_mould or 0.0) + (ops.cost_of_new_infra or 0.0)


def opening_debt(finance: FinanceAssumptions, ops: OpsInputs) -> float:
    # debt funds the new machine only
    return (finance.debt_pct or 0.0) * (ops.cost_of_new_machine or 0.0)


def power_cost(ops: OpsInputs, plant: PlantMaster, weight_kg: float) -> float:
    if weight_kg <= 0:
        return 0.0
    return (
        (ops.power_units_per_hour or 0.0)
        * ops.operating_hours_per_day
        * ops.working_days_per_year
        * (plant.power_rate_per_unit or 0.0)
    )


def manpower_cost(ops: OpsInputs, plant: PlantMaster, weight_kg: float) -> float:
    if weight_kg <= 0:
        return 0.0
    return (
        (ops.manpower_count or 0.0)
        * ops.shifts_per_day
        * ops.working_days_per_year
        * (plant.manpower_rate_per_shift or 0.0)
    )


def sga_rates(plant: PlantMaster, include_corp_sga: bool) -> tuple:
    """(plant, corp, total) SG&A per kg; aggregate rate when no split is given."""
    plant_rate = plant.plant_sga_per_kg or 0.0
    corp_rate = (plant.corp_sga_per_kg or 0.0) if include_corp_sga else 0.0
    if plant_rate == 0 and corp_rate == 0:
        return 0.0, 0.0, plant.sga_per_kg or 0.0
    return plant_rate, corp_rate, plant_rate + corp_rate


def tax_on(pbt: float, tax_rate: float) -> float:
    """Never negative: losses carry no tax credit."""
    return max(0.0, pbt) * max(0.0, tax_rate or 0.0)


def build_pnl(
    sku: Sku,
    finance: FinanceAssumptions,
    prices: List[PriceYear],
    volumes: List[YearVolumes],
    config: Optional[CalcConfig] = None,
) -> List[PnlYear]:
    """Per-year P&L for one SKU.

    Placements: packaging and freight-out sit in material cost only.
    Conversion cost is the blended plant rate when one is set, otherwise
    power + manpower + value-add + R&M + other manufacturing.
    """
    ops, plant = sku.ops, sku.plant_master
    years = len(volumes)
    dep = depreciation_schedule(capitalized_assets(ops, config), years)
    interest = opening_debt(finance, ops) * (finance.cost_of_debt_pct or 0.0)
    plant_sga_rate, corp_sga_rate, sga_rate = sga_rates(plant, finance.include_corp_sga)
    blended = plant.conversion_per_kg or 0.0

    rows: List[PnlYear] = []
    for v in volumes:
        p = prices[v.year - 1]
        kg = v.weight_kg

        # Revenue (no deductions modelled; net == gross)
        revenue_gross = p.price_per_piece * v.volume_pieces
        revenue_net = revenue_gross

        # Pass-through lines, inflated with their price components
        value_add = p.per_kg.value_add_per_kg * kg
        packaging = p.per_kg.packaging_per_kg * kg
        freight_out = p.per_kg.freight_out_per_kg * kg
        conversion_recovery = p.per_kg.conversion_per_kg * kg

        material_cost = (p.per_kg.rm_per_kg + p.per_kg.mb_per_kg) * kg + packaging + freight_out
        material_margin = revenue_net - material_cost

        power = power_cost(ops, plant, kg)
        manpower = manpower_cost(ops, plant, kg)
        r_and_m = (plant.r_and_m_per_kg or 0.0) * kg
        other_mfg = (plant.other_mfg_per_kg or 0.0) * kg
        if blended > 0:
            conversion_cost = blended * kg
        else:
            conversion_cost = power + manpower + value_add + r_and_m + other_mfg
        gross_margin = material_margin - conversion_cost

        plant_sga = plant_sga_rate * kg
        corp_sga = corp_sga_rate * kg
        sga = sga_rate * kg
        ebitda = gross_margin - sga

        ebit = ebitda - dep[v.year - 1]
        pbt = ebit - interest
        tax = tax_on(pbt, finance.corporate_tax_rate_pct)

        rows.append(PnlYear(
            year=v.year,
            revenue_gross=revenue_gross,
            revenue_net=revenue_net,
            material_cost=material_cost,
            material_margin=material_margin,
            power_cost=power,
            manpower_cost=manpower,
            value_add_cost=value_add,
            packaging_cost=packaging,
            freight_out_cost=freight_out,
            conversion_recovery_cost=conversion_recovery,
            r_and_m_cost=r_and_m,
            other_mfg_cost=other_mfg,
            plant_sga_cost=plant_sga,
            corp_sga_cost=corp_sga,
            sga_cost=sga,
            conversion_cost=conversion_cost,
            gross_margin=gross_margin,
            ebitda=ebitda,
            depreciation=dep[v.year - 1],
            ebit=ebit,
            interest=interest,
            pbt=pbt,
            tax=tax,
            pat=pbt - tax,
        ))
    return rows
