from __future__ import annotations
from dataclasses import dataclass

from services.forecasting.assumptions import NpdInputs, OpsInputs, Sku
from services.forecasting.errors import InputError

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class Capacity:
    units_per_hour: float
    units_per_day: float
    annual_capacity_pieces: float


def compute_capacity(npd: NpdInputs, ops: OpsInputs) -> Capacity:
    """Theoretical throughput of one mould on one machine.

    units/hour = cavities * (60 / cycle seconds) * OEE, scaled by operating
    hours per day and working days per year.
    """
    if npd.cycle_time_seconds <= 0:
        raise InputError("invalid_value", "cycle time must be > 0 seconds", "npd.cycleTimeSeconds")
    units_per_hour = npd.cavities * (60.0 / npd.cycle_time_seconds) * ops.oee
    units_per_day = units_per_hour * ops.operating_hours_per_day
    return Capacity(
        units_per_hour=units_per_hour,
        units_per_day=units_per_day,
        annual_capacity_pieces=units_per_day * ops.working_days_per_year,
    )


def daily_production_capacity(cavities: int, cycle_time_seconds: float, oee: float) -> float:
    """Round-the-clock pieces per day; 0 for a non-positive cycle time."""
    if cycle_time_seconds <= 0:
        return 0.0
    return cavities * SECONDS_PER_DAY * oee / cycle_time_seconds


def utilization_days(annual_volume_pieces: float, daily_capacity: float) -> float:
    if daily_capacity <= 0:
        return 0.0
    return annual_volume_pieces / daily_capacity


@dataclass(frozen=True)
class ProductionMetrics:
    daily_capacity: float
    utilization_days: float


def production_metrics(sku: Sku) -> ProductionMetrics:
    daily = daily_production_capacity(sku.npd.cavities, sku.npd.cycle_time_seconds, sku.ops.oee)
    return ProductionMetrics(
        daily_capacity=daily,
        utilization_days=utilization_days(sku.sales.base_annual_volume_pieces, daily),
    )
