from __future__ import annotations
import dataclasses
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from services.forecasting.errors import InputError

# All *_pct fields are fractions (0.05 == 5%).


@dataclass(frozen=True)
class PlantMaster:
    plant: str = ""
    manpower_rate_per_shift: float = 0.0  # Rs per person per shift
    power_rate_per_unit: float = 0.0  # Rs per kWh
    r_and_m_per_kg: float = 0.0
    other_mfg_per_kg: float = 0.0
    plant_sga_per_kg: float = 0.0
    corp_sga_per_kg: float = 0.0
    sga_per_kg: float = 0.0  # aggregate SG&A
    conversion_per_kg: Optional[float] = None  # blended conversion cost


@dataclass(frozen=True)
class SalesInputs:
    product_weight_grams: float
    base_annual_volume_pieces: float
    conversion_recovery_rs_per_piece: Optional[float] = None
    yoy_growth_pct: Optional[float] = None  # overrides the case-level growth


@dataclass(frozen=True)
class NpdInputs:
    cavities: int
    cycle_time_seconds: float
    machine_name: str = ""
    plant: str = ""  # key into PlantMaster.plant
    polymer: str = ""
    masterbatch: str = ""


@dataclass(frozen=True)
class OpsInputs:
    oee: float
    operating_hours_per_day: float = 24.0
    working_days_per_year: float = 365.0
    shifts_per_day: float = 3.0
    power_units_per_hour: float = 0.0
    manpower_count: float = 0.0
    machine_available: bool = True  # UI flag, not used in math
    new_machine_required: bool = False
    new_mould_required: bool = False
    new_infra_required: bool = False
    cost_of_new_machine: float = 0.0
    cost_of_old_machine: float = 0.0
    cost_of_new_mould: float = 0.0
    cost_of_old_mould: float = 0.0
    cost_of_new_infra: float = 0.0
    cost_of_old_infra: float = 0.0
    life_of_new_machine_years: Optional[float] = None
    life_of_new_mould_years: Optional[float] = None
    life_of_new_infra_years: Optional[float] = None
    life_of_old_machine_years: Optional[float] = None
    life_of_old_mould_years: Optional[float] = None
    life_of_old_infra_years: Optional[float] = None
    working_capital_days: Optional[float] = None


@dataclass(frozen=True)
class CostingInputs:
    resin_rs_per_kg: float
    resin_discount_pct: float = 0.0
    freight_inwards_rs_per_kg: float = 0.0
    wastage_pct: float = 0.0  # applied to resin and MB
    mb_rs_per_kg: float = 0.0
    use_mb_price_override: bool = True  # False => MB priced off net resin
    mb_ratio_pct: float = 0.0
    packaging_rs_per_kg: float = 0.0
    freight_out_rs_per_kg: float = 0.0
    packaging_rs_per_piece: float = 0.0  # legacy fallback
    freight_out_rs_per_piece: float = 0.0  # legacy fallback
    value_add_rs_per_piece: float = 0.0
    conversion_inflation_pct: Tuple[float, ...] = ()
    rm_inflation_pct: Tuple[float, ...] = ()


@dataclass(frozen=True)
class AltConversionInputs:
    machine_rate_per_day_rs: Optional[float] = None


@dataclass(frozen=True)
class Sku:
    id: str
    name: str
    sales: SalesInputs
    npd: NpdInputs
    ops: OpsInputs
    costing: CostingInputs
    plant_master: PlantMaster
    alt_conversion: Optional[AltConversionInputs] = None

    @staticmethod
    def from_dict(payload: Dict[str, Any], where: str = "sku") -> "Sku":
        if not isinstance(payload, dict):
            raise InputError("invalid_shape", "SKU must be an object", where)
        groups = {}
        for attr, cls in SKU_GROUPS.items():
            raw = _lookup(payload, attr)
            if raw is None:
                if attr == "alt_conversion":
                    continue
                raise InputError("missing_field", "SKU is missing a required group", f"{where}.{camel_case(attr)}")
            groups[attr] = _build(cls, raw, f"{where}.{camel_case(attr)}")
        sku_id = _lookup(payload, "id")
        return Sku(
            id=str(sku_id) if sku_id is not None else where,
            name=str(_lookup(payload, "name") or ""),
            **groups,
        )


@dataclass(frozen=True)
class FinanceAssumptions:
    include_corp_sga: bool = False
    debt_pct: float = 0.0  # share of capex funded by debt
    cost_of_debt_pct: float = 0.0
    cost_of_equity_pct: float = 0.0
    corporate_tax_rate_pct: float = 0.0
    wacc_pct: Optional[float] = None  # explicit override
    annual_volume_growth_pct: float = 0.0


@dataclass(frozen=True)
class BusinessCase:
    id: str
    name: str
    skus: Tuple[Sku, ...]
    finance: FinanceAssumptions = field(default_factory=FinanceAssumptions)
    created_at: str = ""
    updated_at: str = ""

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "BusinessCase":
        """Build a case from caller JSON (camelCase or snake_case keys) and validate it."""
        if not isinstance(payload, dict):
            raise InputError("invalid_shape", "business case must be an object")
        raw_skus = _lookup(payload, "skus")
        if not isinstance(raw_skus, list):
            raise InputError("missing_field", "business case needs a list of SKUs", "skus")
        skus = tuple(Sku.from_dict(s, f"skus.{i}") for i, s in enumerate(raw_skus))
        finance_raw = _lookup(payload, "finance") or {}
        bc = BusinessCase(
            id=str(_lookup(payload, "id") or ""),
            name=str(_lookup(payload, "name") or ""),
            skus=skus,
            finance=_build(FinanceAssumptions, finance_raw, "finance"),
            created_at=str(_lookup(payload, "created_at") or ""),
            updated_at=str(_lookup(payload, "updated_at") or ""),
        )
        validate_business_case(bc)
        return bc

    def to_dict(self) -> Dict[str, Any]:
        return to_camel_dict(self)


SKU_GROUPS = {
    "sales": SalesInputs,
    "npd": NpdInputs,
    "ops": OpsInputs,
    "costing": CostingInputs,
    "plant_master": PlantMaster,
    "alt_conversion": AltConversionInputs,
}

# camelCase spellings that do not follow the mechanical conversion
FIELD_ALIASES = {
    "include_corp_sga": ("includeCorpSGA",),
    "sga_per_kg": ("sellingGeneralAndAdministrativeExpensesPerKg",),
}


def camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p[:1].upper() + p[1:] for p in rest)


def _lookup(payload: Dict[str, Any], name: str) -> Any:
    for key in (name, camel_case(name), *FIELD_ALIASES.get(name, ())):
        if key in payload:
            return payload[key]
    return None


def _coerce(kind: str, value: Any, where: str) -> Any:
    if kind == "str":
        return str(value)
    if kind == "bool":
        if isinstance(value, bool):
            return value
        raise InputError("invalid_value", "expected a boolean", where)
    if kind == "series":
        if not isinstance(value, (list, tuple)):
            raise InputError("invalid_value", "expected a list of rates", where)
        return tuple(_coerce("float", v if v is not None else 0.0, f"{where}.{i}") for i, v in enumerate(value))
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InputError("invalid_value", "expected a number", where)
    number = float(value)
    if not math.isfinite(number):
        raise InputError("invalid_value", "expected a finite number", where)
    if kind == "int":
        if not number.is_integer():
            raise InputError("invalid_value", "expected a whole number", where)
        return int(number)
    return number


def coerce_number(value: Any, where: str) -> float:
    """Finite float from caller JSON; InputError naming `where` otherwise."""
    return _coerce("float", value, where)


def field_kind(annotation: str) -> str:
    if "Tuple" in annotation:
        return "series"
    for kind in ("bool", "str", "int"):
        if annotation.startswith(kind) or annotation.startswith(f"Optional[{kind}"):
            return kind
    return "float"


def _build(cls, payload: Any, where: str):
    if not isinstance(payload, dict):
        raise InputError("invalid_shape", "expected an object", where)
    kwargs = {}
    for f in dataclasses.fields(cls):
        value = _lookup(payload, f.name)
        path = f"{where}.{camel_case(f.name)}"
        if value is None:
            if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
                raise InputError("missing_field", "required field is missing", path)
            continue
        kwargs[f.name] = _coerce(field_kind(str(f.type)), value, path)
    return cls(**kwargs)


def to_camel_dict(obj: Any) -> Any:
    """Recursively convert dataclasses/tuples/enums into camelCase JSON-ready values."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {
            FIELD_ALIASES.get(f.name, (camel_case(f.name),))[0]: to_camel_dict(getattr(obj, f.name))
            for f in dataclasses.fields(obj)
        }
    if isinstance(obj, (list, tuple)):
        return [to_camel_dict(v) for v in obj]
    if isinstance(obj, dict):
        return {k: to_camel_dict(v) for k, v in obj.items()}
    if isinstance(obj, Enum):
        return obj.value
    return obj


def validate_business_case(bc: BusinessCase) -> None:
    """Fail fast on inputs the pipeline cannot model.

    Numerically degenerate but legal values (zero volume, zero capex,
    zero working-capital days) pass; they are guarded inside the math.
    """
    if not bc.skus:
        raise InputError("empty_case", "business case must contain at least one SKU", "skus")
    if bc.finance.wacc_pct is not None and bc.finance.wacc_pct <= -1.0:
        raise InputError("invalid_value", "WACC override must be greater than -100%", "finance.waccPct")
    seen = set()
    for i, sku in enumerate(bc.skus):
        where = f"skus.{i}"
        if sku.id in seen:
            raise InputError("duplicate_sku", f"duplicate SKU id '{sku.id}'", f"{where}.id")
        seen.add(sku.id)
        if sku.sales.product_weight_grams <= 0:
            raise InputError("invalid_value", "product weight must be > 0 grams", f"{where}.sales.productWeightGrams")
        if sku.sales.base_annual_volume_pieces < 0:
            raise InputError("invalid_value", "base annual volume must be >= 0", f"{where}.sales.baseAnnualVolumePieces")
        if sku.npd.cavities <= 0:
            raise InputError("invalid_value", "mould cavities must be > 0", f"{where}.npd.cavities")
        if sku.npd.cycle_time_seconds <= 0:
            raise InputError("invalid_value", "cycle time must be > 0 seconds", f"{where}.npd.cycleTimeSeconds")
        if not (0.0 <= sku.ops.oee <= 1.0):
            raise InputError("invalid_value", "OEE must be between 0 and 1", f"{where}.ops.oee")
