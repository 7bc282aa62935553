"""Typed accessors for the numeric inputs a batch run may perturb.

Every mutable parameter is a `ParameterKey` (``<group>.<field>``). The
registry is built once from the input dataclasses; a dotted path such as
``skus.0.costing.resinRsPerKg``, ``skus.*.ops.oee`` or ``finance.debtPct``
resolves to a `Lens` or fails with `PathError` up front.

Inputs are frozen dataclasses, so a lens never mutates: `update` returns a
new BusinessCase sharing every untouched group with the original.
"""
from __future__ import annotations
import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from services.forecasting.assumptions import (
    FIELD_ALIASES,
    SKU_GROUPS,
    BusinessCase,
    FinanceAssumptions,
    camel_case,
    field_kind,
)
from services.forecasting.errors import PathError

FINANCE = "finance"
ALL_SKUS = "*"

Updater = Callable[[Optional[float]], Optional[float]]


def _numeric_fields(cls) -> List[Tuple[str, str]]:
    out = []
    for f in dataclasses.fields(cls):
        kind = field_kind(str(f.type))
        if kind in ("float", "int"):
            out.append((f.name, kind))
    return out


def _build_registry() -> Dict[str, Tuple[str, str, str]]:
    """value -> (group, field, kind) for every numeric input field."""
    registry: Dict[str, Tuple[str, str, str]] = {}
    for group, cls in SKU_GROUPS.items():
        for name, kind in _numeric_fields(cls):
            registry[f"{group}.{name}"] = (group, name, kind)
    for name, kind in _numeric_fields(FinanceAssumptions):
        registry[f"{FINANCE}.{name}"] = (FINANCE, name, kind)
    return registry


_REGISTRY = _build_registry()

ParameterKey = Enum(
    "ParameterKey",
    {value.replace(".", "_").upper(): value for value in _REGISTRY},
    type=str,
)
ParameterKey.__doc__ = "Closed set of perturbable numeric inputs, valued '<group>.<field>'."

# accepted spellings (snake, camel, alias) -> canonical snake name
_GROUP_NAMES = {spelling: group for group in SKU_GROUPS for spelling in (group, camel_case(group))}


def _build_spellings() -> Dict[str, Dict[str, str]]:
    out: Dict[str, Dict[str, str]] = {}
    for group, name, _kind in _REGISTRY.values():
        spellings = out.setdefault(group, {})
        for spelling in (name, camel_case(name), *FIELD_ALIASES.get(name, ())):
            spellings[spelling] = name
    return out


_FIELD_NAMES = _build_spellings()


@dataclass(frozen=True)
class Lens:
    """Get/update one parameter on one SKU, on all SKUs, or on the finance block."""

    key: ParameterKey
    sku_index: Optional[int] = None  # None => every SKU (ignored for finance keys)

    @property
    def group(self) -> str:
        return _REGISTRY[self.key.value][0]

    @property
    def field(self) -> str:
        return _REGISTRY[self.key.value][1]

    @property
    def kind(self) -> str:
        return _REGISTRY[self.key.value][2]

    def _targets(self, bc: BusinessCase) -> List[int]:
        if self.sku_index is None:
            return list(range(len(bc.skus)))
        if not 0 <= self.sku_index < len(bc.skus):
            raise PathError(self.path, f"SKU index {self.sku_index} out of range")
        return [self.sku_index]

    @property
    def path(self) -> str:
        if self.group == FINANCE:
            return f"{FINANCE}.{self.field}"
        index = ALL_SKUS if self.sku_index is None else str(self.sku_index)
        return f"skus.{index}.{self.group}.{self.field}"

    def get(self, bc: BusinessCase) -> List[Optional[float]]:
        """Current value(s): one entry for finance or a single SKU, one per SKU for '*'."""
        if self.group == FINANCE:
            return [getattr(bc.finance, self.field)]
        values = []
        for i in self._targets(bc):
            group_obj = getattr(bc.skus[i], self.group)
            values.append(None if group_obj is None else getattr(group_obj, self.field))
        return values

    def _coerce(self, value: Optional[float]) -> Optional[float]:
        if value is None:
            return None
        return int(round(value)) if self.kind == "int" else float(value)

    def _replace_in(self, group_obj, cls, fn: Updater):
        current = None if group_obj is None else getattr(group_obj, self.field)
        new = fn(current)
        if new is None:
            return group_obj
        if group_obj is None:
            group_obj = cls()
        return dataclasses.replace(group_obj, **{self.field: self._coerce(new)})

    def update(self, bc: BusinessCase, fn: Updater) -> BusinessCase:
        """New case with fn(current) written to each target; fn returning None leaves it."""
        if self.group == FINANCE:
            finance = self._replace_in(bc.finance, FinanceAssumptions, fn)
            return dataclasses.replace(bc, finance=finance)
        skus = list(bc.skus)
        cls = SKU_GROUPS[self.group]
        for i in self._targets(bc):
            group_obj = getattr(skus[i], self.group)
            skus[i] = dataclasses.replace(skus[i], **{self.group: self._replace_in(group_obj, cls, fn)})
        return dataclasses.replace(bc, skus=tuple(skus))

    def set(self, bc: BusinessCase, value: float) -> BusinessCase:
        return self.update(bc, lambda _current: value)


def perturb(current: Optional[float], delta: float, percent: bool = True) -> Optional[float]:
    """percent ? x*(1+delta) : x+delta; unset values stay unset."""
    if current is None:
        return None
    return current * (1.0 + delta) if percent else current + delta


def resolve_path(path: str) -> Lens:
    """Parse a dotted parameter path into a Lens; PathError when unknown."""
    if not isinstance(path, str) or not path:
        raise PathError(str(path))
    parts = path.split(".")
    if parts[0] == FINANCE and len(parts) == 2:
        name = _FIELD_NAMES[FINANCE].get(parts[1])
        if name is None:
            raise PathError(path)
        return Lens(key=ParameterKey(f"{FINANCE}.{name}"))
    if parts[0] == "skus" and len(parts) == 4:
        index_raw, group_raw, field_raw = parts[1:]
        if index_raw == ALL_SKUS:
            index = None
        elif index_raw.isdigit():
            index = int(index_raw)
        else:
            raise PathError(path, "SKU index must be a number or '*'")
        group = _GROUP_NAMES.get(group_raw)
        name = _FIELD_NAMES.get(group or "", {}).get(field_raw)
        if group is None or name is None:
            raise PathError(path)
        return Lens(key=ParameterKey(f"{group}.{name}"), sku_index=index)
    raise PathError(path)


def try_resolve_path(path: str) -> Optional[Lens]:
    try:
        return resolve_path(path)
    except PathError:
        return None
