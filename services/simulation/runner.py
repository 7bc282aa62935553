"""Batch recomputation: baseline, sensitivity sweeps and named scenarios.

Every unit of work clones the baseline case through a lens, recomputes the
full pipeline and extracts the requested metrics. A failing unit is tagged
and reported in the envelope's `errors`; its siblings still run.
"""
from __future__ import annotations
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from services.config.env import CalcConfig, SimulationConfig, get_simulation_config
from services.config.logging import get_logger
from services.forecasting.assumptions import BusinessCase, to_camel_dict
from services.forecasting.engine import calculate
from services.forecasting.errors import InputError, PathError
from services.simulation.metrics import DEFAULT_METRICS, MetricValues, empty_metrics, extract_metrics, parse_metrics
from services.simulation.paths import perturb, resolve_path
from services.simulation.presets import VARIABLES_BY_ID, apply_delta

logger = get_logger(__name__)

UNRESOLVED_PATH = "unresolved_path"
BUDGET_EXCEEDED = "budget_exceeded"


@dataclass(frozen=True)
class PerturbationSpec:
    variable_id: str  # dotted parameter path or a named variable id
    deltas: Tuple[float, ...]
    percent: bool = True

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "PerturbationSpec":
        if not isinstance(d, dict):
            raise InputError("invalid_shape", "perturbation spec must be an object", "specs")
        variable_id = d.get("variableId", d.get("variable_id"))
        deltas = d.get("deltas")
        if not isinstance(variable_id, str) or not isinstance(deltas, list):
            raise InputError("invalid_shape", "perturbation spec needs variableId and a list of deltas", "specs")
        if any(isinstance(x, bool) or not isinstance(x, (int, float)) for x in deltas):
            raise InputError("invalid_value", "deltas must be numbers", f"specs.{variable_id}")
        return PerturbationSpec(variable_id, tuple(float(x) for x in deltas), d.get("percent") is not False)


@dataclass(frozen=True)
class ScenarioDefinition:
    id: str
    name: str
    overrides: Dict[str, float] = field(default_factory=dict)  # path -> absolute value

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "ScenarioDefinition":
        if not isinstance(d, dict):
            raise InputError("invalid_shape", "scenario must be an object", "scenarios")
        overrides = d.get("overrides") or {}
        if not isinstance(overrides, dict):
            raise InputError("invalid_shape", "scenario overrides must be an object", "scenarios")
        return ScenarioDefinition(str(d.get("id", "")), str(d.get("name", "")), dict(overrides))


@dataclass
class SensitivityRunItem:
    variable_id: str
    delta: float
    metrics: MetricValues
    error: Optional[str] = None


@dataclass
class ScenarioRunResult:
    scenario_id: str
    name: str
    metrics: MetricValues
    error: Optional[str] = None


@dataclass
class BatchError:
    ref: str  # variable id or scenario id
    error: str
    message: str
    delta: Optional[float] = None


@dataclass
class SensitivityResponse:
    baseline: MetricValues
    results: List[SensitivityRunItem]
    errors: List[BatchError] = field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return to_camel_dict(self)


@dataclass
class ScenarioResponse:
    baseline: MetricValues
    results: List[ScenarioRunResult]
    errors: List[BatchError] = field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return to_camel_dict(self)


def recompute(bc: BusinessCase, metrics: Iterable = DEFAULT_METRICS, config: Optional[CalcConfig] = None) -> MetricValues:
    """The single recompute-and-extract primitive every batch is built on."""
    return extract_metrics(calculate(bc, config), metrics)


def run_baseline(bc: BusinessCase, metrics: Iterable = DEFAULT_METRICS, config: Optional[CalcConfig] = None) -> MetricValues:
    return recompute(bc, metrics, config)


@dataclass
class _Outcome:
    metrics: MetricValues
    error: Optional[str] = None
    message: str = ""


def _error_tag(exc: Exception) -> Tuple[str, str]:
    if isinstance(exc, PathError):
        return f"{UNRESOLVED_PATH}:{exc.path}", exc.message
    if isinstance(exc, InputError):
        return f"{exc.kind}:{exc.field or ''}", exc.message
    return f"exception:{type(exc).__name__}", str(exc)


def _execute(
    units: Sequence[Callable[[], _Outcome]],
    sim: SimulationConfig,
    cancel: Optional[threading.Event],
) -> Tuple[List[Optional[_Outcome]], bool]:
    """Run units in submission order; None marks a unit dropped by cancellation."""
    outcomes: List[Optional[_Outcome]] = [None] * len(units)
    budget = sim.max_runs

    def guarded(unit: Callable[[], _Outcome]) -> _Outcome:
        try:
            return unit()
        except Exception as e:  # one failing unit must not sink the batch
            tag, message = _error_tag(e)
            return _Outcome(empty_metrics(), tag, message)

    def over_budget() -> _Outcome:
        return _Outcome(empty_metrics(), BUDGET_EXCEEDED, f"run budget of {budget} exhausted")

    if sim.max_workers <= 1:
        for i, unit in enumerate(units):
            if cancel is not None and cancel.is_set():
                return outcomes, True
            outcomes[i] = guarded(unit) if i < budget else over_budget()
        return outcomes, False

    cancelled = False
    with ThreadPoolExecutor(max_workers=sim.max_workers) as pool:
        futures: List[Optional[Future]] = [
            pool.submit(guarded, unit) if i < budget else None for i, unit in enumerate(units)
        ]
        for i, fut in enumerate(futures):
            if cancel is not None and cancel.is_set():
                cancelled = True
                for pending in futures[i:]:
                    if pending is not None:
                        pending.cancel()
                break
            outcomes[i] = fut.result() if fut is not None else over_budget()
    return outcomes, cancelled


def _sensitivity_unit(
    bc: BusinessCase,
    spec: PerturbationSpec,
    delta: float,
    metrics: list,
    baseline: MetricValues,
    config: Optional[CalcConfig],
) -> Callable[[], _Outcome]:
    def unit() -> _Outcome:
        named = VARIABLES_BY_ID.get(spec.variable_id)
        if named is not None:
            return _Outcome(recompute(apply_delta(bc, named, delta, spec.percent), metrics, config))
        try:
            lens = resolve_path(spec.variable_id)
            modified = lens.update(bc, lambda current: perturb(current, delta, spec.percent))
        except PathError as e:
            # nothing to perturb: report the unmodified baseline with a tag
            return _Outcome(dict(baseline), f"{UNRESOLVED_PATH}:{e.path}", e.message)
        return _Outcome(recompute(modified, metrics, config))

    return unit


def run_sensitivity(
    bc: BusinessCase,
    specs: Sequence[PerturbationSpec],
    metrics: Iterable = DEFAULT_METRICS,
    baseline_override: Optional[MetricValues] = None,
    config: Optional[CalcConfig] = None,
    sim: Optional[SimulationConfig] = None,
    cancel: Optional[threading.Event] = None,
) -> SensitivityResponse:
    """One result per (spec, delta), in spec order then delta order."""
    wanted = parse_metrics(metrics)
    sim = sim or get_simulation_config()
    baseline = baseline_override if baseline_override is not None else run_baseline(bc, wanted, config)

    pairs = [(spec, delta) for spec in specs for delta in spec.deltas]
    logger.info("sensitivity batch case=%s specs=%d runs=%d", bc.id, len(specs), len(pairs))
    units = [_sensitivity_unit(bc, spec, delta, wanted, baseline, config) for spec, delta in pairs]
    outcomes, cancelled = _execute(units, sim, cancel)

    response = SensitivityResponse(baseline=baseline, results=[], cancelled=cancelled)
    for (spec, delta), outcome in zip(pairs, outcomes):
        if outcome is None:
            continue
        response.results.append(SensitivityRunItem(spec.variable_id, delta, outcome.metrics, outcome.error))
        if outcome.error:
            logger.warning("sensitivity unit failed variable=%s delta=%s error=%s", spec.variable_id, delta, outcome.error)
            response.errors.append(BatchError(spec.variable_id, outcome.error, outcome.message, delta))
    return response


def _scenario_unit(
    bc: BusinessCase,
    scenario: ScenarioDefinition,
    metrics: list,
    config: Optional[CalcConfig],
) -> Callable[[], _Outcome]:
    def unit() -> _Outcome:
        modified = bc
        missed: List[str] = []
        for path, value in scenario.overrides.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InputError("invalid_value", "override values must be numbers", path)
            try:
                modified = resolve_path(path).set(modified, float(value))
            except PathError:
                missed.append(path)
        result = recompute(modified, metrics, config)
        if missed:
            # the resolvable overrides still apply
            return _Outcome(result, f"{UNRESOLVED_PATH}:{','.join(missed)}", "unresolvable parameter path")
        return _Outcome(result)

    return unit


def run_scenarios(
    bc: BusinessCase,
    scenarios: Sequence[ScenarioDefinition],
    metrics: Iterable = DEFAULT_METRICS,
    config: Optional[CalcConfig] = None,
    sim: Optional[SimulationConfig] = None,
    cancel: Optional[threading.Event] = None,
) -> ScenarioResponse:
    """One result per scenario; overrides are absolute values keyed by path."""
    wanted = parse_metrics(metrics)
    sim = sim or get_simulation_config()
    baseline = run_baseline(bc, wanted, config)

    logger.info("scenario batch case=%s scenarios=%d", bc.id, len(scenarios))
    units = [_scenario_unit(bc, s, wanted, config) for s in scenarios]
    outcomes, cancelled = _execute(units, sim, cancel)

    response = ScenarioResponse(baseline=baseline, results=[], cancelled=cancelled)
    for scenario, outcome in zip(scenarios, outcomes):
        if outcome is None:
            continue
        response.results.append(ScenarioRunResult(scenario.id, scenario.name, outcome.metrics, outcome.error))
        if outcome.error:
            logger.warning("scenario unit failed scenario=%s error=%s", scenario.id, outcome.error)
            response.errors.append(BatchError(scenario.id, outcome.error, outcome.message))
    return response
