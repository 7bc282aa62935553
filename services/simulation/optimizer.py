from __future__ import annotations
import itertools
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from services.config.env import CalcConfig, SimulationConfig, get_simulation_config
from services.config.logging import get_logger
from services.forecasting.assumptions import BusinessCase, coerce_number, to_camel_dict
from services.forecasting.errors import InputError
from services.simulation.metrics import OutcomeMetric, parse_metrics
from services.simulation.paths import Lens, resolve_path
from services.simulation.runner import recompute

logger = get_logger(__name__)


@dataclass
class GridPoint:
    values: Dict[str, float]
    metric_value: Optional[float]


@dataclass
class GridSearchResult:
    metric: OutcomeMetric
    target: Optional[float]
    points: List[GridPoint] = field(default_factory=list)
    best: Optional[GridPoint] = None

    def to_dict(self) -> Dict[str, Any]:
        return to_camel_dict(self)


@dataclass
class SolveResult:
    path: str
    metric: OutcomeMetric
    target: float
    multiplier: float
    value: Optional[float]  # parameter value(s) at the solution, first target
    metric_value: Optional[float]
    relative_error: Optional[float]  # None when the metric was never defined
    iterations: int
    converged: bool

    def to_dict(self) -> Dict[str, Any]:
        return to_camel_dict(self)


def _metric(bc: BusinessCase, metric: OutcomeMetric, config: Optional[CalcConfig]) -> Optional[float]:
    return recompute(bc, [metric], config)[metric.value]


def _axis_values(path: str, values) -> List[float]:
    if not isinstance(values, (list, tuple)):
        raise InputError("invalid_shape", "axis values must be a list", f"axes.{path}")
    return [coerce_number(v, f"axes.{path}.{i}") for i, v in enumerate(values)]


def grid_search(
    bc: BusinessCase,
    axes: Sequence[Tuple[str, Sequence[float]]],
    metric,
    target: Optional[float] = None,
    config: Optional[CalcConfig] = None,
    sim: Optional[SimulationConfig] = None,
) -> GridSearchResult:
    """Evaluate `metric` on the cartesian product of absolute values per path.

    Best point: closest to `target` when given, otherwise the highest value.
    Points where the metric is undefined (e.g. IRR) never win.
    """
    (metric,) = parse_metrics([metric])
    sim = sim or get_simulation_config()
    lenses: List[Tuple[str, Lens]] = [(path, resolve_path(path)) for path, _ in axes]
    grid = list(itertools.product(*[_axis_values(path, values) for path, values in axes]))
    if len(grid) > sim.max_runs:
        raise InputError("budget_exceeded", f"grid of {len(grid)} points exceeds the run budget of {sim.max_runs}", "axes")
    logger.info("grid search case=%s metric=%s points=%d", bc.id, metric.value, len(grid))

    result = GridSearchResult(metric=metric, target=target)
    best_score: Optional[float] = None
    for combo in grid:
        modified = bc
        for (path, lens), value in zip(lenses, combo):
            modified = lens.set(modified, value)
        point = GridPoint(values={path: v for (path, _), v in zip(lenses, combo)},
                          metric_value=_metric(modified, metric, config))
        result.points.append(point)
        if point.metric_value is None:
            continue
        score = -abs(point.metric_value - target) if target is not None else point.metric_value
        if best_score is None or score > best_score:
            best_score, result.best = score, point
    return result


def _relative_error(value: Optional[float], target: float) -> float:
    if value is None:
        return float("inf")
    return abs(value - target) / abs(target) if target else abs(value - target)


def solve_for_target(
    bc: BusinessCase,
    path: str,
    metric,
    target: float,
    lo: float = 0.1,
    hi: float = 10.0,
    tol: float = 1e-6,
    max_iter: int = 100,
    config: Optional[CalcConfig] = None,
) -> SolveResult:
    """Bisect a multiplier on the parameter at `path` until `metric` hits `target`.

    The multiplier scales the current value(s) and is searched in [lo, hi].
    Direction is read from the metric at the two bounds; the best point seen
    is returned when the tolerance is not met.
    """
    (metric,) = parse_metrics([metric])
    lens = resolve_path(path)

    def evaluate(m: float) -> Optional[float]:
        scaled = lens.update(bc, lambda current: None if current is None else current * m)
        return _metric(scaled, metric, config)

    at_lo, at_hi = evaluate(lo), evaluate(hi)
    increasing = at_lo is None or at_hi is None or at_hi >= at_lo

    best_m, best_v, best_err = lo, at_lo, _relative_error(at_lo, target)
    if _relative_error(at_hi, target) < best_err:
        best_m, best_v, best_err = hi, at_hi, _relative_error(at_hi, target)
    iterations = 0
    converged = False
    while iterations < max_iter:
        iterations += 1
        mid = (lo + hi) / 2.0
        value = evaluate(mid)
        err = _relative_error(value, target)
        if err < best_err:
            best_m, best_v, best_err = mid, value, err
        if err < tol:
            converged = True
            break
        below = value is None or value < target
        if below == increasing:
            lo = mid
        else:
            hi = mid

    current = lens.get(bc)
    base = current[0] if current else None
    logger.info("solve path=%s metric=%s target=%s converged=%s iterations=%d", path, metric.value, target, converged, iterations)
    return SolveResult(
        path=path,
        metric=metric,
        target=target,
        multiplier=best_m,
        value=None if base is None else base * best_m,
        metric_value=best_v,
        relative_error=None if best_v is None else best_err,
        iterations=iterations,
        converged=converged,
    )
