from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
import threading
import time
import uuid

import json
from pathlib import Path
import queue

from services.config.env import get_api_config, get_calc_config
from services.config.logging import get_logger
from services.forecasting.assumptions import BusinessCase
from services.forecasting.engine import calculate
from services.simulation.metrics import DEFAULT_METRICS, extract_metrics
from services.simulation.runner import PerturbationSpec, run_sensitivity
from services.exports.writers import write_cashflow, write_pnl, write_prices, write_returns, write_volumes
from services.exports.reports import (
    assumptions_md,
    case_assumptions,
    case_warnings,
    validation_checks,
    validation_report_md,
)

logger = get_logger(__name__)


@dataclass
class Run:
    id: str
    case_name: str
    business_case: Optional[BusinessCase] = None
    metrics: List[str] = field(default_factory=list)
    sensitivity: List[PerturbationSpec] = field(default_factory=list)
    status: str = "queued"  # queued|running|completed|failed
    events: List[Dict[str, Any]] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)
    artifacts: Dict[str, str] = field(default_factory=dict)  # filename -> content
    error: Optional[str] = None


class RunRegistry:
    def __init__(self):
        self._runs: Dict[str, Run] = {}
        self._lock = threading.Lock()

    def create(self, case_name: str, **kwargs) -> Run:
        rid = f"r_{uuid.uuid4().hex[:8]}"
        run = Run(id=rid, case_name=case_name, **kwargs)
        with self._lock:
            self._runs[rid] = run
        return run

    def get(self, rid: str) -> Optional[Run]:
        with self._lock:
            return self._runs.get(rid)

    def update(self, rid: str, **kwargs):
        with self._lock:
            r = self._runs.get(rid)
            if not r:
                return
            for k, v in kwargs.items():
                setattr(r, k, v)


_CONFIG = get_api_config()
ARTIFACTS_ROOT = Path(_CONFIG.artifacts_root).resolve()
ARTIFACTS_ROOT.mkdir(parents=True, exist_ok=True)

# Track retries per run id
_retries: Dict[str, int] = {}


# Minimal in-process queue feeding background workers
_JOB_Q: "queue.Queue[str]" = queue.Queue(maxsize=100)


def _persist_run(run: "Run") -> None:
    """Persist artifacts and a metadata JSON for the run to disk."""
    run_dir = ARTIFACTS_ROOT / run.id
    run_dir.mkdir(parents=True, exist_ok=True)
    # Write artifacts
    for name, body in (run.artifacts or {}).items():
        (run_dir / name).write_text(body)
    # Write metadata/summary/events
    meta = {
        "run_id": run.id,
        "case_name": run.case_name,
        "status": run.status,
        "summary": run.summary,
        "events": run.events,
        "error": run.error,
        "artifacts": list(run.artifacts.keys()),
        "completed_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
    }
    (run_dir / "run.json").write_text(json.dumps(meta, indent=2))


def _worker_loop(worker_id: int = 0):  # pragma: no cover (verified via API tests)
    while True:
        rid = _JOB_Q.get()
        try:
            run = REGISTRY.get(rid)
            if run is None:
                continue
            try:
                orchestrate(run)
            except Exception:
                # Orchestrate already marks run failed; try retry/backoff
                count = _retries.get(rid, 0)
                if count < _CONFIG.job_max_retries:
                    _retries[rid] = count + 1
                    time.sleep(_CONFIG.job_backoff_base * (2 ** count))
                    _JOB_Q.put(rid)
                    continue
                _retries.pop(rid, None)
            # Persist regardless of success/failure
            try:
                _persist_run(run)
            except OSError:
                logger.exception("worker %d: could not persist run %s", worker_id, rid)
        finally:
            _JOB_Q.task_done()


REGISTRY = RunRegistry()

# Start worker threads at import time (daemon)
_workers: List[threading.Thread] = []
for i in range(max(1, _CONFIG.job_workers)):
    t = threading.Thread(target=_worker_loop, kwargs={'worker_id': i}, daemon=True)
    t.start()
    _workers.append(t)


def _event(run: Run, stage: str, message: str):
    run.events.append({"stage": stage, "message": message, "ts": time.time()})


def orchestrate(run: Run):
    """Calculate, optionally sweep sensitivities, and render artifacts.

    Marks the run failed and re-raises on error so the worker can retry.
    """
    try:
        REGISTRY.update(run.id, status="running")
        bc = run.business_case
        if bc is None:
            raise ValueError("run has no business case")

        _event(run, "Calculate", f"Projecting {len(bc.skus)} SKU(s)")
        calc = calculate(bc)
        metrics = run.metrics or [m.value for m in DEFAULT_METRICS]

        artifacts: Dict[str, str] = {}
        if run.sensitivity:
            runs = sum(len(s.deltas) for s in run.sensitivity)
            _event(run, "Sensitivity", f"Running {runs} perturbation(s)")
            response = run_sensitivity(bc, run.sensitivity, metrics, baseline_override=extract_metrics(calc, metrics))
            artifacts["sensitivity.json"] = json.dumps(response.to_dict(), indent=2)

        _event(run, "Export", "Generating CSVs and reports")
        shown = get_calc_config().display_years
        artifacts.update({
            "volumes.csv": write_volumes(calc, shown),
            "prices.csv": write_prices(calc, shown),
            "pnl.csv": write_pnl(calc, shown),
            "cashflow.csv": write_cashflow(calc, shown),
            "returns.csv": write_returns(calc),
            "assumptions.md": assumptions_md(case_assumptions(bc, calc), warnings=case_warnings(bc, calc)),
            "validation_report.md": validation_report_md(validation_checks(bc, calc), details={
                "years": len(calc.pnl),
                "skus": len(calc.by_sku),
            }),
        })
        REGISTRY.update(run.id, artifacts=artifacts, summary={
            "npv": calc.returns.npv,
            "irr": calc.returns.irr,
            "payback_years": calc.returns.payback_years,
            "wacc": calc.returns.wacc,
            "metrics": extract_metrics(calc, metrics),
        })
        _event(run, "Done", "Run completed")
        REGISTRY.update(run.id, status="completed")
        logger.info("run %s completed npv=%.2f", run.id, calc.returns.npv)
    except Exception as e:
        REGISTRY.update(run.id, status="failed", error=str(e))
        _event(run, "Error", str(e))
        logger.warning("run %s failed: %s", run.id, e)
        raise


def start_run(bc: BusinessCase, metrics: Sequence[str] = (), sensitivity: Sequence[PerturbationSpec] = ()) -> str:
    run = REGISTRY.create(bc.name or bc.id, business_case=bc, metrics=list(metrics), sensitivity=list(sensitivity))
    # Enqueue job for background worker
    _JOB_Q.put(run.id)
    return run.id
