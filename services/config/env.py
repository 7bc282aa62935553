from __future__ import annotations
import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


@dataclass(frozen=True)
class CalcConfig:
    years: int = 10  # projection horizon computed internally
    display_years: int = 5  # subset surfaced by tables/exports
    default_wacc: float = 0.14
    default_wc_days: float = 60.0
    default_machine_life_years: float = 15.0
    default_mould_life_years: float = 15.0
    default_infra_life_years: float = 30.0


def get_calc_config() -> CalcConfig:
    return CalcConfig(
        years=_env_int("CALC_YEARS", 10),
        display_years=_env_int("CALC_DISPLAY_YEARS", 5),
        default_wacc=_env_float("CALC_DEFAULT_WACC", 0.14),
        default_wc_days=_env_float("CALC_DEFAULT_WC_DAYS", 60.0),
    )


@dataclass(frozen=True)
class SimulationConfig:
    max_workers: int = 1  # 1 => sequential
    max_runs: int = 500  # recompute budget per batch


def get_simulation_config() -> SimulationConfig:
    return SimulationConfig(
        max_workers=max(1, _env_int("SIM_MAX_WORKERS", 1)),
        max_runs=max(1, _env_int("SIM_MAX_RUNS", 500)),
    )


@dataclass(frozen=True)
class ApiConfig:
    api_key: str | None = None
    rate_limit_n: int = 5
    rate_limit_window_sec: float = 1.0
    artifacts_root: str = "./run_artifacts"
    job_workers: int = 2
    job_max_retries: int = 1
    job_backoff_base: float = 0.1


def get_api_config() -> ApiConfig:
    return ApiConfig(
        api_key=os.getenv("API_KEY") or None,
        rate_limit_n=_env_int("RATE_LIMIT_N", 5),
        rate_limit_window_sec=_env_float("RATE_LIMIT_WINDOW_SEC", 1.0),
        artifacts_root=os.getenv("ARTIFACTS_ROOT", "./run_artifacts"),
        job_workers=_env_int("JOB_WORKERS", 2),
        job_max_retries=_env_int("JOB_MAX_RETRIES", 1),
        job_backoff_base=_env_float("JOB_BACKOFF_BASE", 0.1),
    )


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"


def get_log_config() -> LogConfig:
    return LogConfig(level=os.getenv("LOG_LEVEL", "INFO"))
