"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``        committed static defaults
  2. ``config/local.toml``          optional local overrides (gitignored)
  3. ``.env``                       local secrets and env overrides (gitignored)
  4. Environment variables          ``STOCK_OPTIMIZER_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

Every service, pipeline stage and CLI command receives an ``AppConfig``
(or one of its sections); tunables are never read from the environment
anywhere else.
"""

from __future__ import annotations

import os
import tomllib
from datetime import time
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/stock_optimizer.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class OptimizerConfig(BaseModel):
    """Tunables for the upgrade generator and its allocation solver.

    ``min_stock_allocation`` and ``max_stock_allocation`` are fractions of
    total portfolio value. A symbol set of size ``n`` is only feasible when
    ``n * min <= 1 <= n * max``.
    """

    model_config = ConfigDict(frozen=True)

    historical_days: int = 365
    prediction_horizon: int = 90
    max_stock_allocation: float = 0.25
    min_stock_allocation: float = 0.02
    optimization_iterations: int = 1000
    default_risk_tolerance: float = 0.5
    enable_universe_expansion: bool = True
    max_expansion_stocks: int = 10
    cache_timeout_minutes: int = 30
    convergence_epsilon: float = 1e-9
    weight_tolerance: float = 1e-6

    @field_validator("default_risk_tolerance")
    @classmethod
    def validate_risk(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"default_risk_tolerance must be in [0.0, 1.0], got {v}.")
        return v

    @field_validator("optimization_iterations", "historical_days", "prediction_horizon")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be >= 1, got {v}.")
        return v

    @field_validator("max_expansion_stocks", "cache_timeout_minutes")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Value must be >= 0, got {v}.")
        return v

    @model_validator(mode="after")
    def validate_bounds(self) -> "OptimizerConfig":
        lo, hi = self.min_stock_allocation, self.max_stock_allocation
        if not 0.0 < lo <= hi <= 1.0:
            raise ValueError(
                "Allocation bounds must satisfy 0 < min_stock_allocation <= "
                f"max_stock_allocation <= 1, got min={lo}, max={hi}."
            )
        return self


class IndicatorConfig(BaseModel):
    """Window lengths for the technical indicator calculator."""

    model_config = ConfigDict(frozen=True)

    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    bollinger_period: int = 20
    bollinger_multiplier: float = 2.0
    refresh_lookback_days: int = 730

    @model_validator(mode="after")
    def validate_macd(self) -> "IndicatorConfig":
        if self.macd_fast >= self.macd_slow:
            raise ValueError(
                f"macd_fast ({self.macd_fast}) must be shorter than macd_slow ({self.macd_slow})."
            )
        return self


class TrackerConfig(BaseModel):
    """Recommendation tracking and scheduling settings."""

    model_config = ConfigDict(frozen=True)

    benchmark_symbol: str = "^GSPC"
    retention_days: int = 180
    sweep_weekday: int = 6           # Monday=0 … Sunday=6
    sweep_time: str = "05:00"
    indicator_refresh_time: str = "01:00"

    @field_validator("sweep_weekday")
    @classmethod
    def validate_weekday(cls, v: int) -> int:
        if not 0 <= v <= 6:
            raise ValueError(f"sweep_weekday must be in 0..6, got {v}.")
        return v

    @field_validator("sweep_time", "indicator_refresh_time")
    @classmethod
    def validate_hhmm(cls, v: str) -> str:
        try:
            time.fromisoformat(v)
        except ValueError as exc:
            raise ValueError(f"Expected HH:MM time, got '{v}'.") from exc
        return v


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/stock_optimizer.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration.

    Constructed by ``load_config()`` which merges TOML + .env. Tests build
    it directly, e.g. ``AppConfig(optimizer=OptimizerConfig(max_stock_allocation=1.0))``.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    optimizer: OptimizerConfig = OptimizerConfig()
    indicators: IndicatorConfig = IndicatorConfig()
    tracker: TrackerConfig = TrackerConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    load_dotenv(dotenv_path=root / ".env", override=False)

    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config explicitly."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply STOCK_OPTIMIZER_* env vars to the raw config dict.

    Supported overrides:
      STOCK_OPTIMIZER_DB_PATH    → raw["database"]["db_path"]
      STOCK_OPTIMIZER_LOG_LEVEL  → raw["logging"]["level"]
      STOCK_OPTIMIZER_DEBUG      → raw["debug"]
    """
    if db_path := os.environ.get("STOCK_OPTIMIZER_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("STOCK_OPTIMIZER_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if debug := os.environ.get("STOCK_OPTIMIZER_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        optimizer=OptimizerConfig(**raw.get("optimizer", {})),
        indicators=IndicatorConfig(**raw.get("indicators", {})),
        tracker=TrackerConfig(**raw.get("tracker", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
