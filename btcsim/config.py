"""
config.py - Simulator configuration

Loads the tunable business constants from a YAML file. Every field has a
default equal to the simulator's standard terms, so an empty or missing
file yields the standard game.

Example config.yaml:

    initial_usd_balance: 100
    loan_apr: 0.18
    max_loan_multiplier: 10
    allowed_loan_periods: [1, 3, 7, 30]
    penalty_multiplier: 1.25
    monitor_interval_seconds: 60
    storage_path: ~/.btcsim/portfolio.json
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .core import (
    ConfigError, InvalidAmount, to_decimal,
    DUE_SOON_WINDOW, INITIAL_USD_BALANCE, LOAN_APR, LOAN_LIMIT_EPSILON,
    LOAN_PERIODS_DAYS, MAX_LOAN_MULTIPLIER, MONITOR_INTERVAL_SECONDS,
    PENALTY_MULTIPLIER,
)


_DECIMAL_FIELDS = (
    "initial_usd_balance",
    "loan_apr",
    "max_loan_multiplier",
    "loan_limit_epsilon",
    "penalty_multiplier",
)


@dataclass(frozen=True)
class SimulatorConfig:
    """
    Business terms of a simulator session.

    Attributes:
        initial_usd_balance: Cash granted to a brand-new portfolio
        loan_apr: Annual simple interest rate fixed into each loan
        max_loan_multiplier: Loan limit as a multiple of USD balance
        loan_limit_epsilon: Tolerance added to the loan limit
        allowed_loan_periods: Terms (days) a loan may be taken for
        penalty_multiplier: Surcharge applied to the scheduled repayment
            of an overdue loan
        due_soon_window_hours: How close to the due date the warning fires
        monitor_interval_seconds: Period of the lifecycle check
        storage_path: JSON file for persistence (None = in memory)
    """
    initial_usd_balance: Decimal = INITIAL_USD_BALANCE
    loan_apr: Decimal = LOAN_APR
    max_loan_multiplier: Decimal = MAX_LOAN_MULTIPLIER
    loan_limit_epsilon: Decimal = LOAN_LIMIT_EPSILON
    allowed_loan_periods: Tuple[int, ...] = LOAN_PERIODS_DAYS
    penalty_multiplier: Decimal = PENALTY_MULTIPLIER
    due_soon_window_hours: float = DUE_SOON_WINDOW.total_seconds() / 3600
    monitor_interval_seconds: float = MONITOR_INTERVAL_SECONDS
    storage_path: Optional[str] = None

    def __post_init__(self):
        for name in _DECIMAL_FIELDS:
            value = getattr(self, name)
            try:
                object.__setattr__(self, name, to_decimal(value))
            except InvalidAmount as exc:
                raise ConfigError(f"{name}: {exc}") from exc

        if self.initial_usd_balance < 0:
            raise ConfigError("initial_usd_balance must be >= 0")
        if self.loan_apr < 0:
            raise ConfigError("loan_apr must be >= 0")
        if self.max_loan_multiplier <= 0:
            raise ConfigError("max_loan_multiplier must be > 0")
        if self.loan_limit_epsilon < 0:
            raise ConfigError("loan_limit_epsilon must be >= 0")
        if self.penalty_multiplier < 1:
            raise ConfigError("penalty_multiplier must be >= 1")

        try:
            periods = tuple(sorted({int(p) for p in self.allowed_loan_periods}))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"allowed_loan_periods: {exc}") from exc
        if not periods or periods[0] <= 0:
            raise ConfigError("allowed_loan_periods must be non-empty positive day counts")
        object.__setattr__(self, "allowed_loan_periods", periods)

        if float(self.due_soon_window_hours) <= 0:
            raise ConfigError("due_soon_window_hours must be > 0")
        if float(self.monitor_interval_seconds) <= 0:
            raise ConfigError("monitor_interval_seconds must be > 0")

        if self.storage_path is not None:
            object.__setattr__(self, "storage_path", str(Path(self.storage_path).expanduser()))

    @property
    def due_soon_window(self) -> timedelta:
        return timedelta(hours=float(self.due_soon_window_hours))

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> SimulatorConfig:
        """Build a config from a parsed mapping; unknown keys are rejected."""
        if not data:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"Config must be a mapping, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path) -> SimulatorConfig:
        """Load config from a YAML file. A missing file yields defaults."""
        config_path = Path(path)
        if not config_path.exists():
            return cls()
        try:
            with config_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Plain mapping suitable for yaml.safe_dump()."""
        result: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Decimal):
                value = str(value)
            elif isinstance(value, tuple):
                value = list(value)
            result[f.name] = value
        return result
