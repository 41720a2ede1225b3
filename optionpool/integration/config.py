"""
Pool configuration.

Defaults live on `PoolConfig`; `load_pool_config()` overlays a YAML file and
then environment variables (env vars take precedence), e.g.

    OPTIONPOOL_FEE_RATE=0.005
    OPTIONPOOL_WITHDRAWAL_DELAY_SECONDS=3600
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from loguru import logger

from ..core.errors import ValidationError
from ..core.fixed_point import ONE, ZERO, Fixed64x64
from ..core.volatility import DEFAULT_EMA_PERIOD_SECONDS, SECONDS_PER_DAY
from ..state.pool import MAX_DECIMALS


_RATE_FIELDS = ("fee_rate", "steepness", "initial_variance", "min_strike_ratio", "max_strike_ratio")


@dataclass(frozen=True)
class PoolConfig:
    underlying_decimals: int = 18
    base_decimals: int = 18
    fee_rate: str = "0.01"
    steepness: str = "1"
    initial_variance: str = "0.16"
    ema_period_seconds: int = DEFAULT_EMA_PERIOD_SECONDS
    min_maturity_seconds: int = SECONDS_PER_DAY
    max_maturity_seconds: int = 28 * SECONDS_PER_DAY
    min_strike_ratio: str = "0.5"
    max_strike_ratio: str = "2"
    withdrawal_delay_seconds: int = SECONDS_PER_DAY

    def __post_init__(self) -> None:
        for name in _RATE_FIELDS:
            try:
                Fixed64x64.from_decimal(getattr(self, name))
            except (ValueError, ArithmeticError) as exc:
                raise ValidationError(f"{name} is not a decimal: {getattr(self, name)!r}") from exc
        for name in ("underlying_decimals", "base_decimals"):
            if not (0 <= getattr(self, name) <= MAX_DECIMALS):
                raise ValidationError(f"{name} must be in [0, {MAX_DECIMALS}]: {getattr(self, name)}")
        if not (ZERO <= self.fee_rate_64x64 < ONE):
            raise ValidationError(f"fee_rate must be in [0, 1): {self.fee_rate}")
        if self.steepness_64x64 <= ZERO:
            raise ValidationError(f"steepness must be positive: {self.steepness}")
        if self.initial_variance_64x64 <= ZERO:
            raise ValidationError(f"initial_variance must be positive: {self.initial_variance}")
        if self.ema_period_seconds <= 0:
            raise ValidationError(f"ema_period_seconds must be positive: {self.ema_period_seconds}")
        if not (0 < self.min_maturity_seconds < self.max_maturity_seconds):
            raise ValidationError(
                f"maturity window must satisfy 0 < min < max: "
                f"{self.min_maturity_seconds}, {self.max_maturity_seconds}"
            )
        lo = Fixed64x64.from_decimal(self.min_strike_ratio)
        hi = Fixed64x64.from_decimal(self.max_strike_ratio)
        if not (ZERO < lo <= ONE <= hi):
            raise ValidationError(
                f"strike ratios must satisfy 0 < min <= 1 <= max: {self.min_strike_ratio}, {self.max_strike_ratio}"
            )
        if self.withdrawal_delay_seconds < 0:
            raise ValidationError(f"withdrawal_delay_seconds must be non-negative: {self.withdrawal_delay_seconds}")

    @property
    def fee_rate_64x64(self) -> Fixed64x64:
        return Fixed64x64.from_decimal(self.fee_rate)

    @property
    def steepness_64x64(self) -> Fixed64x64:
        return Fixed64x64.from_decimal(self.steepness)

    @property
    def initial_variance_64x64(self) -> Fixed64x64:
        return Fixed64x64.from_decimal(self.initial_variance)

    @property
    def strike_bounds(self) -> tuple[Fixed64x64, Fixed64x64]:
        return Fixed64x64.from_decimal(self.min_strike_ratio), Fixed64x64.from_decimal(self.max_strike_ratio)


def _coerce(name: str, value: Any) -> Any:
    if name in _RATE_FIELDS:
        return str(value)
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be an integer: {value!r}") from exc


def merge_config_with_env(config_data: Dict[str, Any], env_prefix: str = "OPTIONPOOL_") -> Dict[str, Any]:
    """Overlay `<env_prefix><FIELD_NAME>` environment variables onto `config_data`."""
    merged = dict(config_data)
    for f in fields(PoolConfig):
        env_var = f"{env_prefix}{f.name.upper()}"
        env_value = os.environ.get(env_var)
        if env_value is not None:
            merged[f.name] = env_value
            logger.debug(f"Overriding {f.name} from env: {env_var}")
    return merged


def load_pool_config(
    path: Optional[Union[str, Path]] = None,
    env_prefix: str = "OPTIONPOOL_",
) -> PoolConfig:
    """
    Load pool configuration from an optional YAML file plus environment.

    Raises:
        ValidationError: unknown keys, a non-mapping document, or invalid values
    """
    config_data: Dict[str, Any] = {}
    if path is not None:
        config_file = Path(path)
        if not config_file.exists():
            logger.warning(f"Config file not found: {config_file}, using defaults")
        else:
            with open(config_file, "r") as f:
                loaded = yaml.safe_load(f) or {}
            if not isinstance(loaded, dict):
                raise ValidationError(f"config root must be a mapping: {config_file}")
            config_data = loaded
            logger.info(f"Loaded pool config from {config_file}")

    config_data = merge_config_with_env(config_data, env_prefix)

    known = {f.name for f in fields(PoolConfig)}
    unknown = sorted(set(config_data) - known)
    if unknown:
        raise ValidationError(f"unknown config keys: {', '.join(unknown)}")
    return PoolConfig(**{name: _coerce(name, value) for name, value in config_data.items()})
