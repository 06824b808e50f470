# File: src/parkwise/infrastructure/config.py
"""
Application Configuration

Configuration is a pydantic model tree loaded from an optional YAML file
and then overridden from the environment:

    PARKWISE_CONFIG        path of the YAML file (when no path is given)
    PARKWISE_DATABASE_URL  SQLAlchemy database URL
    PARKWISE_LOG_LEVEL     logging level name
    PARKWISE_BROKER        memory | redis
    PARKWISE_REDIS_URL     Redis connection URL

Example YAML::

    database_url: postgresql+psycopg2://parking@db/parking
    billing:
      currency: INR
      day_pass_rate: 150
      hourly_rates:
        - {min_hours: 0, max_hours: 1, rate: 50}
        - {min_hours: 1, max_hours: 3, rate: 100}
    overstay:
      lost_revenue_per_hour: 50
    messaging:
      broker: redis
      redis_url: redis://localhost:6379/0
"""

from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import logging
import os

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..domain.exceptions import InvalidInputError
from ..domain.models import BillingConfig, DEFAULT_BILLING_CONFIG
from ..domain.overstay import DEFAULT_THRESHOLDS, OverstayThreshold


logger = logging.getLogger(__name__)

ENV_PREFIX = "PARKWISE_"


class RateBandSettings(BaseModel):
    min_hours: int = Field(ge=0)
    max_hours: int = Field(gt=0)
    rate: Decimal = Field(ge=0)


class BillingSettings(BaseModel):
    """HOURLY bands and flat DAY_PASS rate"""
    currency: str = Field(default="INR", min_length=3, max_length=3)
    day_pass_rate: Decimal = Field(default=DEFAULT_BILLING_CONFIG.day_pass_rate, ge=0)
    hourly_rates: List[RateBandSettings] = Field(
        default_factory=lambda: [
            RateBandSettings(**band.to_dict()) for band in DEFAULT_BILLING_CONFIG.hourly_rates
        ]
    )
    cap_overflow: bool = Field(
        default=True,
        description="Charge the last band for stays longer than every band"
    )

    def to_domain(self) -> BillingConfig:
        return BillingConfig.from_dict({
            "hourly_rates": [band.model_dump() for band in self.hourly_rates],
            "day_pass_rate": self.day_pass_rate,
            "currency": self.currency,
        })


class ThresholdSettings(BaseModel):
    vehicle_type: str
    billing_type: str
    warning_hours: float = Field(gt=0)
    alert_hours: float = Field(gt=0)
    critical_hours: float = Field(gt=0)


class OverstaySettings(BaseModel):
    lost_revenue_per_hour: Decimal = Field(default=Decimal('50'), ge=0)
    thresholds: List[ThresholdSettings] = Field(
        default_factory=lambda: [ThresholdSettings(**t.to_dict()) for t in DEFAULT_THRESHOLDS]
    )

    def to_domain(self) -> List[OverstayThreshold]:
        return [OverstayThreshold.from_dict(t.model_dump()) for t in self.thresholds]


class MessagingSettings(BaseModel):
    broker: str = Field(default="memory", description="memory | redis")
    redis_url: str = "redis://localhost:6379/0"
    channel_prefix: str = "parkwise"

    @field_validator("broker")
    @classmethod
    def validate_broker(cls, v: str) -> str:
        v = v.lower()
        if v not in ("memory", "redis"):
            raise ValueError(f"Unknown broker type: {v}")
        return v


class LoggingSettings(BaseModel):
    level: str = "INFO"
    file: Optional[str] = None

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return v


class AppConfig(BaseModel):
    """Root configuration object"""

    model_config = ConfigDict(extra="forbid")

    database_url: str = "sqlite:///parkwise.db"
    echo_sql: bool = False
    billing: BillingSettings = Field(default_factory=BillingSettings)
    overstay: OverstaySettings = Field(default_factory=OverstaySettings)
    messaging: MessagingSettings = Field(default_factory=MessagingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def billing_config(self) -> BillingConfig:
        return self.billing.to_domain()

    def overstay_thresholds(self) -> List[OverstayThreshold]:
        return self.overstay.to_domain()


def _env_overrides(environ: Dict[str, str]) -> Dict[str, Any]:
    """Nested override dict built from PARKWISE_* variables"""
    overrides: Dict[str, Any] = {}
    if environ.get(f"{ENV_PREFIX}DATABASE_URL"):
        overrides["database_url"] = environ[f"{ENV_PREFIX}DATABASE_URL"]
    if environ.get(f"{ENV_PREFIX}LOG_LEVEL"):
        overrides.setdefault("logging", {})["level"] = environ[f"{ENV_PREFIX}LOG_LEVEL"]
    if environ.get(f"{ENV_PREFIX}BROKER"):
        overrides.setdefault("messaging", {})["broker"] = environ[f"{ENV_PREFIX}BROKER"]
    if environ.get(f"{ENV_PREFIX}REDIS_URL"):
        overrides.setdefault("messaging", {})["redis_url"] = environ[f"{ENV_PREFIX}REDIS_URL"]
    return overrides


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Dict[str, str]] = None
) -> AppConfig:
    """
    Load configuration from YAML (optional) plus environment overrides

    Raises: InvalidInputError when the file is missing or the values are invalid
    """
    environ = dict(os.environ) if environ is None else environ
    path = path or environ.get(f"{ENV_PREFIX}CONFIG")

    data: Dict[str, Any] = {}
    if path:
        config_path = Path(path)
        if not config_path.exists():
            raise InvalidInputError(f"Config file not found: {config_path}")
        try:
            with config_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise InvalidInputError(f"Invalid YAML in {config_path}: {e}", {"path": str(config_path)}) from e
        if not isinstance(data, dict):
            raise InvalidInputError(f"Config file {config_path} must contain a mapping")
        logger.info(f"Loaded configuration from {config_path}")

    data = _merge(data, _env_overrides(environ))

    try:
        config = AppConfig(**data)
        # Domain validation of bands and tiers happens eagerly
        config.billing_config()
        config.overstay_thresholds()
    except ValidationError as e:
        raise InvalidInputError(f"Invalid configuration: {e}")
    return config
