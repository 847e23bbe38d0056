# File: src/campus_parking/config.py
"""
Configuration and logging setup

Settings are read from an optional YAML file and then overridden by
environment variables named CAMPUS_PARKING_<FIELD>, for example
CAMPUS_PARKING_DATABASE_URL or CAMPUS_PARKING_HOLD_MINUTES.
"""

from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union
import logging
import os
import sys

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


ENV_PREFIX = "CAMPUS_PARKING_"
CONFIG_PATH_ENV = ENV_PREFIX + "CONFIG"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class OperatingHours(BaseModel):
    model_config = ConfigDict(extra='forbid')

    start: str = Field(default="06:00", pattern=r'^([01]\d|2[0-3]):([0-5]\d)$')
    end: str = Field(default="22:00", pattern=r'^([01]\d|2[0-3]):([0-5]\d)$')


class Settings(BaseModel):
    """Runtime settings of the booking core"""

    model_config = ConfigDict(extra='forbid', validate_assignment=True)

    system_name: str = "Campus Parking App"

    # Storage
    storage_backend: str = Field(default="memory", pattern="^(memory|sqlalchemy|mongodb)$")
    database_url: str = "sqlite:///./campus_parking.db"
    mongo_url: str = "mongodb://localhost:27017"
    mongo_database: str = "campus_parking"
    redis_url: str = "redis://localhost:6379"

    # Holds
    hold_guard: str = Field(default="local", pattern="^(none|local|redis)$")
    hold_minutes: int = Field(default=5, ge=1, le=60)
    enforce_hold_uniqueness: bool = True

    # Pricing and dashboards
    default_hourly_rate: Decimal = Field(default=Decimal("2.5"), gt=0)
    dashboard_recent_limit: int = Field(default=50, ge=1)

    # Events
    # Forward lifecycle events to this Redis channel when set
    event_channel: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Operator settings kept as data for the client
    operating_hours: OperatingHours = Field(default_factory=OperatingHours)
    max_booking_days: int = Field(default=14, ge=1)
    cancellation_period_hours: int = Field(default=6, ge=0)
    max_bookings_per_user: int = Field(default=3, ge=1)
    allow_multiple_day_bookings: bool = True
    notifications_enabled: bool = True
    maintenance_mode: bool = False

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return v


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Pick CAMPUS_PARKING_* variables that name a settings field"""
    overrides: Dict[str, Any] = {}
    for name in Settings.model_fields:
        key = ENV_PREFIX + name.upper()
        if key in environ and name != "operating_hours":
            overrides[name] = environ[key]
    return overrides


def load_settings(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None
) -> Settings:
    """
    Build Settings from a YAML file and the environment.

    The file is taken from path, or from CAMPUS_PARKING_CONFIG when path is
    not given. Environment variables win over file values.
    """
    environ = os.environ if environ is None else environ
    path = path or environ.get(CONFIG_PATH_ENV)

    data: Dict[str, Any] = {}
    if path:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Settings file {path} must contain a mapping")
        data.update(loaded)

    data.update(_env_overrides(environ))
    return Settings.model_validate(data)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Setup application logging configuration"""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True
    )
    return logging.getLogger("campus_parking")
