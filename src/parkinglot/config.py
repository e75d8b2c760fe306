# File: src/parkinglot/config.py
"""
Configuration for the parking system

Settings come from a dict, a YAML file or PARKINGLOT_* environment
variables. The defaults describe a two-zone facility: a general zone and
an EV zone with its own pricing.
"""

from dataclasses import dataclass, field, fields
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union
import copy
import os

import yaml

from .domain.models import PaymentMethod, SpotType


DEFAULT_PRICING: Dict[str, Any] = {
    "hourly_rate": "2.50",
    "peak_multiplier": "1.5",
    "daily_rate": "20.00",
}

DEFAULT_ZONES: List[Dict[str, Any]] = [
    {
        "id": "G",
        "name": "General Parking",
        "spots": [
            {"type": "REGULAR", "count": 5},
            {"type": "COMPACT", "count": 3},
            {"id": "G-L1", "type": "LARGE"},
            {"id": "G-M1", "type": "MOTORBIKE"},
            {"id": "G-M2", "type": "MOTORBIKE"},
        ],
    },
    {
        "id": "EV",
        "name": "Electric Vehicle Zone",
        "pricing": {"hourly_rate": "3.00", "peak_multiplier": "1.8", "daily_rate": "25.00"},
        "spots": [
            {"id": "EV-C1", "type": "ELECTRIC_CHARGING"},
            {"id": "EV-C2", "type": "ELECTRIC_CHARGING"},
            {"id": "EV-R1", "type": "REGULAR"},
        ],
    },
]

WAITLIST_BACKENDS = ("memory", "redis")
EVENT_LOG_BACKENDS = ("memory", "mongo")
NOTIFICATION_BACKENDS = ("memory", "redis")


@dataclass
class ParkingSystemConfig:
    lot_name: str = "Downtown Central Parking"
    zones: List[Dict[str, Any]] = field(default_factory=lambda: copy.deepcopy(DEFAULT_ZONES))
    default_pricing: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_PRICING))
    grace_period_minutes: int = 5
    payment_method: str = PaymentMethod.CREDIT_CARD.value
    max_stay_hours: float = 24.0
    violation_penalty: Decimal = Decimal("50.00")
    waitlist_backend: str = "memory"
    event_log_backend: str = "memory"
    notification_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    mongo_url: str = "mongodb://localhost:27017"
    log_level: str = "INFO"

    def __post_init__(self):
        self.grace_period_minutes = int(self.grace_period_minutes)
        self.max_stay_hours = float(self.max_stay_hours)
        self.violation_penalty = Decimal(str(self.violation_penalty))
        self.payment_method = str(self.payment_method).lower()
        self.log_level = str(self.log_level).upper()
        self.validate()

    def validate(self) -> None:
        if self.grace_period_minutes < 0:
            raise ValueError("grace_period_minutes cannot be negative")
        if self.max_stay_hours <= 0:
            raise ValueError("max_stay_hours must be positive")
        if self.violation_penalty < 0:
            raise ValueError("violation_penalty cannot be negative")
        if self.payment_method not in {method.value for method in PaymentMethod}:
            raise ValueError(f"Unsupported payment method: {self.payment_method}")
        _check_choice("waitlist_backend", self.waitlist_backend, WAITLIST_BACKENDS)
        _check_choice("event_log_backend", self.event_log_backend, EVENT_LOG_BACKENDS)
        _check_choice("notification_backend", self.notification_backend, NOTIFICATION_BACKENDS)

        seen_zones = set()
        for zone in self.zones:
            zone_id = zone.get("id")
            if not zone_id:
                raise ValueError(f"Zone entry without id: {zone}")
            if zone_id in seen_zones:
                raise ValueError(f"Duplicate zone id: {zone_id}")
            seen_zones.add(zone_id)
            for spot in zone.get("spots", []):
                spot_type = str(spot.get("type", "")).upper()
                if spot_type not in SpotType.__members__:
                    raise ValueError(f"Unknown spot type in zone {zone_id}: {spot.get('type')}")

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ParkingSystemConfig":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ParkingSystemConfig":
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        return cls.from_dict(data.get("parkinglot", data))

    @classmethod
    def from_env(cls, prefix: str = "PARKINGLOT_", environ: Optional[Mapping[str, str]] = None) -> "ParkingSystemConfig":
        """
        Scalar settings from environment variables, e.g. PARKINGLOT_REDIS_URL.
        Zones may be given as YAML/JSON in PARKINGLOT_ZONES.
        """
        environ = os.environ if environ is None else environ
        data: Dict[str, Any] = {}
        for f in fields(cls):
            raw = environ.get(f"{prefix}{f.name.upper()}")
            if raw is None:
                continue
            if f.name in ("zones", "default_pricing"):
                data[f.name] = yaml.safe_load(raw)
            else:
                data[f.name] = raw
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            f.name: (str(getattr(self, f.name)) if isinstance(getattr(self, f.name), Decimal) else getattr(self, f.name))
            for f in fields(self)
        }


def _check_choice(name: str, value: str, choices) -> None:
    if value not in choices:
        raise ValueError(f"{name} must be one of {', '.join(choices)}, got {value!r}")
