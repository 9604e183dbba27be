"""
Typed readings produced by the frame decoder.

Every reading carries the decode timestamp in nanoseconds (the same unit the
Polar producer has always published) and a device id that the decoder leaves
blank; the session registry fills it in with ``dataclasses.replace``.
"""

import time
from dataclasses import dataclass, field
from typing import List, Optional


# Device types a peripheral can be registered as
DEVICE_TYPES = (
    'heart_rate',
    'activity_tracker',
    'smart_watch',
    'cycling_power',
    'running_speed_cadence',
    'glucose',
    'blood_pressure',
    'other',
)


def now_ns() -> int:
    return time.time_ns()


def _check_confidence(confidence):
    if not 0 <= confidence <= 100:
        raise ValueError(f"confidence must be in [0, 100], got {confidence}")


@dataclass(frozen=True)
class HeartRateReading:
    """One Heart Rate Measurement notification."""
    timestamp: int
    value: int
    device_id: str = ''
    energy_expended: Optional[int] = None  # kJ
    rr_intervals: Optional[List[float]] = None  # ms
    sensor_contact: Optional[bool] = None
    confidence: int = 80

    kind = 'heart_rate'

    def __post_init__(self):
        _check_confidence(self.confidence)


@dataclass(frozen=True)
class ActivityReading:
    """One Running Speed and Cadence notification."""
    timestamp: int
    speed: float  # m/s
    cadence: int = 0  # steps/min
    distance: float = 0  # m
    pace: float = 0  # min/km
    calories: int = 0
    stride_length: Optional[float] = None  # m
    device_id: str = ''
    confidence: int = 90
    pace_present: bool = False
    cadence_present: bool = False
    stride_present: bool = False
    distance_present: bool = False

    kind = 'running_speed_cadence'

    def __post_init__(self):
        _check_confidence(self.confidence)


@dataclass(frozen=True)
class CyclingPowerReading:
    timestamp: int
    power: int  # W
    flags: int = 0
    device_id: str = ''
    confidence: int = 95

    kind = 'cycling_power'

    def __post_init__(self):
        _check_confidence(self.confidence)


@dataclass(frozen=True)
class BatteryLevel:
    timestamp: int
    level: int  # percent
    device_id: str = ''

    kind = 'battery_level'


@dataclass(frozen=True)
class HeartRateVariability:
    """RR-interval summary derived from a heart rate reading."""
    timestamp: int
    rr_intervals: List[float]
    average_rr: float
    sdnn: float
    device_id: str = ''
    confidence: int = 80

    kind = 'heart_rate_variability'

    def __post_init__(self):
        _check_confidence(self.confidence)


@dataclass
class Device:
    """
    Logical identity of a paired peripheral.

    Lives for the duration of a pairing; the backend persists it keyed by
    (user, device id).
    """
    id: str
    name: str = ''
    type: str = 'other'
    capabilities: List[str] = field(default_factory=list)
    battery_level: Optional[int] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    firmware_version: Optional[str] = None
    connected: bool = False
    last_connected: Optional[int] = None  # ns

    def __post_init__(self):
        if self.type not in DEVICE_TYPES:
            raise ValueError(f"Unknown device type '{self.type}'")
        if not self.name:
            self.name = f"Device {self.id[:8]}"
