"""
Wearable telemetry: GATT frame decoding, reading statistics and BLE device
sessions, plus the producer that publishes decoded readings.
"""

from telemetry.decoder import (
    MalformedFrame,
    decode,
    decode_battery_level,
    decode_cycling_power,
    decode_heart_rate,
    decode_running_speed_cadence,
)
from telemetry.readings import (
    ActivityReading,
    BatteryLevel,
    CyclingPowerReading,
    Device,
    HeartRateReading,
    HeartRateVariability,
)
from telemetry.session import DeviceRegistry

__all__ = [
    'ActivityReading',
    'BatteryLevel',
    'CyclingPowerReading',
    'Device',
    'DeviceRegistry',
    'HeartRateReading',
    'HeartRateVariability',
    'MalformedFrame',
    'decode',
    'decode_battery_level',
    'decode_cycling_power',
    'decode_heart_rate',
    'decode_running_speed_cadence',
]
