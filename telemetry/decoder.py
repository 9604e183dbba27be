"""
Decoders for Bluetooth GATT health characteristics.

Each decoder turns the raw bytes of one characteristic notification into a
typed reading. Decoders are pure functions of their input buffer: they keep
no state, so they can be called concurrently for different devices.

A buffer that is too short for the fields its flags declare raises
MalformedFrame; nothing is ever read past the end of the buffer.
"""

import struct

from telemetry.readings import (
    ActivityReading,
    BatteryLevel,
    CyclingPowerReading,
    HeartRateReading,
    now_ns,
)


# Standard 16-bit UUIDs expanded onto the Bluetooth base UUID
def _uuid(short):
    return f"0000{short:04x}-0000-1000-8000-00805f9b34fb"


HEART_RATE_SERVICE = _uuid(0x180D)
HEART_RATE_MEASUREMENT = _uuid(0x2A37)
BATTERY_SERVICE = _uuid(0x180F)
BATTERY_LEVEL = _uuid(0x2A19)
DEVICE_INFORMATION_SERVICE = _uuid(0x180A)
MANUFACTURER_NAME = _uuid(0x2A29)
MODEL_NUMBER = _uuid(0x2A24)
FIRMWARE_REVISION = _uuid(0x2A26)
RUNNING_SPEED_CADENCE_SERVICE = _uuid(0x1814)
RSC_MEASUREMENT = _uuid(0x2A53)
CYCLING_POWER_SERVICE = _uuid(0x1818)
CYCLING_POWER_MEASUREMENT = _uuid(0x2A63)

# Heart Rate Measurement flags
HR_VALUE_UINT16 = 0x01
HR_CONTACT_DETECTED = 0x02
HR_CONTACT_SUPPORTED = 0x04
HR_ENERGY_EXPENDED = 0x08
HR_RR_INTERVALS = 0x10

# RSC Measurement flags
RSC_PACE = 0x01
RSC_CADENCE = 0x02
RSC_STRIDE_LENGTH = 0x04
RSC_TOTAL_DISTANCE = 0x08

CONTACT_CONFIDENCE = 95
NO_CONTACT_CONFIDENCE = 80
RSC_CONFIDENCE = 90
CYCLING_POWER_CONFIDENCE = 95

# Calories per metre (or per m/s over a minute); deliberately crude
CALORIES_PER_METRE = 0.06


class MalformedFrame(ValueError):
    """A buffer too short or inconsistent for the flags it declares."""


def _read(fmt, data, offset, field_name):
    """Unpack one little-endian field, failing instead of reading past the end."""
    size = struct.calcsize(fmt)
    if offset + size > len(data):
        raise MalformedFrame(
            f"{field_name} needs {size} byte(s) at offset {offset}, "
            f"frame has {len(data)}"
        )
    return struct.unpack_from(fmt, data, offset)[0], offset + size


def _require(data, minimum, frame_name):
    if data is None or len(data) < minimum:
        length = 0 if data is None else len(data)
        raise MalformedFrame(
            f"{frame_name} frame needs at least {minimum} bytes, got {length}"
        )


def decode_heart_rate(data, timestamp=None) -> HeartRateReading:
    """
    Decode a Heart Rate Measurement (0x2A37) notification.

    Byte 0 holds the flags; the heart rate follows as uint8 or uint16
    depending on bit 0, then the optional energy expended field, then any
    number of RR intervals up to the end of the buffer.

    Raises:
        MalformedFrame: the buffer cannot hold the fields the flags declare
    """
    _require(data, 2, 'Heart rate')
    data = bytes(data)

    flags = data[0]
    contact_detected = bool(flags & HR_CONTACT_DETECTED)
    contact_supported = bool(flags & HR_CONTACT_SUPPORTED)

    fmt = '<H' if flags & HR_VALUE_UINT16 else '<B'
    heart_rate, offset = _read(fmt, data, 1, 'heart rate value')

    energy_expended = None
    if flags & HR_ENERGY_EXPENDED:
        energy_expended, offset = _read('<H', data, offset, 'energy expended')

    rr_intervals = None
    if flags & HR_RR_INTERVALS:
        remaining = len(data) - offset
        if remaining % 2:
            raise MalformedFrame(
                f"RR interval fields need an even byte count, {remaining} left"
            )
        intervals = []
        for (raw,) in struct.iter_unpack('<H', data[offset:]):
            # a zero field carries no interval; the heart rate is still good
            if raw == 0:
                continue
            # wire unit is 1/1024 s
            intervals.append(raw * 1000 / 1024)
        rr_intervals = intervals or None

    if contact_detected and contact_supported:
        confidence = CONTACT_CONFIDENCE
    else:
        confidence = NO_CONTACT_CONFIDENCE

    return HeartRateReading(
        timestamp=timestamp if timestamp is not None else now_ns(),
        value=heart_rate,
        energy_expended=energy_expended,
        rr_intervals=rr_intervals,
        sensor_contact=contact_detected if contact_supported else None,
        confidence=confidence,
    )


def decode_running_speed_cadence(data, timestamp=None) -> ActivityReading:
    """
    Decode a Running Speed and Cadence Measurement (0x2A53) notification.

    Speed is always present (uint16, 1/256 m/s); cadence (uint8), stride
    length (uint16, 1/100 m) and total distance (uint32, m) follow in that
    order when their flag is set.
    """
    _require(data, 3, 'Running speed and cadence')
    data = bytes(data)

    flags = data[0]
    pace_present = bool(flags & RSC_PACE)
    cadence_present = bool(flags & RSC_CADENCE)
    stride_present = bool(flags & RSC_STRIDE_LENGTH)
    distance_present = bool(flags & RSC_TOTAL_DISTANCE)

    raw_speed, offset = _read('<H', data, 1, 'speed')
    speed = raw_speed / 256

    cadence = 0
    if cadence_present:
        cadence, offset = _read('<B', data, offset, 'cadence')

    stride_length = None
    if stride_present:
        raw_stride, offset = _read('<H', data, offset, 'stride length')
        stride_length = raw_stride / 100

    distance = 0
    if distance_present:
        distance, offset = _read('<I', data, offset, 'total distance')

    if distance > 0:
        calories = round(distance * CALORIES_PER_METRE)
    else:
        calories = round(speed * 60 * CALORIES_PER_METRE)

    pace = (1000 / 60) / speed if speed > 0 else 0

    return ActivityReading(
        timestamp=timestamp if timestamp is not None else now_ns(),
        speed=speed,
        cadence=cadence,
        distance=distance,
        pace=pace,
        calories=calories,
        stride_length=stride_length,
        confidence=RSC_CONFIDENCE,
        pace_present=pace_present,
        cadence_present=cadence_present,
        stride_present=stride_present,
        distance_present=distance_present,
    )


def decode_cycling_power(data, timestamp=None) -> CyclingPowerReading:
    """Decode the flags and instantaneous power of a Cycling Power Measurement."""
    _require(data, 4, 'Cycling power')
    data = bytes(data)
    flags, offset = _read('<H', data, 0, 'flags')
    power, offset = _read('<h', data, offset, 'instantaneous power')
    return CyclingPowerReading(
        timestamp=timestamp if timestamp is not None else now_ns(),
        power=power,
        flags=flags,
        confidence=CYCLING_POWER_CONFIDENCE,
    )


def decode_battery_level(data, timestamp=None) -> BatteryLevel:
    _require(data, 1, 'Battery level')
    level = data[0]
    if level > 100:
        raise MalformedFrame(f"Battery level {level} is above 100%")
    return BatteryLevel(
        timestamp=timestamp if timestamp is not None else now_ns(),
        level=level,
    )


DECODERS = {
    'heart_rate': decode_heart_rate,
    'running_speed_cadence': decode_running_speed_cadence,
    'cycling_power': decode_cycling_power,
    'battery_level': decode_battery_level,
}

# Notification characteristic for each decodable kind
CHARACTERISTICS = {
    'heart_rate': HEART_RATE_MEASUREMENT,
    'running_speed_cadence': RSC_MEASUREMENT,
    'cycling_power': CYCLING_POWER_MEASUREMENT,
    'battery_level': BATTERY_LEVEL,
}

# Capability advertised by each service
SERVICE_CAPABILITIES = {
    HEART_RATE_SERVICE: 'heart_rate',
    RUNNING_SPEED_CADENCE_SERVICE: 'running_speed_cadence',
    CYCLING_POWER_SERVICE: 'cycling_power',
}


def decode(kind, data, timestamp=None):
    """Decode ``data`` with the decoder registered for ``kind``."""
    try:
        decoder = DECODERS[kind]
    except KeyError:
        raise KeyError(f"No decoder for characteristic kind '{kind}'") from None
    return decoder(data, timestamp=timestamp)
