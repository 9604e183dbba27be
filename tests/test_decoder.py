"""
Tests for GATT frame decoding
=============================

Tests for telemetry/decoder.py
"""

import struct

import pytest

from telemetry.decoder import (
    MalformedFrame,
    decode,
    decode_battery_level,
    decode_cycling_power,
    decode_heart_rate,
    decode_running_speed_cadence,
)
from telemetry.readings import Device, HeartRateReading


class TestHeartRateValue:
    """Tests for the heart rate value field."""

    def test_uint8_value_without_optional_fields(self):
        """Flags 0 with a one byte value decodes the plain value."""
        reading = decode_heart_rate(bytes([0x00, 0x4B]))

        assert reading.value == 75
        assert reading.energy_expended is None
        assert reading.rr_intervals is None
        assert reading.sensor_contact is None
        assert reading.confidence == 80
        assert reading.device_id == ""

    @pytest.mark.parametrize("value", [0, 1, 255, 256, 300, 0xFFFF])
    def test_uint16_value_is_little_endian(self, value):
        """A 16-bit value is read little-endian at offset 1."""
        frame = bytes([0x01]) + struct.pack("<H", value)

        reading = decode_heart_rate(frame)

        assert reading.value == value
        assert reading.energy_expended is None
        assert reading.rr_intervals is None

    def test_uint16_flag_with_one_value_byte_is_malformed(self):
        """Flags claim a 2-byte value but only 1 byte remains."""
        with pytest.raises(MalformedFrame):
            decode_heart_rate(bytes([0x01, 0x4B]))

    @pytest.mark.parametrize("frame", [b"", b"\x00", None])
    def test_frames_below_minimum_length_are_malformed(self, frame):
        with pytest.raises(MalformedFrame):
            decode_heart_rate(frame)

    def test_reserved_flag_bits_are_ignored(self):
        reading = decode_heart_rate(bytes([0xE0, 0x4B]))

        assert reading.value == 75

    def test_accepts_bytearray_and_memoryview(self):
        assert decode_heart_rate(bytearray([0x00, 0x50])).value == 80
        assert decode_heart_rate(memoryview(bytes([0x00, 0x50]))).value == 80

    def test_timestamp_defaults_to_decode_time(self):
        reading = decode_heart_rate(bytes([0x00, 0x4B]))

        assert isinstance(reading.timestamp, int)
        assert reading.timestamp > 0

    def test_explicit_timestamp_is_kept(self):
        reading = decode_heart_rate(bytes([0x00, 0x4B]), timestamp=1234)

        assert reading.timestamp == 1234


class TestSensorContact:
    """Tests for the contact flags and the confidence they imply."""

    def test_contact_detected_and_supported(self):
        reading = decode_heart_rate(bytes([0x06, 0x4B]))

        assert reading.sensor_contact is True
        assert reading.confidence == 95

    def test_contact_supported_but_not_detected(self):
        reading = decode_heart_rate(bytes([0x04, 0x4B]))

        assert reading.sensor_contact is False
        assert reading.confidence == 80

    def test_contact_detected_without_feature_support(self):
        """Contact cannot be verified without the feature bit."""
        reading = decode_heart_rate(bytes([0x02, 0x4B]))

        assert reading.sensor_contact is None
        assert reading.confidence == 80


class TestEnergyExpended:
    """Tests for the energy expended field."""

    def test_energy_expended_follows_uint8_value(self):
        reading = decode_heart_rate(bytes([0x08, 0x50, 0x10, 0x00]))

        assert reading.value == 80
        assert reading.energy_expended == 16

    def test_energy_expended_follows_uint16_value(self):
        reading = decode_heart_rate(bytes([0x09, 0x50, 0x00, 0x34, 0x12]))

        assert reading.value == 80
        assert reading.energy_expended == 0x1234

    def test_truncated_energy_expended_is_malformed(self):
        with pytest.raises(MalformedFrame):
            decode_heart_rate(bytes([0x08, 0x50, 0x10]))


class TestRRIntervals:
    """Tests for RR interval decoding."""

    def test_intervals_are_converted_to_milliseconds(self):
        reading = decode_heart_rate(bytes([0x10, 0x48, 0x00, 0x04, 0x00, 0x02]))

        assert reading.value == 0x48
        assert reading.rr_intervals == [1000.0, 500.0]

    def test_intervals_after_uint16_value_and_energy(self):
        frame = bytes([0x19, 0x48, 0x00, 0x05, 0x00, 0x00, 0x04])

        reading = decode_heart_rate(frame)

        assert reading.value == 72
        assert reading.energy_expended == 5
        assert reading.rr_intervals == [1000.0]

    @pytest.mark.parametrize("raw_values", [[1], [700, 820], [1024, 512, 900, 65535]])
    def test_interval_count_and_conversion(self, raw_values):
        """Every field becomes raw * 1000 / 1024 and none are dropped."""
        frame = bytes([0x10, 0x48]) + b"".join(struct.pack("<H", raw) for raw in raw_values)
        header_length = 2

        reading = decode_heart_rate(frame)

        assert len(reading.rr_intervals) == (len(frame) - header_length) // 2
        assert reading.rr_intervals == [raw * 1000 / 1024 for raw in raw_values]
        assert all(rr > 0 for rr in reading.rr_intervals)

    def test_flag_without_interval_bytes_yields_none(self):
        reading = decode_heart_rate(bytes([0x10, 0x48]))

        assert reading.rr_intervals is None

    def test_dangling_odd_byte_is_malformed(self):
        with pytest.raises(MalformedFrame):
            decode_heart_rate(bytes([0x10, 0x48, 0x00, 0x04, 0x01]))

    def test_zero_interval_is_dropped(self):
        """A zero RR field is skipped and the heart rate is kept."""
        reading = decode_heart_rate(bytes([0x10, 0x48, 0x00, 0x04, 0x00, 0x00]))

        assert reading.value == 0x48
        assert reading.rr_intervals == [1000.0]

    def test_only_zero_intervals_yield_none(self):
        reading = decode_heart_rate(bytes([0x10, 0x48, 0x00, 0x00]))

        assert reading.value == 0x48
        assert reading.rr_intervals is None

    def test_trailing_bytes_without_flag_are_ignored(self):
        reading = decode_heart_rate(bytes([0x00, 0x48, 0x00, 0x04]))

        assert reading.value == 0x48
        assert reading.rr_intervals is None


class TestRunningSpeedCadence:
    """Tests for RSC Measurement decoding."""

    def test_speed_only(self):
        reading = decode_running_speed_cadence(bytes([0x00, 0x00, 0x03]))

        assert reading.speed == 3.0
        assert reading.cadence == 0
        assert reading.distance == 0
        assert reading.stride_length is None
        assert reading.pace == pytest.approx((1000 / 60) / 3.0)
        assert reading.calories == round(3.0 * 60 * 0.06)
        assert reading.confidence == 90

    @pytest.mark.parametrize("raw_speed", [1, 256, 700, 0xFFFF])
    def test_speed_is_scaled_by_one_256th(self, raw_speed):
        frame = bytes([0x00]) + struct.pack("<H", raw_speed)

        reading = decode_running_speed_cadence(frame)

        assert reading.speed == raw_speed / 256
        assert reading.pace == pytest.approx((1000 / 60) / reading.speed)

    def test_zero_speed_has_zero_pace_and_calories(self):
        reading = decode_running_speed_cadence(bytes([0x00, 0x00, 0x00]))

        assert reading.speed == 0
        assert reading.pace == 0
        assert reading.calories == 0

    def test_cadence(self):
        reading = decode_running_speed_cadence(bytes([0x02, 0x00, 0x03, 170]))

        assert reading.cadence == 170
        assert reading.cadence_present is True

    def test_distance_drives_calorie_estimate(self):
        frame = bytes([0x0A, 0x00, 0x03, 170]) + struct.pack("<I", 1000)

        reading = decode_running_speed_cadence(frame)

        assert reading.cadence == 170
        assert reading.distance == 1000
        assert reading.calories == 60

    def test_distance_without_cadence(self):
        frame = bytes([0x08, 0x00, 0x03]) + struct.pack("<I", 2500)

        reading = decode_running_speed_cadence(frame)

        assert reading.cadence == 0
        assert reading.distance == 2500
        assert reading.calories == 150

    def test_stride_length_sits_between_cadence_and_distance(self):
        frame = bytes([0x0E, 0x00, 0x03, 170]) + struct.pack("<H", 120) + struct.pack("<I", 500)

        reading = decode_running_speed_cadence(frame)

        assert reading.cadence == 170
        assert reading.stride_length == 1.2
        assert reading.distance == 500

    def test_presence_flags_are_reported(self):
        reading = decode_running_speed_cadence(bytes([0x01, 0x00, 0x03]))

        assert reading.pace_present is True
        assert reading.cadence_present is False
        assert reading.stride_present is False
        assert reading.distance_present is False

    @pytest.mark.parametrize("frame", [
        b"",
        bytes([0x00, 0x00]),
        bytes([0x02, 0x00, 0x03]),
        bytes([0x04, 0x00, 0x03, 0x78]),
        bytes([0x08, 0x00, 0x03, 0xE8, 0x03, 0x00]),
    ])
    def test_truncated_frames_are_malformed(self, frame):
        with pytest.raises(MalformedFrame):
            decode_running_speed_cadence(frame)


class TestOtherCharacteristics:
    """Tests for cycling power, battery level and dispatch."""

    def test_cycling_power(self):
        reading = decode_cycling_power(bytes([0x00, 0x00, 0xFA, 0x00]))

        assert reading.power == 250
        assert reading.flags == 0
        assert reading.confidence == 95

    def test_cycling_power_is_signed(self):
        reading = decode_cycling_power(bytes([0x01, 0x00, 0xFF, 0xFF]))

        assert reading.power == -1
        assert reading.flags == 1

    def test_short_cycling_power_is_malformed(self):
        with pytest.raises(MalformedFrame):
            decode_cycling_power(bytes([0x00, 0x00, 0xFA]))

    def test_battery_level(self):
        assert decode_battery_level(bytes([85])).level == 85

    @pytest.mark.parametrize("frame", [b"", bytes([101])])
    def test_invalid_battery_level_is_malformed(self, frame):
        with pytest.raises(MalformedFrame):
            decode_battery_level(frame)

    def test_decode_dispatches_by_kind(self):
        reading = decode("heart_rate", bytes([0x00, 0x4B]), timestamp=7)

        assert isinstance(reading, HeartRateReading)
        assert reading.timestamp == 7

    def test_decode_unknown_kind(self):
        with pytest.raises(KeyError):
            decode("glucose", bytes([0x00]))

    def test_malformed_frame_is_a_value_error(self):
        assert issubclass(MalformedFrame, ValueError)


class TestReadingInvariants:
    """Tests for reading and device construction rules."""

    @pytest.mark.parametrize("confidence", [-1, 101])
    def test_confidence_out_of_range_is_rejected(self, confidence):
        with pytest.raises(ValueError):
            HeartRateReading(timestamp=1, value=60, confidence=confidence)

    def test_unnamed_device_gets_id_based_name(self):
        device = Device(id="A0:9E:1A:12:34:56")

        assert device.name == "Device A0:9E:1A"
        assert device.type == "other"

    def test_unknown_device_type_is_rejected(self):
        with pytest.raises(ValueError):
            Device(id="x", type="toaster")
