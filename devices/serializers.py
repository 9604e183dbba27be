"""
Serializers for the wearable devices API.
"""

from rest_framework import serializers
from .models import ActivityReading, Device, HeartRateReading


class DeviceSerializer(serializers.ModelSerializer):
    """Serializer for Device model."""

    class Meta:
        model = Device
        fields = [
            'id',
            'device_id',
            'name',
            'device_type',
            'capabilities',
            'battery_level',
            'manufacturer',
            'model_number',
            'firmware_version',
            'last_connected',
            'created_at',
        ]
        read_only_fields = fields


class HeartRateReadingSerializer(serializers.ModelSerializer):
    """Serializer for HeartRateReading model."""

    device_id = serializers.CharField(source='device.device_id', read_only=True)
    sensor_timestamp_seconds = serializers.FloatField(read_only=True)

    class Meta:
        model = HeartRateReading
        fields = [
            'id',
            'device_id',
            'sensor_timestamp',
            'sensor_timestamp_seconds',
            'bpm',
            'rr_intervals',
            'energy',
            'sensor_contact',
            'confidence',
            'created_at',
        ]
        read_only_fields = fields


class ActivityReadingSerializer(serializers.ModelSerializer):
    """Serializer for ActivityReading model."""

    device_id = serializers.CharField(source='device.device_id', read_only=True)
    sensor_timestamp_seconds = serializers.FloatField(read_only=True)

    class Meta:
        model = ActivityReading
        fields = [
            'id',
            'device_id',
            'sensor_timestamp',
            'sensor_timestamp_seconds',
            'speed',
            'pace',
            'cadence',
            'distance',
            'stride_length',
            'calories',
            'confidence',
            'created_at',
        ]
        read_only_fields = fields


class HeartRateStatsSerializer(serializers.Serializer):
    """Serializer for heart rate statistics."""

    count = serializers.IntegerField()
    avg_bpm = serializers.FloatField(allow_null=True)
    min_bpm = serializers.IntegerField(allow_null=True)
    max_bpm = serializers.IntegerField(allow_null=True)
    stdev_bpm = serializers.FloatField(allow_null=True)
    avg_rr_interval = serializers.FloatField(allow_null=True)
    sdnn = serializers.FloatField(allow_null=True)
    time_range_start = serializers.DateTimeField(allow_null=True)
    time_range_end = serializers.DateTimeField(allow_null=True)


class ActivityStatsSerializer(serializers.Serializer):
    """Serializer for running speed and cadence statistics."""

    count = serializers.IntegerField()
    avg_speed = serializers.FloatField(allow_null=True)
    avg_cadence = serializers.FloatField(allow_null=True)
    avg_pace = serializers.FloatField(allow_null=True)
    max_distance = serializers.FloatField(allow_null=True)
    max_calories = serializers.IntegerField(allow_null=True)
    time_range_start = serializers.DateTimeField(allow_null=True)
    time_range_end = serializers.DateTimeField(allow_null=True)


class CorrelationSerializer(serializers.Serializer):
    """Serializer for a correlation between two per-minute series."""

    coefficient = serializers.FloatField()
    sample_size = serializers.IntegerField()
    significant = serializers.BooleanField()
    strength = serializers.CharField()
    confidence = serializers.FloatField()
