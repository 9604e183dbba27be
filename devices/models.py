"""
Device and reading models for wearable telemetry.

Readings arrive as Pub/Sub messages published by the telemetry producer:
{
    "type": "HR",
    "device_id": "A0:9E:1A:12:34:56",
    "device_name": "Polar H10 1234ABCD",
    "user": "alice",
    "timestamp": 1766417260747938000,  # nanoseconds
    "value": 119,
    "rr_intervals": [521.484375],  # milliseconds
    "energy_expended": null,
    "sensor_contact": true,
    "confidence": 95
}
"""

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from telemetry.readings import DEVICE_TYPES


confidence_validators = [MinValueValidator(0), MaxValueValidator(100)]


class Device(models.Model):
    """
    A paired peripheral, unique per (user, device id).
    """

    DEVICE_TYPE_CHOICES = [(t, t.replace('_', ' ').title()) for t in DEVICE_TYPES]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='devices',
    )

    # Identifier assigned by the BLE stack (address or platform id)
    device_id = models.CharField(max_length=64)

    name = models.CharField(max_length=128, blank=True)

    device_type = models.CharField(
        max_length=32,
        choices=DEVICE_TYPE_CHOICES,
        default='other',
    )

    capabilities = models.JSONField(default=list, blank=True)

    battery_level = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MaxValueValidator(100)],
        help_text="Last reported battery level in percent"
    )

    manufacturer = models.CharField(max_length=128, blank=True)
    model_number = models.CharField(max_length=128, blank=True)
    firmware_version = models.CharField(max_length=64, blank=True)

    last_connected = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'device_id'],
                name='unique_device_per_user',
            ),
        ]

    def __str__(self):
        return f"{self.name or self.device_id} ({self.get_device_type_display()})"


class HeartRateReading(models.Model):
    """
    Model to store individual heart rate readings decoded from a Heart Rate
    Measurement notification.
    """

    device = models.ForeignKey(
        Device,
        on_delete=models.CASCADE,
        related_name='heart_rate_readings',
    )

    # Decode timestamp in nanoseconds
    sensor_timestamp = models.BigIntegerField(
        help_text="Sensor timestamp in nanoseconds"
    )

    # Heart rate in beats per minute
    bpm = models.IntegerField(
        help_text="Heart rate in beats per minute"
    )

    # RR intervals in milliseconds (time between consecutive heartbeats)
    rr_intervals = models.JSONField(
        default=list,
        blank=True,
        help_text="RR intervals in milliseconds"
    )

    # Energy expended in kilojoules (usually absent)
    energy = models.IntegerField(
        null=True,
        blank=True,
        help_text="Energy expenditure in kilojoules (if available)"
    )

    sensor_contact = models.BooleanField(
        null=True,
        blank=True,
        help_text="Skin contact, when the sensor supports detecting it"
    )

    confidence = models.PositiveSmallIntegerField(
        default=80,
        validators=confidence_validators,
    )

    # Server-side timestamp when the reading was received/stored
    created_at = models.DateTimeField(
        default=timezone.now,
        db_index=True,
        help_text="Timestamp when the reading was stored in database"
    )

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"HR: {self.bpm} BPM at {self.created_at.strftime('%Y-%m-%d %H:%M:%S')}"

    @property
    def sensor_timestamp_seconds(self):
        """Convert sensor timestamp from nanoseconds to seconds."""
        return self.sensor_timestamp / 1_000_000_000


class ActivityReading(models.Model):
    """
    Model to store running speed and cadence readings.
    """

    device = models.ForeignKey(
        Device,
        on_delete=models.CASCADE,
        related_name='activity_readings',
    )

    sensor_timestamp = models.BigIntegerField(
        help_text="Sensor timestamp in nanoseconds"
    )

    speed = models.FloatField(help_text="Instantaneous speed in m/s")
    pace = models.FloatField(help_text="Pace in min/km, 0 when standing still")
    cadence = models.PositiveIntegerField(default=0, help_text="Steps per minute")
    distance = models.FloatField(default=0, help_text="Total distance in metres")
    stride_length = models.FloatField(
        null=True,
        blank=True,
        help_text="Stride length in metres (if available)"
    )
    calories = models.PositiveIntegerField(default=0)

    confidence = models.PositiveSmallIntegerField(
        default=90,
        validators=confidence_validators,
    )

    created_at = models.DateTimeField(
        default=timezone.now,
        db_index=True,
    )

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"RSC: {self.speed:.2f} m/s, {self.cadence} spm at {self.created_at.strftime('%Y-%m-%d %H:%M:%S')}"

    @property
    def sensor_timestamp_seconds(self):
        return self.sensor_timestamp / 1_000_000_000
