"""
Tests for the devices REST API
==============================

Tests for devices/views.py
"""

from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from devices.models import ActivityReading, Device, HeartRateReading


pytestmark = pytest.mark.django_db


def add_heart_rate(device, bpm, rr_intervals=(), created_at=None):
    return HeartRateReading.objects.create(
        device=device,
        sensor_timestamp=1_000_000_000,
        bpm=bpm,
        rr_intervals=list(rr_intervals),
        created_at=created_at or timezone.now(),
    )


def add_activity(device, speed, cadence=170, distance=0, calories=0, created_at=None):
    return ActivityReading.objects.create(
        device=device,
        sensor_timestamp=1_000_000_000,
        speed=speed,
        pace=(1000 / 60) / speed,
        cadence=cadence,
        distance=distance,
        calories=calories,
        created_at=created_at or timezone.now(),
    )


class TestAccess:
    """Readings and devices are scoped to their owner."""

    def test_requires_authentication(self):
        response = APIClient().get("/api/heartrate/")

        assert response.status_code in (401, 403)

    def test_readings_are_scoped_to_user(self, api_client, strap, other_user):
        other_strap = Device.objects.create(user=other_user, device_id="FF:FF", name="Bob's strap")
        mine = add_heart_rate(strap, 70)
        add_heart_rate(other_strap, 90)

        response = api_client.get("/api/heartrate/")

        assert response.status_code == 200
        assert [r["id"] for r in response.data["results"]] == [mine.id]
        assert response.data["results"][0]["device_id"] == strap.device_id

    def test_staff_see_every_reading(self, strap, other_user):
        other_user.is_staff = True
        other_user.save()
        add_heart_rate(strap, 70)
        client = APIClient()
        client.force_authenticate(user=other_user)

        response = client.get("/api/heartrate/")

        assert response.data["count"] == 1

    def test_device_list_shows_own_devices(self, api_client, strap, foot_pod, other_user):
        Device.objects.create(user=other_user, device_id="FF:FF")

        response = api_client.get("/api/devices/")

        names = [d["name"] for d in response.data["results"]]
        assert names == ["Polar H10 1234ABCD", "Stryd"]

    def test_other_users_device_is_not_found(self, api_client, other_user):
        device = Device.objects.create(user=other_user, device_id="FF:FF")

        response = api_client.get(f"/api/devices/{device.id}/")

        assert response.status_code == 404


class TestFilters:
    """Tests for the ?minutes and ?device query parameters."""

    def test_device_filter(self, api_client, strap, user):
        second = Device.objects.create(user=user, device_id="11:22", name="Spare strap")
        add_heart_rate(strap, 70)
        add_heart_rate(second, 75)

        response = api_client.get("/api/heartrate/", {"device": "11:22"})

        assert [r["bpm"] for r in response.data["results"]] == [75]

    def test_minutes_filter(self, api_client, strap):
        add_heart_rate(strap, 60, created_at=timezone.now() - timedelta(minutes=20))
        add_heart_rate(strap, 80)

        response = api_client.get("/api/heartrate/", {"minutes": 5})

        assert [r["bpm"] for r in response.data["results"]] == [80]

    def test_invalid_minutes_is_ignored(self, api_client, strap):
        add_heart_rate(strap, 60, created_at=timezone.now() - timedelta(minutes=20))
        add_heart_rate(strap, 80)

        response = api_client.get("/api/heartrate/", {"minutes": "soon"})

        assert response.data["count"] == 2


class TestHeartRateEndpoints:
    """Tests for heart rate latest, stats and correlation."""

    def test_latest_without_readings(self, api_client):
        response = api_client.get("/api/heartrate/latest/")

        assert response.status_code == 404

    def test_latest(self, api_client, strap):
        add_heart_rate(strap, 60, created_at=timezone.now() - timedelta(minutes=1))
        add_heart_rate(strap, 64)

        response = api_client.get("/api/heartrate/latest/")

        assert response.status_code == 200
        assert response.data["bpm"] == 64

    def test_stats(self, api_client, strap):
        add_heart_rate(strap, 60, rr_intervals=[800, 1000])
        add_heart_rate(strap, 80, rr_intervals=[1000])

        response = api_client.get("/api/heartrate/stats/")

        assert response.data["count"] == 2
        assert response.data["avg_bpm"] == 70.0
        assert response.data["min_bpm"] == 60
        assert response.data["max_bpm"] == 80
        assert response.data["stdev_bpm"] == 10.0
        assert response.data["avg_rr_interval"] == 933.3
        assert response.data["sdnn"] == 94.3

    def test_stats_without_readings(self, api_client):
        response = api_client.get("/api/heartrate/stats/")

        assert response.data["count"] == 0
        assert response.data["avg_bpm"] is None
        assert response.data["stdev_bpm"] is None
        assert response.data["sdnn"] is None

    def test_correlation_with_speed(self, api_client, strap, foot_pod):
        base = timezone.now().replace(second=0, microsecond=0) - timedelta(minutes=10)
        for i in range(5):
            minute = base + timedelta(minutes=i)
            add_heart_rate(strap, 100 + 10 * i, created_at=minute)
            add_activity(foot_pod, 2.0 + 0.5 * i, created_at=minute)

        response = api_client.get("/api/heartrate/correlation/")

        assert response.status_code == 200
        assert response.data["coefficient"] == pytest.approx(1.0)
        assert response.data["sample_size"] == 5
        assert response.data["significant"] is True
        assert response.data["strength"] == "high"

    def test_correlation_with_a_device_per_series(self, api_client, strap, foot_pod, user):
        spare_strap = Device.objects.create(user=user, device_id="11:22", name="Spare strap")
        base = timezone.now().replace(second=0, microsecond=0) - timedelta(minutes=10)
        for i in range(5):
            minute = base + timedelta(minutes=i)
            add_heart_rate(strap, 100 + 10 * i, created_at=minute)
            add_heart_rate(spare_strap, 180 - 20 * i, created_at=minute)
            add_activity(foot_pod, 2.0 + 0.5 * i, created_at=minute)

        response = api_client.get("/api/heartrate/correlation/", {
            "heart_rate_device": strap.device_id,
            "speed_device": foot_pod.device_id,
        })

        assert response.data["sample_size"] == 5
        assert response.data["coefficient"] == pytest.approx(1.0)

    def test_invalid_minutes_keeps_correlation_window(self, api_client, strap, foot_pod):
        recent = timezone.now().replace(second=0, microsecond=0) - timedelta(minutes=10)
        old = recent - timedelta(hours=2)
        for i in range(3):
            add_heart_rate(strap, 100 + 10 * i, created_at=recent + timedelta(minutes=i))
            add_activity(foot_pod, 2.0 + 0.5 * i, created_at=recent + timedelta(minutes=i))
            add_heart_rate(strap, 90, created_at=old + timedelta(minutes=i))
            add_activity(foot_pod, 3.0, created_at=old + timedelta(minutes=i))

        response = api_client.get("/api/heartrate/correlation/", {"minutes": "abc"})

        assert response.data["sample_size"] == 3

    def test_correlation_without_overlap(self, api_client, strap):
        add_heart_rate(strap, 70)

        response = api_client.get("/api/heartrate/correlation/")

        assert response.data["coefficient"] == 0
        assert response.data["significant"] is False


class TestActivityEndpoints:
    """Tests for running speed and cadence endpoints."""

    def test_latest(self, api_client, foot_pod):
        add_activity(foot_pod, 3.0, created_at=timezone.now() - timedelta(minutes=1))
        add_activity(foot_pod, 3.5)

        response = api_client.get("/api/activity/latest/")

        assert response.data["speed"] == 3.5
        assert response.data["device_id"] == foot_pod.device_id

    def test_stats(self, api_client, foot_pod):
        add_activity(foot_pod, 3.0, cadence=160, distance=100, calories=6)
        add_activity(foot_pod, 4.0, cadence=180, distance=250, calories=15)

        response = api_client.get("/api/activity/stats/")

        assert response.data["count"] == 2
        assert response.data["avg_speed"] == 3.5
        assert response.data["avg_cadence"] == 170.0
        assert response.data["max_distance"] == 250.0
        assert response.data["max_calories"] == 15
