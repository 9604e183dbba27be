"""
Shared pytest fixtures.
"""

import pytest
from rest_framework.test import APIClient

from devices.models import Device


@pytest.fixture
def user(django_user_model):
    return django_user_model.objects.create_user(username="alice", password="test-password")


@pytest.fixture
def other_user(django_user_model):
    return django_user_model.objects.create_user(username="bob", password="test-password")


@pytest.fixture
def strap(user):
    return Device.objects.create(
        user=user,
        device_id="A0:9E:1A:12:34:56",
        name="Polar H10 1234ABCD",
        device_type="heart_rate",
        capabilities=["heart_rate"],
    )


@pytest.fixture
def foot_pod(user):
    return Device.objects.create(
        user=user,
        device_id="C4:7C:8D:65:43:21",
        name="Stryd",
        device_type="running_speed_cadence",
        capabilities=["running_speed_cadence"],
    )


@pytest.fixture
def api_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client
