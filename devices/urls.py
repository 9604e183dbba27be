"""
URL configuration for the devices API.
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import ActivityViewSet, DeviceViewSet, HeartRateViewSet

router = DefaultRouter()
router.register(r'devices', DeviceViewSet, basename='device')
router.register(r'heartrate', HeartRateViewSet, basename='heartrate')
router.register(r'activity', ActivityViewSet, basename='activity')

urlpatterns = [
    path('', include(router.urls)),
]
