"""
Admin configuration for the devices app.
"""

from django.contrib import admin
from .models import ActivityReading, Device, HeartRateReading


@admin.register(Device)
class DeviceAdmin(admin.ModelAdmin):
    list_display = ['device_id', 'name', 'device_type', 'user', 'battery_level', 'last_connected']
    list_filter = ['device_type']
    search_fields = ['device_id', 'name', 'user__username']
    ordering = ['name']
    readonly_fields = ['created_at']


@admin.register(HeartRateReading)
class HeartRateReadingAdmin(admin.ModelAdmin):
    list_display = ['id', 'device', 'bpm', 'confidence', 'created_at']
    list_filter = ['created_at', 'sensor_contact']
    search_fields = ['bpm', 'device__device_id']
    ordering = ['-created_at']
    readonly_fields = ['device', 'sensor_timestamp', 'bpm', 'rr_intervals', 'energy',
                       'sensor_contact', 'confidence', 'created_at']

    date_hierarchy = 'created_at'


@admin.register(ActivityReading)
class ActivityReadingAdmin(admin.ModelAdmin):
    list_display = ['id', 'device', 'speed', 'cadence', 'distance', 'created_at']
    list_filter = ['created_at']
    search_fields = ['device__device_id']
    ordering = ['-created_at']
    readonly_fields = ['device', 'sensor_timestamp', 'speed', 'pace', 'cadence', 'distance',
                       'stride_length', 'calories', 'confidence', 'created_at']

    date_hierarchy = 'created_at'
