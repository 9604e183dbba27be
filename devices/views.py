"""
API views for the devices app.
"""

from collections import defaultdict
from datetime import timedelta
from django.utils import timezone
from django.db.models import Avg, Min, Max, Count
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response

from telemetry import stats as telemetry_stats

from .models import ActivityReading, Device, HeartRateReading
from .serializers import (
    ActivityReadingSerializer,
    ActivityStatsSerializer,
    CorrelationSerializer,
    DeviceSerializer,
    HeartRateReadingSerializer,
    HeartRateStatsSerializer,
)


# Window used by the correlation endpoint when no ?minutes is given
DEFAULT_CORRELATION_MINUTES = 30


def filter_readings(queryset, request, default_minutes=None, device_param='device'):
    """
    Restrict a reading queryset to what the requesting user may see and
    apply the common query parameters.

    Query parameters:
        - minutes: Get readings from the last N minutes; an invalid value
          falls back to ``default_minutes`` (no limit when that is None)
        - device: Only readings from the device with this device id (the
          parameter name is ``device_param``)
    """
    if not request.user.is_staff:
        queryset = queryset.filter(device__user=request.user)

    minutes = default_minutes
    raw_minutes = request.query_params.get('minutes')
    if raw_minutes:
        try:
            minutes = int(raw_minutes)
        except ValueError:
            pass  # Invalid minutes value, keep the default
    if minutes:
        cutoff_time = timezone.now() - timedelta(minutes=minutes)
        queryset = queryset.filter(created_at__gte=cutoff_time)

    device_id = request.query_params.get(device_param)
    if device_id:
        queryset = queryset.filter(device__device_id=device_id)

    return queryset.order_by('-created_at')


def per_minute_means(rows):
    """Average (created_at, value) rows into buckets keyed by minute."""
    buckets = defaultdict(list)
    for created_at, value in rows:
        buckets[created_at.replace(second=0, microsecond=0)].append(value)
    return {
        minute: telemetry_stats.average(values)
        for minute, values in buckets.items()
    }


class DeviceViewSet(viewsets.ReadOnlyModelViewSet):
    """
    API endpoint for paired devices.

    Endpoints:
        GET /api/devices/          - List the current user's devices
        GET /api/devices/{id}/     - Get a single device
    """

    serializer_class = DeviceSerializer

    def get_queryset(self):
        queryset = Device.objects.all()
        if not self.request.user.is_staff:
            queryset = queryset.filter(user=self.request.user)
        return queryset


class HeartRateViewSet(viewsets.ReadOnlyModelViewSet):
    """
    API endpoint for heart rate readings.

    Endpoints:
        GET /api/heartrate/                  - List all readings (paginated)
        GET /api/heartrate/?minutes=5        - Get readings from last N minutes
        GET /api/heartrate/?device=<id>      - Get readings from one device
        GET /api/heartrate/{id}/             - Get single reading by ID
        GET /api/heartrate/latest/           - Get most recent reading
        GET /api/heartrate/stats/            - Get aggregated statistics
        GET /api/heartrate/correlation/      - Heart rate against running speed
    """

    serializer_class = HeartRateReadingSerializer

    def get_queryset(self):
        queryset = HeartRateReading.objects.select_related('device')
        return filter_readings(queryset, self.request)

    @action(detail=False, methods=['get'])
    def latest(self, request):
        """
        Get the most recent heart rate reading.

        GET /api/heartrate/latest/
        """
        reading = self.get_queryset().first()
        if reading:
            serializer = self.get_serializer(reading)
            return Response(serializer.data)
        return Response(
            {'detail': 'No readings available'},
            status=status.HTTP_404_NOT_FOUND
        )

    @action(detail=False, methods=['get'])
    def stats(self, request):
        """
        Get aggregated statistics for heart rate readings.

        GET /api/heartrate/stats/
        GET /api/heartrate/stats/?minutes=5

        Returns:
            - count: Total number of readings
            - avg_bpm, min_bpm, max_bpm: Heart rate summary
            - stdev_bpm: Population standard deviation of heart rate
            - avg_rr_interval: Mean of every RR interval in range
            - sdnn: Standard deviation of every RR interval in range
            - time_range_start, time_range_end: Reading timestamps
        """
        queryset = self.get_queryset()

        stats = queryset.aggregate(
            count=Count('id'),
            avg_bpm=Avg('bpm'),
            min_bpm=Min('bpm'),
            max_bpm=Max('bpm'),
            time_range_start=Min('created_at'),
            time_range_end=Max('created_at'),
        )

        bpm_values = []
        rr_intervals = []
        for bpm, intervals in queryset.values_list('bpm', 'rr_intervals'):
            bpm_values.append(bpm)
            rr_intervals.extend(intervals or [])

        stats['stdev_bpm'] = None
        if bpm_values:
            stats['stdev_bpm'] = round(telemetry_stats.standard_deviation(bpm_values), 1)

        stats['avg_rr_interval'] = None
        stats['sdnn'] = None
        if rr_intervals:
            stats['avg_rr_interval'] = round(telemetry_stats.average(rr_intervals), 1)
            stats['sdnn'] = round(telemetry_stats.standard_deviation(rr_intervals), 1)

        # Round floating point values
        if stats['avg_bpm']:
            stats['avg_bpm'] = round(stats['avg_bpm'], 1)

        serializer = HeartRateStatsSerializer(stats)
        return Response(serializer.data)

    @action(detail=False, methods=['get'])
    def correlation(self, request):
        """
        Correlate heart rate with running speed, minute by minute.

        GET /api/heartrate/correlation/
        GET /api/heartrate/correlation/?minutes=60
        GET /api/heartrate/correlation/?heart_rate_device=<id>&speed_device=<id>

        Both series are averaged per minute and only minutes with readings
        of both kinds are compared. Defaults to the last 30 minutes. Heart
        rate and speed usually come from different sensors, so each series
        takes its own device parameter.
        """
        heart_rate = per_minute_means(
            filter_readings(HeartRateReading.objects.all(), request,
                            default_minutes=DEFAULT_CORRELATION_MINUTES,
                            device_param='heart_rate_device')
            .values_list('created_at', 'bpm'))
        speed = per_minute_means(
            filter_readings(ActivityReading.objects.all(), request,
                            default_minutes=DEFAULT_CORRELATION_MINUTES,
                            device_param='speed_device')
            .values_list('created_at', 'speed'))

        minutes = sorted(set(heart_rate) & set(speed))
        result = telemetry_stats.correlate(
            [heart_rate[m] for m in minutes],
            [speed[m] for m in minutes],
        )
        serializer = CorrelationSerializer(result)
        return Response(serializer.data)


class ActivityViewSet(viewsets.ReadOnlyModelViewSet):
    """
    API endpoint for running speed and cadence readings.

    Endpoints:
        GET /api/activity/                - List all readings (paginated)
        GET /api/activity/?minutes=5      - Get readings from last N minutes
        GET /api/activity/{id}/           - Get single reading by ID
        GET /api/activity/latest/         - Get most recent reading
        GET /api/activity/stats/          - Get aggregated statistics
    """

    serializer_class = ActivityReadingSerializer

    def get_queryset(self):
        queryset = ActivityReading.objects.select_related('device')
        return filter_readings(queryset, self.request)

    @action(detail=False, methods=['get'])
    def latest(self, request):
        reading = self.get_queryset().first()
        if reading:
            serializer = self.get_serializer(reading)
            return Response(serializer.data)
        return Response(
            {'detail': 'No readings available'},
            status=status.HTTP_404_NOT_FOUND
        )

    @action(detail=False, methods=['get'])
    def stats(self, request):
        """
        Get aggregated statistics for activity readings.

        GET /api/activity/stats/?minutes=30
        """
        stats = self.get_queryset().aggregate(
            count=Count('id'),
            avg_speed=Avg('speed'),
            avg_cadence=Avg('cadence'),
            avg_pace=Avg('pace'),
            max_distance=Max('distance'),
            max_calories=Max('calories'),
            time_range_start=Min('created_at'),
            time_range_end=Max('created_at'),
        )

        for key in ('avg_speed', 'avg_cadence', 'avg_pace'):
            if stats[key]:
                stats[key] = round(stats[key], 2)

        serializer = ActivityStatsSerializer(stats)
        return Response(serializer.data)
