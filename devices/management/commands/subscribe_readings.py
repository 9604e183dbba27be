"""
Django management command to subscribe to Pub/Sub and save wearable readings
to the database.

Usage:
    python manage.py subscribe_readings --project-id YOUR_PROJECT_ID --subscription-name YOUR_SUBSCRIPTION_NAME

Or with environment variables:
    export PUBSUB_PROJECT_ID=your-project-id
    export PUBSUB_SUBSCRIPTION_NAME=your-subscription-name
    python manage.py subscribe_readings
"""

import json
import os
import signal
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.conf import settings
from django.utils import timezone

from devices.models import ActivityReading, Device, HeartRateReading
from telemetry.readings import DEVICE_TYPES

# Google Cloud Pub/Sub imports
try:
    from google.cloud import pubsub_v1
    from google.api_core.exceptions import NotFound, PermissionDenied
    PUBSUB_AVAILABLE = True
except ImportError:
    PUBSUB_AVAILABLE = False


# Fields every stored message type must carry, besides device_id and timestamp
REQUIRED_FIELDS = {
    'HR': ('value',),
    'RSC': ('speed',),
    'BATT': ('level',),
    'DEVICE': ('device_type',),
}

# Device type implied by a reading message, for devices still typed 'other'
IMPLIED_DEVICE_TYPES = {
    'HR': 'heart_rate',
    'RSC': 'running_speed_cadence',
}


class Command(BaseCommand):
    help = 'Subscribe to Google Cloud Pub/Sub and save wearable readings to database'

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.subscriber = None
        self.streaming_pull_future = None
        self.running = True
        self.default_username = None

    def add_arguments(self, parser):
        parser.add_argument(
            '--project-id',
            type=str,
            help='Google Cloud project ID (or set PUBSUB_PROJECT_ID env var)',
        )
        parser.add_argument(
            '--subscription-name',
            type=str,
            help='Pub/Sub subscription name (or set PUBSUB_SUBSCRIPTION_NAME env var)',
        )
        parser.add_argument(
            '--credentials-path',
            type=str,
            help='Path to service account JSON key file (optional)',
        )
        parser.add_argument(
            '--username',
            type=str,
            help='User owning readings whose message carries no user '
                 '(or set WEARABLES_DEFAULT_USER env var)',
        )
        parser.add_argument(
            '--timeout',
            type=int,
            default=None,
            help='Timeout in seconds (default: run indefinitely)',
        )

    def handle(self, *args, **options):
        if not PUBSUB_AVAILABLE:
            raise CommandError(
                'google-cloud-pubsub is not installed. '
                'Install it with: pip install google-cloud-pubsub'
            )

        # Get configuration from arguments or settings/environment
        project_id = options['project_id'] or settings.PUBSUB_PROJECT_ID
        subscription_name = options['subscription_name'] or settings.PUBSUB_SUBSCRIPTION_NAME
        credentials_path = options['credentials_path'] or settings.PUBSUB_CREDENTIALS_PATH
        self.default_username = options['username'] or settings.WEARABLES_DEFAULT_USER
        timeout = options['timeout']

        if not project_id:
            raise CommandError(
                'Project ID is required. Use --project-id or set PUBSUB_PROJECT_ID env var'
            )
        if not subscription_name:
            raise CommandError(
                'Subscription name is required. Use --subscription-name or set PUBSUB_SUBSCRIPTION_NAME env var'
            )

        # Set up signal handlers for graceful shutdown
        signal.signal(signal.SIGINT, self.signal_handler)
        signal.signal(signal.SIGTERM, self.signal_handler)

        self.stdout.write(self.style.SUCCESS(
            f'Starting Pub/Sub subscriber...\n'
            f'  Project ID: {project_id}\n'
            f'  Subscription: {subscription_name}'
        ))

        try:
            self.run_subscriber(project_id, subscription_name, credentials_path, timeout)
        except NotFound as e:
            raise CommandError(f'Subscription not found: {e}')
        except PermissionDenied as e:
            raise CommandError(f'Permission denied: {e}')
        except Exception as e:
            raise CommandError(f'Error: {e}')

    def signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully."""
        self.stdout.write(self.style.WARNING('\nReceived shutdown signal. Stopping...'))
        self.running = False
        if self.streaming_pull_future:
            self.streaming_pull_future.cancel()

    def run_subscriber(self, project_id, subscription_name, credentials_path, timeout):
        """Run the Pub/Sub subscriber."""
        if credentials_path:
            os.environ['GOOGLE_APPLICATION_CREDENTIALS'] = credentials_path
            self.stdout.write(f'Using credentials from: {credentials_path}')

        self.subscriber = pubsub_v1.SubscriberClient()
        subscription_path = self.subscriber.subscription_path(project_id, subscription_name)

        self.stdout.write(self.style.SUCCESS(
            f'Listening for messages on {subscription_path}...\n'
            f'Press Ctrl+C to stop.'
        ))

        self.streaming_pull_future = self.subscriber.subscribe(
            subscription_path,
            callback=self.message_callback,
        )

        try:
            # Block until timeout or signal
            self.streaming_pull_future.result(timeout=timeout)
        except Exception as e:
            if self.running:
                self.stdout.write(self.style.ERROR(f'Subscriber error: {e}'))
            self.streaming_pull_future.cancel()
            self.streaming_pull_future.result()  # Wait for cleanup

        self.stdout.write(self.style.SUCCESS('Subscriber stopped.'))

    def message_callback(self, message):
        """
        Callback function to process incoming Pub/Sub messages.

        Expected message format (JSON), as published by telemetry.producer:
        {
            "type": "HR",
            "device_id": "A0:9E:1A:12:34:56",
            "device_name": "Polar H10 1234ABCD",
            "user": "alice",
            "timestamp": 1766417260747938000,
            "value": 119,
            "rr_intervals": [521.484375],
            ...
        }

        DEVICE messages, sent when a sensor connects, carry device_type,
        capabilities, battery_level, manufacturer, model and
        firmware_version instead of reading fields.
        """
        try:
            data = json.loads(message.data.decode('utf-8'))

            msg_type = data.get('type')
            if msg_type not in REQUIRED_FIELDS:
                self.stdout.write(self.style.WARNING(
                    f'Ignoring {msg_type} message'
                ))
                message.ack()
                return

            # Validate required fields
            required = ('device_id', 'timestamp') + REQUIRED_FIELDS[msg_type]
            missing = [name for name in required if data.get(name) is None]
            if missing:
                self.stdout.write(self.style.ERROR(
                    f'Invalid message - missing required fields {missing}: {data}'
                ))
                message.ack()
                return

            username = data.get('user') or self.default_username
            user = None
            if username:
                user = get_user_model().objects.filter(username=username).first()
            if user is None:
                self.stdout.write(self.style.ERROR(
                    f'Invalid message - unknown user {username!r}: {data}'
                ))
                message.ack()
                return

            device = self.get_device(user, msg_type, data)

            if msg_type == 'HR':
                reading = HeartRateReading.objects.create(
                    device=device,
                    sensor_timestamp=data['timestamp'],
                    bpm=data['value'],
                    rr_intervals=data.get('rr_intervals') or [],
                    energy=data.get('energy_expended'),
                    sensor_contact=data.get('sensor_contact'),
                    confidence=data.get('confidence', 80),
                )
                self.stdout.write(
                    f'Saved: {reading.bpm} BPM, RR: {reading.rr_intervals}ms '
                    f'from {device.device_id} (ID: {reading.id})'
                )
            elif msg_type == 'RSC':
                reading = ActivityReading.objects.create(
                    device=device,
                    sensor_timestamp=data['timestamp'],
                    speed=data['speed'],
                    pace=data.get('pace', 0),
                    cadence=data.get('cadence', 0),
                    distance=data.get('distance', 0),
                    stride_length=data.get('stride_length'),
                    calories=data.get('calories', 0),
                    confidence=data.get('confidence', 90),
                )
                self.stdout.write(
                    f'Saved: {reading.speed:.2f} m/s, {reading.cadence} spm '
                    f'from {device.device_id} (ID: {reading.id})'
                )
            elif msg_type == 'BATT':
                device.battery_level = data['level']
                device.save(update_fields=['battery_level'])
                self.stdout.write(
                    f'Battery: {device.device_id} at {device.battery_level}%'
                )
            else:
                self.update_device_info(device, data)
                self.stdout.write(
                    f'Device: {device.device_id} is {device.device_type} '
                    f'with {device.capabilities}'
                )

            # Acknowledge the message
            message.ack()

        except json.JSONDecodeError as e:
            self.stdout.write(self.style.ERROR(
                f'Failed to decode JSON: {e}\nRaw data: {message.data}'
            ))
            message.ack()  # Ack to prevent redelivery of malformed messages
        except Exception as e:
            self.stdout.write(self.style.ERROR(f'Error processing message: {e}'))
            message.nack()  # Nack to retry later

    def get_device(self, user, msg_type, data):
        """Create or refresh the device a message was sent from."""
        device, created = Device.objects.get_or_create(
            user=user,
            device_id=data['device_id'],
            defaults={
                'name': data.get('device_name') or '',
                'device_type': IMPLIED_DEVICE_TYPES.get(msg_type, 'other'),
            },
        )
        if created:
            self.stdout.write(self.style.SUCCESS(
                f'Registered device {device.device_id} for {user.username}'
            ))
        device.last_connected = timezone.now()
        update_fields = ['last_connected']
        if data.get('device_name') and data['device_name'] != device.name:
            device.name = data['device_name']
            update_fields.append('name')
        implied_type = IMPLIED_DEVICE_TYPES.get(msg_type)
        if device.device_type == 'other' and implied_type:
            device.device_type = implied_type
            update_fields.append('device_type')
        device.save(update_fields=update_fields)
        return device

    def update_device_info(self, device, data):
        """Store the type, capabilities and device information of a DEVICE message."""
        if data['device_type'] in DEVICE_TYPES:
            device.device_type = data['device_type']
        else:
            self.stdout.write(self.style.WARNING(
                f'Unknown device type {data["device_type"]!r} for {device.device_id}'
            ))
        device.capabilities = list(data.get('capabilities') or [])
        if data.get('battery_level') is not None:
            device.battery_level = data['battery_level']
        device.manufacturer = data.get('manufacturer') or ''
        device.model_number = data.get('model') or ''
        device.firmware_version = data.get('firmware_version') or ''
        device.save(update_fields=[
            'device_type',
            'capabilities',
            'battery_level',
            'manufacturer',
            'model_number',
            'firmware_version',
        ])
