"""
This Source Code Form is subject to the terms of the Mozilla Public
License, v. 2.0. If a copy of the MPL was not distributed with this
file, You can obtain one at http://mozilla.org/MPL/2.0/.

Copyright (C) 2023 Fabrizio Smeraldi <fabrizio@smeraldi.net>
"""

""" Wearable telemetry acquisition: decode GATT notifications and publish """

import sys
import os
import asyncio
import argparse
import random
import struct
import json
from dataclasses import asdict

from telemetry.log import configure_logging
from telemetry.readings import Device, now_ns
from telemetry.session import DeviceRegistry, EVENT_KINDS

# Google Cloud Pub/Sub imports (optional)
try:
    from google.cloud import pubsub_v1
    from google.auth.exceptions import DefaultCredentialsError
    PUBSUB_AVAILABLE = True
except ImportError:
    PUBSUB_AVAILABLE = False
    DefaultCredentialsError = Exception

# Due to asyncio limitations on Windows, one cannot use loop.add_reader
# to handle keyboard input; we use threading instead. See
# https://docs.python.org/3.11/library/asyncio-platforms.html
if sys.platform=="win32":
    from threading import Thread
    add_reader_support=False
else:
    add_reader_support=True

# Message type tag for each reading kind
MESSAGE_TYPES = {
    'heart_rate': 'HR',
    'heart_rate_variability': 'HRV',
    'running_speed_cadence': 'RSC',
    'cycling_power': 'CP',
    'battery_level': 'BATT',
    'device': 'DEVICE',
}

DEFAULT_KINDS = ('heart_rate',)


class Publisher:
    """ Sends every reading either to a Pub/Sub topic or to the screen.
    The registry calls the publisher from the event loop thread, so
    publish must return before the next frame is received. """

    def __init__(self, registry, user=None, pubsub_publisher=None,
                 topic_path=None):
        self.registry = registry
        self.user = user
        self.pubsub_publisher = pubsub_publisher
        self.topic_path = topic_path

    def __call__(self, event):
        if isinstance(event, Device):
            message = device_to_message(event, user=self.user)
        else:
            device = self.registry.get(event.device_id)
            message = reading_to_message(
                event,
                device_name=device.name if device else None,
                user=self.user)
        if self.pubsub_publisher is not None and self.topic_path is not None:
            try:
                # We don't wait for the future to complete to avoid blocking;
                # the message is published asynchronously
                _ = self.pubsub_publisher.publish(
                    self.topic_path,
                    json.dumps(message).encode('utf-8')
                )
                print(f"Published to Pub/Sub: {message}")
            except Exception as e:
                print(f"Error publishing to Pub/Sub: {e}")
                print(f"Data: {message}")
        else:
            print(message)


def reading_to_message(reading, device_name=None, user=None):
    """ Convert a reading to the JSON-serializable message published on
    the topic. Timestamps are in ns, RR intervals in ms and energy
    expenditure (if present) in kJoule. """
    message = asdict(reading)
    message['type'] = MESSAGE_TYPES[reading.kind]
    message['device_name'] = device_name
    message['user'] = user
    return message


def device_to_message(device, user=None):
    """ Convert a device record to a DEVICE message, sent whenever a
    sensor (re)connects so the backend can keep its device table in
    sync. """
    return {
        'type': MESSAGE_TYPES['device'],
        'device_id': device.id,
        'device_name': device.name,
        'user': user,
        'timestamp': device.last_connected or now_ns(),
        'device_type': device.type,
        'capabilities': list(device.capabilities),
        'battery_level': device.battery_level,
        'manufacturer': device.manufacturer,
        'model': device.model,
        'firmware_version': device.firmware_version,
    }


def encode_heart_rate(bpm, rr_intervals=(), energy=None, contact=True):
    """ Build a Heart Rate Measurement frame. RR intervals are given in
    ms and sent in 1/1024 s units, as a sensor would. """
    flags = 0x04 | (0x02 if contact else 0)
    if bpm > 255:
        flags |= 0x01
        payload = struct.pack('<H', bpm)
    else:
        payload = struct.pack('<B', bpm)
    if energy is not None:
        flags |= 0x08
        payload += struct.pack('<H', energy)
    if rr_intervals:
        flags |= 0x10
        for rr in rr_intervals:
            payload += struct.pack('<H', max(1, round(rr * 1024 / 1000)))
    return bytes([flags]) + payload


def encode_running_speed_cadence(speed, cadence=None, stride_length=None,
                                 distance=None):
    """ Build an RSC Measurement frame; speed in m/s, stride in m,
    distance in m. """
    flags = 0
    payload = struct.pack('<H', round(speed * 256))
    if cadence is not None:
        flags |= 0x02
        payload += struct.pack('<B', cadence)
    if stride_length is not None:
        flags |= 0x04
        payload += struct.pack('<H', round(stride_length * 100))
    if distance is not None:
        flags |= 0x08
        payload += struct.pack('<I', distance)
    return bytes([flags]) + payload


def generate_random_frames(distance):
    """ Generate one random heart rate frame and one RSC frame, shaped
    like a chest strap and a foot pod would send them during a run.
    Returns (hr_frame, rsc_frame). """
    bpm = random.randint(100, 120)
    # RR interval is inversely related to heart rate; 500-900ms with jitter
    rr_interval = random.randint(500, 900)
    hr_frame = encode_heart_rate(bpm, rr_intervals=[rr_interval])
    speed = random.uniform(2.5, 3.5)
    rsc_frame = encode_running_speed_cadence(
        speed, cadence=random.randint(160, 180), distance=distance)
    return hr_frame, rsc_frame


async def run_ble_client(registry, device, kinds):
    """ This task connects to the sensor, starts notifications and
    monitors connection and stdio for disconnects/user input. """

    def keyboard_handler(loop=None):
        """ Called by the asyncio loop when the user hits Enter,
        or run in a separate thread (if no add_reader support). In
        this case, the event loop is passed as an argument """
        input() # clear input buffer
        print (f"Quitting on user command")
        if loop==None:
            quitclient.set() # we are in the event loop thread
        else:
            # we are in a separate thread - call set in the event loop thread
            loop.call_soon_threadsafe(quitclient.set)

    def disconnected_callback():
        """ Called by the registry (in the event loop thread) if the
        sensor drops the connection """
        print("Sensor disconnected")
        quitclient.set()

    # we use this event to signal the end of the client task
    quitclient=asyncio.Event()
    loop=asyncio.get_running_loop()
    # the registry subscribes to every requested capability the sensor has
    info = await registry.connect(device, kinds=kinds,
                                  on_disconnect=disconnected_callback)
    try:
        print(f"Connected: {info.name} ({info.id}), capabilities: {info.capabilities}")
        if info.battery_level is not None:
            print(f"Battery: {info.battery_level}%")
        if add_reader_support:
            # Set the loop to call keyboard_handler when one line of input is
            # ready on stdin
            loop.add_reader(sys.stdin, keyboard_handler)
        else:
            # run keyboard_handler in a daemon thread
            Thread(target=keyboard_handler, kwargs={'loop': loop},
                   daemon=True).start()
        print(">>> Hit Enter to exit <<<")
        await quitclient.wait()
    finally:
        await registry.disconnect(info.id)
        if add_reader_support:
            loop.remove_reader(sys.stdin)


async def run_test_mode(registry):
    """ Run the app in test mode, generating random raw frames.
    Frames go through the same decode path as real notifications. """
    def keyboard_handler(loop=None):
        """ Called by the asyncio loop when the user hits Enter,
        or run in a separate thread (if no add_reader support). """
        input() # clear input buffer
        print("Quitting on user command")
        if loop is None:
            quittest.set()
        else:
            loop.call_soon_threadsafe(quittest.set)

    quittest = asyncio.Event()
    loop = asyncio.get_running_loop()

    if add_reader_support:
        loop.add_reader(sys.stdin, keyboard_handler)
    else:
        Thread(target=keyboard_handler, kwargs={'loop': loop},
               daemon=True).start()

    strap = registry.register(Device(id='TEST-HR-0001', name='Test strap',
                                     type='heart_rate',
                                     capabilities=['heart_rate'],
                                     connected=True,
                                     last_connected=now_ns())).device
    pod = registry.register(Device(id='TEST-RSC-0001', name='Test foot pod',
                                   type='running_speed_cadence',
                                   capabilities=['running_speed_cadence'],
                                   connected=True,
                                   last_connected=now_ns())).device

    print(">>> Running in TEST MODE - generating random frames <<<")
    print(">>> Hit Enter to exit <<<")

    registry.announce(strap)
    registry.announce(pod)

    distance = 0
    try:
        # Generate data at regular intervals (approximately every 50-200ms to simulate sensor)
        while not quittest.is_set():
            distance += random.randint(0, 1)
            hr_frame, rsc_frame = generate_random_frames(distance)
            registry.handle_notification(strap.id, 'heart_rate', hr_frame)
            registry.handle_notification(pod.id, 'running_speed_cadence', rsc_frame)
            await asyncio.sleep(random.uniform(0.05, 0.2))
    finally:
        if add_reader_support:
            loop.remove_reader(sys.stdin)


def init_pubsub(project_id, topic_name, credentials_path=None):
    """ Initialize Google Cloud Pub/Sub publisher.

    Args:
        project_id: Google Cloud project ID
        topic_name: Name of the Pub/Sub topic
        credentials_path: Optional path to service account JSON key file.
                         If not provided, uses Application Default Credentials.

    Returns:
        tuple: (publisher, topic_path) or (None, None) if initialization fails
    """
    if not PUBSUB_AVAILABLE:
        print("Warning: google-cloud-pubsub is not installed. Install it with: pip install google-cloud-pubsub")
        return None, None

    try:
        if credentials_path:
            if not os.path.exists(credentials_path):
                print(f"Error: Credentials file not found: {credentials_path}")
                return None, None
            os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = credentials_path
            print(f"Using credentials from: {credentials_path}")

        publisher = pubsub_v1.PublisherClient()
        topic_path = publisher.topic_path(project_id, topic_name)

        print(f"Initialized Pub/Sub publisher for topic: {topic_path}")
        return publisher, topic_path
    except DefaultCredentialsError as e:
        print("Error: Authentication failed. Please set up Google Cloud credentials.")
        print("Options:")
        print("  1. Set GOOGLE_APPLICATION_CREDENTIALS environment variable to your service account key file")
        print("  2. Use 'gcloud auth application-default login' to set up Application Default Credentials")
        print("  3. Use --pubsub-credentials-path argument to specify credentials file")
        print(f"   Error details: {e}")
        return None, None
    except Exception as e:
        print(f"Error initializing Pub/Sub: {e}")
        return None, None


async def main(test_mode=False, kinds=DEFAULT_KINDS, name_filter="polar",
               user=None, pubsub_project_id=None, pubsub_topic_name=None,
               pubsub_credentials_path=None):
    """ Main function that supports both normal and test modes.

    Args:
        test_mode: If True, run in test mode with random frames.
                   If False, try to connect to an actual sensor.
        kinds: capabilities to subscribe to on the sensor
        name_filter: substring the sensor's advertised name must contain
        user: username attached to every published message
        pubsub_project_id: Google Cloud project ID for Pub/Sub (optional)
        pubsub_topic_name: Pub/Sub topic name (optional)
        pubsub_credentials_path: Path to service account JSON key file (optional)
    """
    pubsub_publisher, pubsub_topic_path = None, None
    if pubsub_project_id and pubsub_topic_name:
        pubsub_publisher, pubsub_topic_path = init_pubsub(
            pubsub_project_id,
            pubsub_topic_name,
            credentials_path=pubsub_credentials_path
        )
        if pubsub_publisher is None:
            print("Warning: Failed to initialize Pub/Sub. Falling back to printing to screen.")
    else:
        print("No Pub/Sub configuration provided. Data will be printed to screen.")

    registry = DeviceRegistry()
    publisher = Publisher(registry, user=user,
                          pubsub_publisher=pubsub_publisher,
                          topic_path=pubsub_topic_path)
    for kind in EVENT_KINDS:
        registry.add_listener(kind, publisher)

    print("Readings are printed as dictionaries with a 'type' of")
    print("   HR, HRV, RSC, CP or BATT (and DEVICE when a sensor connects)")
    print("where timestamps are in ns, rr intervals are in ms, and")
    print("energy expenditure (if present) is in kJoule.")
    if test_mode:
        print("Running in TEST MODE - generating random frames")
        await run_test_mode(registry)
    else:
        print("Scanning for BLE devices")
        found = await registry.scan(kinds, name_filter=name_filter)
        if not found:
            print(f"No device matching '{name_filter}' found. If you have another")
            print("compatible device, use --name to change the filter.")
            print("\nTo run in test mode with random data, use: --test")
            sys.exit(-4)
        # client task will return when the user hits enter or the
        # sensor disconnects
        await run_ble_client(registry, found[0], kinds)
    print("Bye.")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Wearable telemetry acquisition from BLE sensors or test mode with random data"
    )
    parser.add_argument(
        "--test",
        action="store_true",
        help="Run in test mode with random data generation (no sensor required)"
    )
    parser.add_argument(
        "--kind",
        action="append",
        choices=["heart_rate", "running_speed_cadence", "cycling_power"],
        help="Capability to subscribe to (repeatable, default: heart_rate)"
    )
    parser.add_argument(
        "--name",
        type=str,
        default="polar",
        help="Substring of the sensor's advertised name (default: polar)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        help="Log level for decode and connection events (default: WARNING)"
    )
    parser.add_argument(
        "--user",
        type=str,
        help="Username the readings belong to, attached to every message"
    )
    parser.add_argument(
        "--pubsub-project-id",
        type=str,
        help="Google Cloud project ID for Pub/Sub (optional)"
    )
    parser.add_argument(
        "--pubsub-topic-name",
        type=str,
        help="Pub/Sub topic name (optional)"
    )
    parser.add_argument(
        "--pubsub-credentials-path",
        type=str,
        help="Path to Google Cloud service account JSON key file (optional). "
             "If not provided, uses Application Default Credentials or GOOGLE_APPLICATION_CREDENTIALS env var."
    )
    args = parser.parse_args(argv)

    # Both Pub/Sub arguments must be provided together
    if (args.pubsub_project_id and not args.pubsub_topic_name) or \
       (args.pubsub_topic_name and not args.pubsub_project_id):
        parser.error("Both --pubsub-project-id and --pubsub-topic-name must be provided together.")
    return args


def run(argv=None):
    args = parse_args(argv)
    configure_logging(level=args.log_level)
    asyncio.run(main(
        test_mode=args.test,
        kinds=tuple(args.kind or DEFAULT_KINDS),
        name_filter=args.name,
        user=args.user,
        pubsub_project_id=args.pubsub_project_id,
        pubsub_topic_name=args.pubsub_topic_name,
        pubsub_credentials_path=args.pubsub_credentials_path
    ))


# execute the main coroutine
if __name__ == "__main__":
    run()
