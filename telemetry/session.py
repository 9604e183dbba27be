"""
Device session registry.

The registry owns every known peripheral and its live BLE connection, and
the listeners interested in each kind of reading. Notifications arrive on
the asyncio loop thread; each one is decoded synchronously, stamped with its
device id and handed to the listeners for its kind. Frames that fail to
decode are logged and skipped. The ``device`` listeners receive the device
record each time a connection is set up.

Usage:
    registry = DeviceRegistry()
    registry.add_listener('heart_rate', print)
    device = (await registry.scan(['heart_rate']))[0]
    await registry.connect(device)
"""

import dataclasses
from collections import defaultdict

import structlog
from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from telemetry import decoder
from telemetry.decoder import MalformedFrame
from telemetry.readings import Device, now_ns
from telemetry.stats import heart_rate_variability


logger = structlog.get_logger(__name__)

EVENT_KINDS = (
    'heart_rate',
    'heart_rate_variability',
    'running_speed_cadence',
    'cycling_power',
    'battery_level',
    'device',
)

# Device information characteristics read on connect
DEVICE_INFORMATION = {
    'manufacturer': decoder.MANUFACTURER_NAME,
    'model': decoder.MODEL_NUMBER,
    'firmware_version': decoder.FIRMWARE_REVISION,
}

# Service to filter discovery on for each capability
SCAN_SERVICES = {
    capability: service
    for service, capability in decoder.SERVICE_CAPABILITIES.items()
}


@dataclasses.dataclass
class DeviceSession:
    """A registered device and, while connected, its BLE client."""
    device: Device
    client: object = None
    subscribed: list = dataclasses.field(default_factory=list)


def device_type_for(capabilities):
    """Pick the registered device type from the capabilities it exposes."""
    if 'running_speed_cadence' in capabilities:
        return 'running_speed_cadence'
    if 'cycling_power' in capabilities:
        return 'cycling_power'
    if 'heart_rate' in capabilities:
        return 'heart_rate'
    return 'other'


class DeviceRegistry:
    """
    Owns device sessions and reading listeners.

    Create one per process (or per user) and pass it to whatever needs it;
    nothing here is module-global.
    """

    def __init__(self, client_factory=BleakClient, scanner=BleakScanner):
        self._client_factory = client_factory
        self._scanner = scanner
        self._sessions = {}
        self._listeners = defaultdict(list)

    # Listeners

    def add_listener(self, kind, callback):
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind '{kind}'")
        self._listeners[kind].append(callback)

    def remove_listener(self, kind, callback):
        listeners = self._listeners.get(kind)
        if listeners and callback in listeners:
            listeners.remove(callback)

    def _notify(self, kind, event, device_id):
        for listener in list(self._listeners.get(kind, ())):
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    "Listener failed",
                    kind=kind,
                    device_id=device_id,
                    error=str(e),
                )

    # Registry

    def register(self, device):
        session = self._sessions.get(device.id)
        if session is None:
            session = DeviceSession(device=device)
            self._sessions[device.id] = session
        else:
            session.device = device
        return session

    def get(self, device_id):
        session = self._sessions.get(device_id)
        return session.device if session else None

    def devices(self):
        return [session.device for session in self._sessions.values()]

    # Notifications

    def handle_notification(self, device_id, kind, data):
        """
        Decode one notification and dispatch it.

        Returns the reading handed to listeners, or None when the frame was
        malformed and skipped.
        """
        try:
            reading = decoder.decode(kind, data)
        except MalformedFrame as e:
            logger.warning(
                "Skipping malformed frame",
                device_id=device_id,
                kind=kind,
                error=str(e),
            )
            return None

        reading = dataclasses.replace(reading, device_id=device_id)

        if kind == 'battery_level':
            device = self.get(device_id)
            if device is not None:
                device.battery_level = reading.level

        self._notify(kind, reading, device_id)

        if kind == 'heart_rate' and reading.rr_intervals:
            self._notify('heart_rate_variability', heart_rate_variability(reading), device_id)

        return reading

    def announce(self, device):
        """Send ``device`` to the ``device`` listeners, e.g. after a (re)connect."""
        self._notify('device', device, device.id)

    # BLE lifecycle

    async def scan(self, kinds=('heart_rate',), timeout=5.0, name_filter=None):
        """
        Discover peripherals advertising any of the services for ``kinds``.

        Returns the matching bleak BLEDevice objects.
        """
        service_uuids = [SCAN_SERVICES[kind] for kind in kinds if kind in SCAN_SERVICES]
        found = await self._scanner.discover(timeout=timeout, service_uuids=service_uuids)
        if name_filter:
            found = [
                d for d in found
                if d.name and name_filter.lower() in d.name.lower()
            ]
        logger.info("Scan finished", kinds=list(kinds), found=len(found))
        return found

    async def connect(self, ble_device, kinds=None, on_disconnect=None):
        """
        Connect to ``ble_device`` and subscribe to its readings.

        Capabilities come from the services the peripheral exposes; ``kinds``
        narrows the subscriptions to a subset of them. Battery and device
        information are read when available and skipped otherwise.
        ``on_disconnect`` is called with no arguments if the link drops.

        If anything fails after the link is up, the link is closed again
        before the error propagates. Once connected, the device record is
        sent to the ``device`` listeners.
        """
        device_id = ble_device.address
        session = self._sessions.get(device_id)
        if session is None:
            session = self.register(Device(id=device_id, name=ble_device.name or ''))

        def disconnected_callback(client):
            """ Called by bleak if the peripheral drops the connection """
            logger.info("Device disconnected", device_id=device_id)
            session.device.connected = False
            session.client = None
            session.subscribed = []
            if on_disconnect is not None:
                on_disconnect()

        client = self._client_factory(ble_device, disconnected_callback=disconnected_callback)
        await client.connect()
        session.client = client

        try:
            device = await self._setup(session, client, kinds)
        except BaseException as e:
            logger.warning("Connection setup failed", device_id=device_id, error=repr(e))
            session.client = None
            session.subscribed = []
            try:
                await client.disconnect()
            except BleakError as disconnect_error:
                logger.debug("disconnect failed", device_id=device_id,
                             error=str(disconnect_error))
            raise

        device.connected = True
        device.last_connected = now_ns()
        logger.info(
            "Device connected",
            device_id=device_id,
            name=device.name,
            capabilities=device.capabilities,
            subscribed=session.subscribed,
        )
        self.announce(device)
        return device

    async def _setup(self, session, client, kinds):
        device = session.device
        service_uuids = {service.uuid.lower() for service in client.services}
        capabilities = [
            capability
            for service, capability in decoder.SERVICE_CAPABILITIES.items()
            if service in service_uuids
        ]
        device.capabilities = capabilities
        device.type = device_type_for(capabilities)

        if decoder.DEVICE_INFORMATION_SERVICE in service_uuids:
            for attribute, uuid in DEVICE_INFORMATION.items():
                try:
                    value = await client.read_gatt_char(uuid)
                except BleakError as e:
                    logger.debug("Device information unavailable",
                                 device_id=device.id, field=attribute, error=str(e))
                    continue
                setattr(device, attribute, bytes(value).decode('utf-8', errors='replace').strip('\x00'))

        wanted = [k for k in (kinds or capabilities) if k in capabilities]
        for kind in wanted:
            await self._subscribe(session, kind)

        if decoder.BATTERY_SERVICE in service_uuids:
            try:
                level = decoder.decode_battery_level(
                    await client.read_gatt_char(decoder.BATTERY_LEVEL))
                device.battery_level = level.level
                await self._subscribe(session, 'battery_level')
            except (BleakError, MalformedFrame) as e:
                logger.info("Battery level unavailable", device_id=device.id, error=str(e))

        return device

    async def _subscribe(self, session, kind):
        device_id = session.device.id

        def callback(sender, data):
            self.handle_notification(device_id, kind, data)

        await session.client.start_notify(decoder.CHARACTERISTICS[kind], callback)
        session.subscribed.append(kind)

    async def disconnect(self, device_id):
        """Stop notifications and drop the connection; False if not connected."""
        session = self._sessions.get(device_id)
        if session is None or session.client is None:
            return False

        client = session.client
        if client.is_connected:
            for kind in session.subscribed:
                try:
                    await client.stop_notify(decoder.CHARACTERISTICS[kind])
                except BleakError as e:
                    logger.debug("stop_notify failed", device_id=device_id,
                                 kind=kind, error=str(e))
            await client.disconnect()

        session.client = None
        session.subscribed = []
        session.device.connected = False
        return True
