"""
BLE central capability used by the supervisor and the relay.

The core only talks to the two small interfaces below (BleCentral/BlePeripheral);
BleakCentral/BleakPeripheral implement them on top of bleak (BlueZ on Linux).

Notification stream semantics:
- one stream per connection, not restartable
- ends (async iterator stops) when the link drops or disconnect() is called
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Tuple

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from ..errors import AdapterUnavailableError, DiscoveryError, SubscribeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Advertisement:
    """A peripheral seen during the last scan window."""
    name: Optional[str]
    address: str
    rssi: Optional[int] = None
    device: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class GattCharacteristic:
    uuid: str
    handle: int = 0
    properties: Tuple[str, ...] = ()
    native: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class GattService:
    uuid: str
    characteristics: Tuple[GattCharacteristic, ...] = ()


class BlePeripheral(Protocol):
    @property
    def name(self) -> Optional[str]: ...
    @property
    def address(self) -> str: ...
    async def discover_services(self) -> List[GattService]: ...
    async def subscribe(self, characteristic: GattCharacteristic) -> None: ...
    def notifications(self) -> AsyncIterator[bytes]: ...
    async def is_connected(self) -> bool: ...
    async def disconnect(self) -> None: ...


class BleCentral(Protocol):
    async def ensure_adapter(self) -> None: ...
    async def start_scan(self) -> None: ...
    async def stop_scan(self) -> None: ...
    async def list_peripherals(self) -> List[Advertisement]: ...
    async def connect(self, advertisement: Advertisement) -> BlePeripheral: ...


# ── bleak implementation ───────────────────────────────────────────────────

_STREAM_END = None


class BleakPeripheral:
    """A connected BleakClient plus the queue that backs its notification stream."""

    def __init__(self, advertisement: Advertisement, *, adapter: Optional[str] = None) -> None:
        self._adv = advertisement
        self._notify_q: asyncio.Queue[Optional[bytes]] = asyncio.Queue()
        self._stream_taken = False
        self._subscribed: List[GattCharacteristic] = []

        kwargs: Dict[str, Any] = {"disconnected_callback": self._on_disconnected}
        if adapter:
            kwargs["adapter"] = adapter
        target = advertisement.device if advertisement.device is not None else advertisement.address
        self._client = BleakClient(target, **kwargs)

    @property
    def name(self) -> Optional[str]:
        return self._adv.name

    @property
    def address(self) -> str:
        return self._adv.address

    async def connect(self) -> None:
        await self._client.connect()

    async def discover_services(self) -> List[GattService]:
        # bleak resolves the GATT table as part of connect(); reading it can still
        # fail if the link dropped in between.
        try:
            collection = self._client.services
            services = list(collection)
        except BleakError as exc:
            raise DiscoveryError(f"failed to discover services: {exc}") from exc
        return [
            GattService(
                uuid=str(svc.uuid).lower(),
                characteristics=tuple(
                    GattCharacteristic(
                        uuid=str(ch.uuid).lower(),
                        handle=int(ch.handle),
                        properties=tuple(ch.properties),
                        native=ch,
                    )
                    for ch in svc.characteristics
                ),
            )
            for svc in services
        ]

    async def subscribe(self, characteristic: GattCharacteristic) -> None:
        specifier = characteristic.native if characteristic.native is not None else characteristic.uuid
        try:
            await self._client.start_notify(specifier, self._on_notify)
        except (BleakError, OSError, asyncio.TimeoutError) as exc:
            raise SubscribeError(f"failed to subscribe to notifications: {exc}") from exc
        self._subscribed.append(characteristic)

    async def notifications(self) -> AsyncIterator[bytes]:
        if self._stream_taken:
            raise RuntimeError("notification stream already consumed")
        self._stream_taken = True
        while True:
            item = await self._notify_q.get()
            if item is _STREAM_END:
                return
            yield item

    async def is_connected(self) -> bool:
        return bool(self._client.is_connected)

    async def disconnect(self) -> None:
        if self._client.is_connected:
            for ch in self._subscribed:
                with contextlib.suppress(BleakError, OSError, asyncio.TimeoutError):
                    await self._client.stop_notify(ch.native if ch.native is not None else ch.uuid)
            await self._client.disconnect()
        self._subscribed.clear()
        self._end_stream()

    # ── callbacks (run on the event loop) ──
    def _on_notify(self, _sender: Any, data: bytearray) -> None:
        self._notify_q.put_nowait(bytes(data))

    def _on_disconnected(self, _client: BleakClient) -> None:
        logger.info("[ble] link dropped: %s (%s)", self._adv.name, self._adv.address)
        self._end_stream()

    def _end_stream(self) -> None:
        self._notify_q.put_nowait(_STREAM_END)


class BleakCentral:
    """
    Scanner + connector for the Yolk keyboard.

    start_scan() dwells for ``scan_window_s`` so advertisements accumulate before
    list_peripherals() reads them; BlueZ reports nothing immediately after start.
    """

    def __init__(self, *, adapter: Optional[str] = None, scan_window_s: float = 2.0) -> None:
        self._adapter = adapter
        self._scan_window_s = scan_window_s
        self._scanner: Optional[BleakScanner] = None
        self._scanning = False

    def _make_scanner(self) -> BleakScanner:
        if self._adapter:
            return BleakScanner(adapter=self._adapter)
        return BleakScanner()

    async def ensure_adapter(self) -> None:
        """Probe the adapter once; failure here is fatal for the process."""
        scanner = self._make_scanner()
        try:
            await scanner.start()
        except (BleakError, OSError) as exc:
            raise AdapterUnavailableError(f"no usable Bluetooth adapter ({self._adapter or 'default'}): {exc}") from exc
        with contextlib.suppress(BleakError, OSError):
            await scanner.stop()

    async def start_scan(self) -> None:
        if self._scanner is None:
            self._scanner = self._make_scanner()
        if not self._scanning:
            await self._scanner.start()
            self._scanning = True
        await asyncio.sleep(self._scan_window_s)

    async def stop_scan(self) -> None:
        if self._scanner is not None and self._scanning:
            self._scanning = False
            await self._scanner.stop()

    async def list_peripherals(self) -> List[Advertisement]:
        scanner = self._scanner
        if scanner is None:
            return []
        out: List[Advertisement] = []
        for address, (device, adv) in scanner.discovered_devices_and_advertisement_data.items():
            out.append(
                Advertisement(
                    name=adv.local_name or device.name,
                    address=address,
                    rssi=adv.rssi,
                    device=device,
                )
            )
        return out

    async def connect(self, advertisement: Advertisement) -> BleakPeripheral:
        peripheral = BleakPeripheral(advertisement, adapter=self._adapter)
        await peripheral.connect()
        return peripheral
