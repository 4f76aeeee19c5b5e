"""Exception hierarchy shared by the BLE relay and the supervisor."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for every error raised by yolkbridge."""


class AdapterUnavailableError(BridgeError):
    """No usable Bluetooth adapter. The only error that ends the process."""


class ConnectionLevelError(BridgeError):
    """Failure on a connected peripheral; aborts the current connection attempt."""


class ResolveError(ConnectionLevelError):
    """HID service or report characteristic could not be resolved."""


class DiscoveryError(ResolveError):
    """GATT service discovery failed at the transport level."""


class ServiceNotFoundError(ResolveError):
    pass


class CharacteristicNotFoundError(ResolveError):
    pass


class SubscribeError(ConnectionLevelError):
    """Enabling notifications on the report characteristic failed."""


class VirtualKeyboardError(BridgeError):
    """The OS virtual keyboard could not be created or rejected a key."""
