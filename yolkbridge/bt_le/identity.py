"""Identity of the Yolk keyboard and its HID GATT endpoint."""

from __future__ import annotations

from dataclasses import dataclass

DEVICE_NAME = "Yolk-Keyboard"

HID_SERVICE_UUID = "000066d3-0000-1000-8000-00805f9b34fb"
REPORT_UUID = "00002a4d-0000-1000-8000-00805f9b34fb"


def same_uuid(a: str, b: str) -> bool:
    return str(a).strip().lower() == str(b).strip().lower()


@dataclass(frozen=True)
class TargetIdentity:
    """Name substring and UUIDs that pick out the keyboard among nearby devices."""
    device_name: str = DEVICE_NAME
    hid_service_uuid: str = HID_SERVICE_UUID
    report_uuid: str = REPORT_UUID

    def matches_name(self, name: str | None) -> bool:
        return bool(name) and self.device_name in name


DEFAULT_IDENTITY = TargetIdentity()
