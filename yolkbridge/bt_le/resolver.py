"""Locate the HID service and its report characteristic on a connected peripheral."""

from __future__ import annotations

import asyncio
import logging
from typing import Tuple

from bleak.exc import BleakError

from ..errors import CharacteristicNotFoundError, DiscoveryError, ServiceNotFoundError
from .central import BlePeripheral, GattCharacteristic, GattService
from .identity import DEFAULT_IDENTITY, TargetIdentity, same_uuid

logger = logging.getLogger(__name__)


async def resolve_report_characteristic(
    peripheral: BlePeripheral,
    identity: TargetIdentity = DEFAULT_IDENTITY,
) -> Tuple[GattService, GattCharacteristic]:
    """Return (hid_service, report_characteristic).

    Not retried here: a peripheral without the service/characteristic is the
    wrong device (or a broken one), so the whole connection is abandoned.
    """
    try:
        services = await peripheral.discover_services()
    except DiscoveryError:
        raise
    except (BleakError, OSError, asyncio.TimeoutError) as exc:
        raise DiscoveryError(f"failed to discover services: {exc}") from exc

    service = next((s for s in services if same_uuid(s.uuid, identity.hid_service_uuid)), None)
    if service is None:
        raise ServiceNotFoundError(
            f"HID service {identity.hid_service_uuid} not found ({len(services)} services discovered)"
        )

    characteristic = next(
        (c for c in service.characteristics if same_uuid(c.uuid, identity.report_uuid)),
        None,
    )
    if characteristic is None:
        raise CharacteristicNotFoundError(
            f"report characteristic {identity.report_uuid} not found in service {service.uuid}"
        )

    logger.info("[ble] resolved report characteristic %s (handle=%d)", characteristic.uuid, characteristic.handle)
    return service, characteristic
