"""Outer connection lifecycle: virtual keyboard → scan/connect → relay → restart."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from bleak.exc import BleakError

from .bt_le.central import BleCentral, BlePeripheral
from .config import Config
from .errors import BridgeError, ConnectionLevelError
from .relay import RelayOutcome, ReportRelay
from .status import BridgeStatus, ConnectionState
from .virtual_keyboard import UInputKeyboard, VirtualKeyboard

logger = logging.getLogger(__name__)

KeyboardFactory = Callable[[str], VirtualKeyboard]

# Failures a BLE stack is expected to produce; anything else is logged with a traceback.
_EXPECTED = (BridgeError, BleakError, OSError, asyncio.TimeoutError)


class Supervisor:
    """
    Drives the bridge forever:

      1. create the virtual keyboard (retry every ``keyboard_retry_s`` on failure)
      2. scan until a peripheral advertising the target name shows up, connect
      3. relay reports until any relay task ends, then tear down
      4. wait ``relay_restart_s`` and start over

    No error at this layer is fatal. Only cancellation stops run().
    """

    def __init__(
        self,
        central: BleCentral,
        *,
        config: Config,
        keyboard_factory: KeyboardFactory = UInputKeyboard.create,
        status: Optional[BridgeStatus] = None,
    ) -> None:
        self._central = central
        self._config = config
        self._identity = config.identity
        self._keyboard_factory = keyboard_factory
        self._status = status if status is not None else BridgeStatus()
        self._cycles = 0

    @property
    def status(self) -> BridgeStatus:
        return self._status

    @property
    def cycles(self) -> int:
        return self._cycles

    # ── Public API ───────────────────────────────────────────────────────────
    async def run(self) -> None:
        logger.info("[app] starting %s bridge", self._identity.device_name)
        while True:
            await self.run_once()

    async def run_once(self) -> Optional[RelayOutcome]:
        """One full cycle, including its trailing retry delay."""
        self._cycles += 1
        cfg = self._config

        keyboard = self._create_keyboard()
        if keyboard is None:
            await asyncio.sleep(cfg.keyboard_retry_s)
            return None

        peripheral: Optional[BlePeripheral] = None
        try:
            try:
                peripheral = await self.connect_to_device()
            except Exception as exc:
                self._status.last_error = repr(exc)
                self._status.set_state(ConnectionState.DISCONNECTED)
                if isinstance(exc, _EXPECTED):
                    logger.warning("[ble] failed to connect: %r; retrying in %.1fs", exc, cfg.not_found_retry_s)
                else:
                    logger.exception("[ble] unexpected error while connecting; retrying in %.1fs", cfg.not_found_retry_s)
                await self._stop_scan_quietly()
                self._close_keyboard(keyboard)
                keyboard = None
                await asyncio.sleep(cfg.not_found_retry_s)
                return None

            logger.info("[ble] connected to %s (%s)", peripheral.name, peripheral.address)
            outcome = await self._relay(peripheral, keyboard)
        finally:
            if peripheral is not None:
                await self._disconnect(peripheral)
            if keyboard is not None:
                self._close_keyboard(keyboard)

        await asyncio.sleep(cfg.relay_restart_s)
        return outcome

    async def connect_to_device(self) -> BlePeripheral:
        """Scan until the target keyboard is seen, then connect. Never gives up."""
        central = self._central
        identity = self._identity
        st = self._status
        while True:
            st.set_state(ConnectionState.SCANNING)
            logger.info("[ble] scanning for %s", identity.device_name)
            await central.start_scan()

            for adv in await central.list_peripherals():
                if not identity.matches_name(adv.name):
                    continue
                logger.info("[ble] found %s (%s)", adv.name, adv.address)
                await central.stop_scan()

                st.set_state(ConnectionState.CONNECTING)
                st.connection_attempts += 1
                st.device_name = adv.name
                st.device_address = adv.address
                return await central.connect(adv)

            await central.stop_scan()
            logger.info(
                "[ble] %s not found; retrying in %.1fs",
                identity.device_name,
                self._config.not_found_retry_s,
            )
            await asyncio.sleep(self._config.not_found_retry_s)

    # ── Internals ───────────────────────────────────────────────────────────
    def _create_keyboard(self) -> Optional[VirtualKeyboard]:
        name = self._config.virtual_keyboard_name
        try:
            keyboard = self._keyboard_factory(name)
        except Exception as exc:
            self._status.keyboard_created = False
            self._status.last_error = repr(exc)
            logger.error(
                "[kbd] failed to create virtual keyboard: %s; retrying in %.1fs",
                exc,
                self._config.keyboard_retry_s,
                exc_info=not isinstance(exc, _EXPECTED),
            )
            return None
        self._status.keyboard_created = True
        return keyboard

    def _close_keyboard(self, keyboard: VirtualKeyboard) -> None:
        self._status.keyboard_created = False
        try:
            keyboard.close()
        except Exception as exc:
            logger.warning("[kbd] close failed: %r", exc)

    async def _relay(self, peripheral: BlePeripheral, keyboard: VirtualKeyboard) -> Optional[RelayOutcome]:
        relay = ReportRelay(
            peripheral,
            keyboard,
            config=self._config,
            status=self._status,
            identity=self._identity,
        )
        try:
            outcome = await relay.run()
        except ConnectionLevelError as exc:
            self._status.last_error = repr(exc)
            self._status.last_outcome = "connection_error"
            logger.error("[relay] connection error: %s. Restarting...", exc)
            return None
        except _EXPECTED as exc:
            self._status.last_error = repr(exc)
            self._status.last_outcome = "error"
            logger.error("[relay] relay error: %r. Restarting...", exc)
            return None
        except Exception as exc:
            self._status.last_error = repr(exc)
            self._status.last_outcome = "error"
            logger.exception("[relay] unexpected relay error: %r. Restarting...", exc)
            return None

        self._status.last_outcome = outcome.describe()
        if outcome.error is not None:
            self._status.last_error = repr(outcome.error)
            logger.error("[relay] %s. Restarting...", outcome.describe())
        elif relay.disconnected.is_set():
            logger.warning("[relay] %s (device disconnected). Restarting...", outcome.describe())
        else:
            logger.info("[relay] %s. Restarting...", outcome.describe())
        return outcome

    async def _stop_scan_quietly(self) -> None:
        try:
            await self._central.stop_scan()
        except Exception as exc:
            logger.debug("[ble] stop_scan after failure: %r", exc)

    async def _disconnect(self, peripheral: BlePeripheral) -> None:
        self._status.set_state(ConnectionState.DISCONNECTED)
        try:
            await peripheral.disconnect()
        except Exception as exc:
            logger.warning("[ble] error disconnecting: %r", exc)
        else:
            logger.debug("[ble] disconnected from %s", peripheral.address)
