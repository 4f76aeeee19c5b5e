"""Per-connection report relay: BLE notifications → decoder → diff → virtual keyboard.

One relay instance handles exactly one connection:

  resolve HID service/report characteristic
    → subscribe
    → race three tasks: monitor (liveness poll), ingest (notifications → queue),
      process (queue → decode → diff → keyboard)
    → the first task to finish ends the connection; the other two are cancelled

Backpressure policy: ingestion never blocks. A full queue means the consumer is
stalled and is handled exactly like link loss.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional

from bleak.exc import BleakError

from .bt_le.central import BlePeripheral, GattCharacteristic
from .bt_le.identity import DEFAULT_IDENTITY, TargetIdentity
from .bt_le.resolver import resolve_report_characteristic
from .config import Config
from .errors import ConnectionLevelError, SubscribeError
from .hid.diff import KeyStateTracker
from .hid.report import ReportDecoder
from .status import BridgeStatus, ConnectionState
from .virtual_keyboard import VirtualKeyboard

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelayOutcome:
    """Which task ended the connection, and why."""
    task: str
    reason: str
    error: Optional[BaseException] = None

    def describe(self) -> str:
        if self.error is not None:
            return f"{self.task} {self.reason}: {self.error!r}"
        return f"{self.task} {self.reason}"


class ReportRelay:
    def __init__(
        self,
        peripheral: BlePeripheral,
        keyboard: VirtualKeyboard,
        *,
        config: Config,
        status: Optional[BridgeStatus] = None,
        identity: TargetIdentity = DEFAULT_IDENTITY,
        lock: Optional[asyncio.Lock] = None,
    ) -> None:
        self._peripheral = peripheral
        self._keyboard = keyboard
        self._config = config
        self._status = status if status is not None else BridgeStatus()
        self._identity = identity
        # Only the process task (and teardown) touch the keyboard, always under this lock.
        self._kbd_lock = lock if lock is not None else asyncio.Lock()

        self._decoder = ReportDecoder()
        self._tracker = KeyStateTracker()
        self._queue: Optional[asyncio.Queue[bytes]] = None

        # One-shot: set by the monitor when it sees the link drop.
        self.disconnected = asyncio.Event()

    @property
    def decoder(self) -> ReportDecoder:
        return self._decoder

    # ── Public API ───────────────────────────────────────────────────────────
    async def run(self) -> RelayOutcome:
        """Relay until the connection ends. Raises ConnectionLevelError on setup failures."""
        st = self._status
        try:
            st.set_state(ConnectionState.RESOLVING_SERVICES)
            _service, characteristic = await resolve_report_characteristic(self._peripheral, self._identity)

            st.set_state(ConnectionState.SUBSCRIBING)
            await self._subscribe(characteristic)
            stream = self._peripheral.notifications()

            self._queue = asyncio.Queue(maxsize=self._config.report_queue_size)
            st.set_state(ConnectionState.ACTIVE)
            st.connections += 1
            logger.info(
                "[relay] active: %s (%s)",
                getattr(self._peripheral, "name", None),
                getattr(self._peripheral, "address", None),
            )
            return await self._race(stream)
        finally:
            st.set_state(ConnectionState.DISCONNECTED)
            await self._release_held()

    # ── Internals ───────────────────────────────────────────────────────────
    async def _subscribe(self, characteristic: GattCharacteristic) -> None:
        try:
            await self._peripheral.subscribe(characteristic)
        except ConnectionLevelError:
            raise
        except (BleakError, OSError, asyncio.TimeoutError) as exc:
            raise SubscribeError(f"failed to subscribe to notifications: {exc}") from exc

    async def _race(self, stream: AsyncIterator[bytes]) -> RelayOutcome:
        tasks: Dict[asyncio.Task, str] = {
            asyncio.create_task(self._monitor(), name="relay-monitor"): "monitor",
            asyncio.create_task(self._ingest(stream), name="relay-ingest"): "ingest",
            asyncio.create_task(self._process(), name="relay-process"): "process",
        }
        try:
            done, _pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            results = await asyncio.gather(*tasks, return_exceptions=True)

        first = next(task for task in tasks if task in done)
        for task, result in zip(tasks, results):
            if task is first or task not in done:
                continue
            # finished in the same loop iteration as the winner
            logger.debug("[relay] %s also finished: %r", tasks[task], result)

        name = tasks[first]
        if first.cancelled():
            return RelayOutcome(task=name, reason="cancelled")
        exc = first.exception()
        if exc is not None:
            return RelayOutcome(task=name, reason="error", error=exc)
        return RelayOutcome(task=name, reason=str(first.result()))

    async def _monitor(self) -> str:
        st = self._status
        interval = self._config.liveness_interval_s
        while st.connected:
            await asyncio.sleep(interval)
            try:
                alive = await self._peripheral.is_connected()
            except Exception as exc:
                logger.warning("[relay] liveness poll failed: %r", exc)
                alive = False
            if not alive:
                logger.warning("[relay] device disconnected")
                self.disconnected.set()
                st.connected = False
                return "disconnected"
        return "connection_lost"

    async def _ingest(self, stream: AsyncIterator[bytes]) -> str:
        st = self._status
        queue = self._queue
        assert queue is not None
        async for value in stream:
            st.reports_received += 1
            try:
                queue.put_nowait(value)
            except asyncio.QueueFull:
                logger.warning(
                    "[relay] report queue full (%d); consumer stalled, dropping connection",
                    queue.maxsize,
                )
                st.connected = False
                return "backpressure"
        logger.info("[relay] notification stream ended")
        st.connected = False
        return "stream_ended"

    async def _process(self) -> str:
        st = self._status
        queue = self._queue
        assert queue is not None
        decoder = self._decoder
        tracker = self._tracker
        keyboard = self._keyboard
        _debug = logger.isEnabledFor(logging.DEBUG)
        while True:
            report = await queue.get()
            try:
                if not decoder.feed(report, tracker.scratch):
                    st.reports_duplicate += 1
                    continue
                async with self._kbd_lock:
                    diff = tracker.apply_scratch(keyboard)
                st.reports_processed += 1
                if _debug:
                    logger.debug(
                        "[relay] report %s: -%s +%s",
                        bytes(report).hex(),
                        [k.name for k in diff.released],
                        [k.name for k in diff.pressed],
                    )
            finally:
                queue.task_done()

    async def _release_held(self) -> None:
        if not self._tracker.held:
            return
        async with self._kbd_lock:
            diff = self._tracker.release_all(self._keyboard)
        logger.info("[relay] released %d held key(s) on teardown", len(diff.released))
