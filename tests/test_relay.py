import asyncio
import unittest
from unittest.mock import Mock

from bleak.exc import BleakError

from yolkbridge.errors import (
    CharacteristicNotFoundError,
    ServiceNotFoundError,
    SubscribeError,
)
from yolkbridge.hid.keys import LogicalKey
from yolkbridge.relay import ReportRelay
from yolkbridge.status import BridgeStatus, ConnectionState

from ble_fakes import FakePeripheral, RecordingKeyboard, fast_config, hid_services, report, wait_until

K = LogicalKey


class TestReportRelay(unittest.IsolatedAsyncioTestCase):
    async def _start(self, peripheral, keyboard=None, **cfg):
        # Keep the liveness poll out of the way unless a test is about it.
        cfg.setdefault("liveness_interval_s", 30.0)
        self.status = BridgeStatus()
        self.keyboard = keyboard or RecordingKeyboard()
        self.relay = ReportRelay(peripheral, self.keyboard, config=fast_config(**cfg), status=self.status)
        self.task = asyncio.create_task(self.relay.run())
        return self.task

    async def test_shift_a_is_pressed_then_released_on_teardown(self) -> None:
        per = FakePeripheral(reports=[bytes([0x02, 0, 0x04, 0, 0, 0, 0, 0])])
        task = await self._start(per)
        await wait_until(lambda: self.status.reports_processed == 1)

        self.assertEqual(self.status.state, ConnectionState.ACTIVE)
        self.assertTrue(self.status.connected)
        self.assertEqual(
            self.keyboard.calls,
            [("press", K.LEFT_SHIFT), ("press", K.A), ("sync",)],
        )

        per.drop()
        outcome = await task

        self.assertEqual(outcome.reason, "stream_ended")
        self.assertEqual(outcome.task, "ingest")
        self.assertEqual(self.status.state, ConnectionState.DISCONNECTED)
        self.assertFalse(self.status.connected)
        # teardown releases what the host still sees as held
        self.assertEqual(
            self.keyboard.calls[3:],
            [("release", K.LEFT_SHIFT), ("release", K.A), ("sync",)],
        )

    async def test_key_up_report_releases(self) -> None:
        per = FakePeripheral(reports=[report(0, 0x04), report(0)])
        await self._start(per)
        await wait_until(lambda: self.status.reports_processed == 2)
        self.assertEqual(
            self.keyboard.calls,
            [("press", K.A), ("sync",), ("release", K.A), ("sync",)],
        )
        per.drop()
        await self.task
        self.assertEqual(len(self.keyboard.calls), 4)

    async def test_identical_consecutive_reports_emit_once(self) -> None:
        per = FakePeripheral(reports=[report(0, 0x04), report(0, 0x04)])
        await self._start(per)
        await wait_until(lambda: self.status.reports_duplicate == 1)

        self.assertEqual(self.keyboard.calls, [("press", K.A), ("sync",)])
        self.assertEqual(self.status.reports_received, 2)
        self.assertEqual(self.status.reports_processed, 1)
        per.drop()
        await self.task

    async def test_reports_processed_in_arrival_order(self) -> None:
        per = FakePeripheral(reports=[report(0, 0x04), report(0, 0x04, 0x05), report(0, 0x05), report(0)])
        await self._start(per)
        await wait_until(lambda: self.status.reports_processed == 4)
        self.assertEqual(
            self.keyboard.calls,
            [
                ("press", K.A), ("sync",),
                ("press", K.B), ("sync",),
                ("release", K.A), ("sync",),
                ("release", K.B), ("sync",),
            ],
        )
        per.drop()
        await self.task

    async def test_full_queue_drops_the_connection(self) -> None:
        per = FakePeripheral(reports=[report(0, 0x04), report(0, 0x05), report(0, 0x06)])
        outcome = await (await self._start(per, report_queue_size=1))

        self.assertEqual(outcome.task, "ingest")
        self.assertEqual(outcome.reason, "backpressure")
        self.assertFalse(self.status.connected)
        self.assertEqual(self.status.state, ConnectionState.DISCONNECTED)

    async def test_monitor_detects_link_loss(self) -> None:
        per = FakePeripheral(reports=[report(0, 0x04)])
        task = await self._start(per, liveness_interval_s=0.01)
        await wait_until(lambda: self.status.reports_processed == 1)

        per.connected = False  # stream stays open; only the poll notices
        outcome = await asyncio.wait_for(task, timeout=2.0)

        self.assertEqual(outcome.task, "monitor")
        self.assertEqual(outcome.reason, "disconnected")
        self.assertTrue(self.relay.disconnected.is_set())
        self.assertEqual(self.keyboard.ops("release"), [K.A])

    async def test_liveness_poll_error_counts_as_disconnect(self) -> None:
        per = FakePeripheral()

        async def _boom() -> bool:
            raise BleakError("org.bluez.Error.NotConnected")

        per.is_connected = _boom  # type: ignore[method-assign]
        outcome = await asyncio.wait_for(await self._start(per, liveness_interval_s=0.01), timeout=2.0)
        self.assertEqual((outcome.task, outcome.reason), ("monitor", "disconnected"))

    async def test_processing_error_ends_connection(self) -> None:
        per = FakePeripheral(reports=[report(0, 0x04)])
        task = await self._start(per)
        self.relay.decoder.feed = Mock(side_effect=RuntimeError("corrupt state"))  # type: ignore[method-assign]

        outcome = await asyncio.wait_for(task, timeout=2.0)

        self.assertEqual((outcome.task, outcome.reason), ("process", "error"))
        self.assertIsInstance(outcome.error, RuntimeError)
        self.assertIn("corrupt state", outcome.describe())

    async def test_no_task_left_running(self) -> None:
        per = FakePeripheral(reports=[report(0, 0x04)])
        task = await self._start(per)
        await wait_until(lambda: self.status.reports_processed == 1)
        per.drop()
        await task
        names = {t.get_name() for t in asyncio.all_tasks()}
        self.assertFalse({"relay-monitor", "relay-ingest", "relay-process"} & names)

    async def test_cancelling_the_relay_cancels_its_tasks(self) -> None:
        per = FakePeripheral(reports=[report(0, 0x04)])
        task = await self._start(per)
        await wait_until(lambda: self.status.reports_processed == 1)

        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        names = {t.get_name() for t in asyncio.all_tasks()}
        self.assertFalse({"relay-monitor", "relay-ingest", "relay-process"} & names)
        self.assertEqual(self.keyboard.ops("release"), [K.A])
        self.assertEqual(self.status.state, ConnectionState.DISCONNECTED)

    async def test_subscribes_to_report_characteristic(self) -> None:
        per = FakePeripheral()
        await self._start(per)
        await wait_until(lambda: self.status.state is ConnectionState.ACTIVE)
        self.assertEqual([c.handle for c in per.subscribed], [0x1b])
        per.drop()
        await self.task


class TestReportRelaySetupErrors(unittest.IsolatedAsyncioTestCase):
    async def _run(self, per):
        status = BridgeStatus()
        keyboard = RecordingKeyboard()
        relay = ReportRelay(per, keyboard, config=fast_config(), status=status)
        try:
            await relay.run()
        finally:
            self.assertEqual(status.state, ConnectionState.DISCONNECTED)
            self.assertEqual(keyboard.calls, [])

    async def test_missing_service(self) -> None:
        with self.assertRaises(ServiceNotFoundError):
            await self._run(FakePeripheral(services=[]))

    async def test_missing_characteristic(self) -> None:
        services = hid_services(report_uuid="00002a4e-0000-1000-8000-00805f9b34fb")
        with self.assertRaises(CharacteristicNotFoundError):
            await self._run(FakePeripheral(services=services))

    async def test_subscribe_transport_error(self) -> None:
        per = FakePeripheral(subscribe_error=BleakError("Notify acquired"))
        with self.assertRaises(SubscribeError):
            await self._run(per)

    async def test_subscribe_error_passthrough(self) -> None:
        per = FakePeripheral(subscribe_error=SubscribeError("boom"))
        with self.assertRaisesRegex(SubscribeError, "boom"):
            await self._run(per)


if __name__ == "__main__":
    unittest.main()
