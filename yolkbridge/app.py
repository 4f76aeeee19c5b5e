"""Application entry point wiring the BLE central, the relay supervisor and /health."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import sys

try:
    import uvloop as _uvloop  # type: ignore
    _uvloop.install()
except Exception:
    pass

from .bt_le.central import BleakCentral
from .config import Config
from .errors import AdapterUnavailableError
from .health import HealthServer
from .supervisor import Supervisor
from .validation import parse_flag, parse_log_level

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=parse_log_level(os.getenv("LOG_LEVEL"), debug=parse_flag(os.getenv("DEBUG"))),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


async def main() -> None:
    """Run the bridge until interrupted."""
    cfg = Config.load()

    central = BleakCentral(adapter=cfg.ble_adapter, scan_window_s=cfg.scan_window_s)
    try:
        await central.ensure_adapter()
    except AdapterUnavailableError as exc:
        logger.error("[app] Cannot start without a Bluetooth adapter: %s", exc)
        raise SystemExit(1) from exc

    supervisor = Supervisor(central, config=cfg)
    health = HealthServer(host=cfg.health_host, port=cfg.health_port, status=supervisor.status)

    logger.info(
        "[app] device=%s vkbd=%s adapter=%s health=%s",
        cfg.device_name,
        cfg.virtual_keyboard_name,
        cfg.ble_adapter or "default",
        f"{cfg.health_host}:{cfg.health_port}" if cfg.health_enabled else "off",
    )

    stop = asyncio.Event()
    supervisor_died = False

    def _monitor_supervisor(task: asyncio.Task) -> None:
        nonlocal supervisor_died
        if stop.is_set():
            return
        try:
            task.result()
        except asyncio.CancelledError:
            return
        except Exception:
            logger.exception("[app] supervisor crashed")
        else:
            logger.warning("[app] supervisor exited unexpectedly")
        supervisor_died = True
        stop.set()

    # Stop order is the reverse of start order.
    started = []  # list[tuple[str, callable]]
    sup_task = None

    try:
        if cfg.health_enabled:
            await health.start()
            started.append(("health", health.stop))

        sup_task = asyncio.create_task(supervisor.run(), name="supervisor")
        sup_task.add_done_callback(_monitor_supervisor)

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(Exception):
                asyncio.get_running_loop().add_signal_handler(sig, stop.set)

        await stop.wait()
        logger.info("[app] shutting down")

    finally:
        stop.set()

        if sup_task is not None:
            if not sup_task.done():
                sup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await sup_task

        for _name, stopper in reversed(started):
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await stopper()

    if supervisor_died:
        raise SystemExit(1)


def run() -> None:
    configure_logging()
    asyncio.run(main())


if __name__ == "__main__":
    run()
