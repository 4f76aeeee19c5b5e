"""Lightweight HTTP health/status endpoint for external monitoring."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from aiohttp import web

from .status import BridgeStatus, ConnectionState

logger = logging.getLogger(__name__)


class HealthServer:
    """Expose a simple JSON health snapshot of the bridge for probes."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        status: BridgeStatus,
    ) -> None:
        self._host = host
        self._port = port
        self._status = status

        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    def make_app(self) -> web.Application:
        app = web.Application()
        app.add_routes([web.get("/health", self._handle_health)])
        return app

    async def start(self) -> None:
        if self._runner is not None:
            return

        self._runner = web.AppRunner(self.make_app(), access_log=None)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        logger.info("[health] listening on http://%s:%d/health", self._host, self._port)

    async def stop(self) -> None:
        runner, self._runner = self._runner, None
        self._site = None
        if runner is None:
            return
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await runner.cleanup()

    async def _handle_health(self, _: web.Request) -> web.Response:
        snapshot = self.snapshot()
        status = 200 if snapshot["status"] == "ok" else 503
        return web.json_response(snapshot, status=status)

    def snapshot(self) -> dict:
        st = self._status

        ble_state = {
            "state": st.state.value,
            "connected": bool(st.connected),
            "device_name": st.device_name,
            "device_address": st.device_address,
            "connection_attempts": st.connection_attempts,
            "connections": st.connections,
        }
        keyboard_state = {"created": bool(st.keyboard_created)}
        relay_state = {
            "reports_received": st.reports_received,
            "reports_processed": st.reports_processed,
            "reports_duplicate": st.reports_duplicate,
            "last_outcome": st.last_outcome,
            "last_error": st.last_error,
        }

        degraded_reasons = []

        if not (st.connected and st.state is ConnectionState.ACTIVE):
            degraded_reasons.append("ble.not_connected")
        if not st.keyboard_created:
            degraded_reasons.append("keyboard.not_created")

        return {
            "status": "ok" if not degraded_reasons else "degraded",
            "degraded_reasons": degraded_reasons,
            "ble": ble_state,
            "keyboard": keyboard_state,
            "relay": relay_state,
        }
