"""Configuration helpers for environment-driven settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from .bt_le.identity import DEVICE_NAME, TargetIdentity
from .validation import parse_port, parse_seconds


@dataclass(frozen=True)
class Config:
    # Target keyboard / host device
    device_name: str = DEVICE_NAME
    virtual_keyboard_name: str = DEVICE_NAME

    # BLE central
    ble_adapter: Optional[str] = None
    scan_window_s: float = 2.0

    # Health endpoint (port 0 disables it)
    health_host: str = "127.0.0.1"
    health_port: int = 9124

    # Fixed retry cadence; constant intervals, no backoff.
    keyboard_retry_s: float = 5.0
    not_found_retry_s: float = 5.0
    relay_restart_s: float = 2.0
    liveness_interval_s: float = 1.0
    report_queue_size: int = 128

    @property
    def identity(self) -> TargetIdentity:
        return TargetIdentity(device_name=self.device_name)

    @property
    def health_enabled(self) -> bool:
        return self.health_port > 0

    @staticmethod
    def load() -> "Config":
        """Build a Config from environment."""
        device_name = (os.getenv("YOLK_DEVICE_NAME") or "").strip() or DEVICE_NAME
        vkbd_name   = (os.getenv("YOLK_VKBD_NAME") or "").strip() or DEVICE_NAME

        ble_adapter   = (os.getenv("BLE_ADAPTER") or "").strip() or None
        scan_window_s = parse_seconds(
            os.getenv("BLE_SCAN_WINDOW_S"), default=2.0, min=0.0, max=30.0, context="BLE_SCAN_WINDOW_S"
        )

        health_host = os.getenv("HEALTH_HOST", "127.0.0.1")
        health_port = parse_port(os.getenv("HEALTH_PORT"), default=9124, context="HEALTH_PORT")

        return Config(
            device_name=device_name,
            virtual_keyboard_name=vkbd_name,
            ble_adapter=ble_adapter,
            scan_window_s=scan_window_s,
            health_host=health_host,
            health_port=health_port,
        )
