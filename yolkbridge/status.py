"""Connection state shared between the supervisor, the relay tasks and /health."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ConnectionState(Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    RESOLVING_SERVICES = "resolving_services"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    DISCONNECTED = "disconnected"


@dataclass
class BridgeStatus:
    """Minimal status surface for diagnostics.

    Each field is written only by the task that observes the triggering event.
    """
    state: ConnectionState = ConnectionState.IDLE
    connected: bool = False
    device_name: Optional[str] = None
    device_address: Optional[str] = None
    keyboard_created: bool = False

    connection_attempts: int = 0
    connections: int = 0
    reports_received: int = 0
    reports_processed: int = 0
    reports_duplicate: int = 0

    last_outcome: Optional[str] = None
    last_error: Optional[str] = None

    def set_state(self, state: ConnectionState) -> None:
        self.state = state
        if state is ConnectionState.ACTIVE:
            self.connected = True
        elif state in (ConnectionState.DISCONNECTED, ConnectionState.SCANNING, ConnectionState.IDLE):
            self.connected = False

