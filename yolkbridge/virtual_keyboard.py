"""Host-side virtual keyboard backed by Linux uinput (python-evdev)."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Mapping, Optional, Protocol

from evdev import UInput, UInputError, ecodes

from .errors import VirtualKeyboardError
from .hid.keys import LogicalKey

logger = logging.getLogger(__name__)


class VirtualKeyboard(Protocol):
    def press(self, key: LogicalKey) -> None: ...
    def release(self, key: LogicalKey) -> None: ...
    def synchronize(self) -> None: ...
    def close(self) -> None: ...


def _evdev_name(key: LogicalKey) -> str:
    name = key.name
    if name.startswith("DIGIT_"):
        return "KEY_" + name[len("DIGIT_"):]
    overrides = {
        "LEFT_CTRL": "KEY_LEFTCTRL",
        "LEFT_SHIFT": "KEY_LEFTSHIFT",
        "LEFT_ALT": "KEY_LEFTALT",
        "LEFT_META": "KEY_LEFTMETA",
        "RIGHT_CTRL": "KEY_RIGHTCTRL",
        "RIGHT_SHIFT": "KEY_RIGHTSHIFT",
        "RIGHT_ALT": "KEY_RIGHTALT",
        "RIGHT_META": "KEY_RIGHTMETA",
        "ESCAPE": "KEY_ESC",
        "LEFT_BRACE": "KEY_LEFTBRACE",
        "RIGHT_BRACE": "KEY_RIGHTBRACE",
        "CAPS_LOCK": "KEY_CAPSLOCK",
        "POUND": "KEY_NUMERIC_POUND",
    }
    return overrides.get(name, "KEY_" + name)


EVDEV_CODES: Mapping[LogicalKey, int] = MappingProxyType(
    {key: ecodes.ecodes[_evdev_name(key)] for key in LogicalKey}
)


class UInputKeyboard:
    """
    One uinput device per connection cycle.

    press()/release() only queue events in the kernel device; nothing becomes
    visible to the host until synchronize() writes SYN_REPORT.
    """

    def __init__(self, ui: UInput, name: str) -> None:
        self._ui: Optional[UInput] = ui
        self._name = name

    @classmethod
    def create(cls, name: str) -> "UInputKeyboard":
        caps = {ecodes.EV_KEY: sorted(set(EVDEV_CODES.values()))}
        try:
            ui = UInput(caps, name=name)
        except (OSError, UInputError) as exc:
            raise VirtualKeyboardError(f"cannot create uinput device {name!r}: {exc}") from exc
        logger.info("[kbd] virtual keyboard created: %s (%s)", name, getattr(ui, "device", None))
        return cls(ui, name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_open(self) -> bool:
        return self._ui is not None

    def press(self, key: LogicalKey) -> None:
        self._write(key, 1)

    def release(self, key: LogicalKey) -> None:
        self._write(key, 0)

    def synchronize(self) -> None:
        self._device().syn()

    def close(self) -> None:
        ui, self._ui = self._ui, None
        if ui is None:
            return
        try:
            ui.close()
        except OSError as exc:
            logger.warning("[kbd] closing %s failed: %r", self._name, exc)
        else:
            logger.info("[kbd] virtual keyboard closed: %s", self._name)

    def _device(self) -> UInput:
        ui = self._ui
        if ui is None:
            raise VirtualKeyboardError(f"virtual keyboard {self._name!r} is closed")
        return ui

    def _write(self, key: LogicalKey, value: int) -> None:
        code = EVDEV_CODES.get(key)
        if code is None:
            raise VirtualKeyboardError(f"no evdev code for {key.name}")
        self._device().write(ecodes.EV_KEY, code, value)
