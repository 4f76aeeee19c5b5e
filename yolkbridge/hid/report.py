"""Decode 8-byte boot keyboard reports into logical key sets.

Report layout (as sent by the keyboard on the report characteristic):
  byte 0      modifier bitmask (bit0 LCtrl .. bit3 LMeta, bit4 RCtrl .. bit7 RMeta)
  byte 1      reserved, ignored
  bytes 2..7  up to six HID keyboard usages, 0x00 = empty slot

Decoding is total: every byte value either maps to a LogicalKey or is ignored.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import FrozenSet, Mapping, MutableSet, Optional, Tuple

from .keys import LogicalKey

logger = logging.getLogger(__name__)

REPORT_LEN = 8
KEYCODE_SLOTS = slice(2, REPORT_LEN)
EMPTY_SLOT = 0x00

# bit index -> modifier key
MODIFIER_BITS: Tuple[LogicalKey, ...] = (
    LogicalKey.LEFT_CTRL,
    LogicalKey.LEFT_SHIFT,
    LogicalKey.LEFT_ALT,
    LogicalKey.LEFT_META,
    LogicalKey.RIGHT_CTRL,
    LogicalKey.RIGHT_SHIFT,
    LogicalKey.RIGHT_ALT,
    LogicalKey.RIGHT_META,
)


def _build_keycode_table() -> Mapping[int, LogicalKey]:
    table = {}

    # Letters A-Z (0x04-0x1D)
    for offset, letter in enumerate("ABCDEFGHIJKLMNOPQRSTUVWXYZ"):
        table[0x04 + offset] = LogicalKey[letter]

    # Digits 1-9, 0 (0x1E-0x27)
    for offset, digit in enumerate("1234567890"):
        table[0x1E + offset] = LogicalKey[f"DIGIT_{digit}"]

    # F1-F12 (0x3A-0x45)
    for n in range(1, 13):
        table[0x39 + n] = LogicalKey[f"F{n}"]

    table.update(
        {
            0x28: LogicalKey.ENTER,
            0x29: LogicalKey.ESCAPE,
            0x2A: LogicalKey.BACKSPACE,
            0x2B: LogicalKey.TAB,
            0x2C: LogicalKey.SPACE,
            0x2D: LogicalKey.MINUS,
            0x2E: LogicalKey.EQUAL,
            0x2F: LogicalKey.LEFT_BRACE,   # [
            0x30: LogicalKey.RIGHT_BRACE,  # ]
            0x32: LogicalKey.POUND,        # non-US # ~
            0x33: LogicalKey.SEMICOLON,
            0x34: LogicalKey.APOSTROPHE,
            0x35: LogicalKey.GRAVE,        # `
            0x36: LogicalKey.COMMA,
            0x37: LogicalKey.DOT,
            0x38: LogicalKey.SLASH,
            0x39: LogicalKey.CAPS_LOCK,
            0x4C: LogicalKey.DELETE,
            0x4F: LogicalKey.RIGHT,
            0x50: LogicalKey.LEFT,
            0x51: LogicalKey.DOWN,
            0x52: LogicalKey.UP,
            0x64: LogicalKey.BACKSLASH,    # the keyboard sends non-US \ | for backslash
        }
    )
    return MappingProxyType(table)


KEYCODE_TABLE: Mapping[int, LogicalKey] = _build_keycode_table()

# Nothing held. Also the initial "last seen" report, so an idle report on a
# fresh connection produces no output.
IDLE_REPORT = bytes(REPORT_LEN)


def normalize_report(report: bytes) -> bytes:
    """Return exactly REPORT_LEN bytes: extra bytes are dropped, missing ones read as 0."""
    data = bytes(report)
    n = len(data)
    if n == REPORT_LEN:
        return data
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("[hid] unexpected report length %d: %s", n, data.hex())
    if n > REPORT_LEN:
        return data[:REPORT_LEN]
    return data + bytes(REPORT_LEN - n)


def modifier_keys(mask: int) -> FrozenSet[LogicalKey]:
    return frozenset(key for bit, key in enumerate(MODIFIER_BITS) if mask & (1 << bit))


def keycode_to_key(code: int) -> Optional[LogicalKey]:
    """Map a HID keyboard usage to a LogicalKey; None for empty or unmapped usages."""
    if code == EMPTY_SLOT:
        return None
    return KEYCODE_TABLE.get(code)


def decode_into(report: bytes, keys: MutableSet[LogicalKey]) -> MutableSet[LogicalKey]:
    """Clear ``keys`` and fill it with every key held in ``report``."""
    return _decode_normalized(normalize_report(report), keys)


def decode_report(report: bytes) -> FrozenSet[LogicalKey]:
    return frozenset(decode_into(report, set()))


def _decode_normalized(data: bytes, keys: MutableSet[LogicalKey]) -> MutableSet[LogicalKey]:
    # ``data`` is already REPORT_LEN bytes.
    keys.clear()
    keys.update(modifier_keys(data[0]))
    for code in data[KEYCODE_SLOTS]:
        key = keycode_to_key(code)
        if key is not None:
            keys.add(key)
    return keys


class ReportDecoder:
    """Stateful front of the decoder: drops reports identical to the last one seen.

    One instance per connection, so every connection starts from the idle report.
    """

    def __init__(self) -> None:
        self._last_seen: bytes = IDLE_REPORT
        self.duplicates = 0

    @property
    def last_seen(self) -> bytes:
        return self._last_seen

    def feed(self, report: bytes, keys: MutableSet[LogicalKey]) -> bool:
        """Decode ``report`` into ``keys``.

        Returns False (and leaves ``keys`` untouched) when the report repeats the
        previous one; keyboards retransmit unchanged reports and those must not
        produce output.
        """
        data = normalize_report(report)
        if data == self._last_seen:
            self.duplicates += 1
            return False
        self._last_seen = data
        _decode_normalized(data, keys)
        return True
