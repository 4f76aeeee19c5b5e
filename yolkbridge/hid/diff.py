"""Turn successive key sets into ordered release/press edges on the virtual keyboard."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AbstractSet, Iterable, Set, Tuple

from .keys import LogicalKey, ordered

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyDiff:
    released: Tuple[LogicalKey, ...]
    pressed: Tuple[LogicalKey, ...]

    @property
    def empty(self) -> bool:
        return not self.released and not self.pressed


def diff_keys(previous: AbstractSet[LogicalKey], new: AbstractSet[LogicalKey]) -> KeyDiff:
    return KeyDiff(released=ordered(previous - new), pressed=ordered(new - previous))


class KeyStateTracker:
    """
    Owns the host-visible key state for one connection.

    • "previous" is what the host currently sees as held.
    • "new" is scratch space for the next report; the two sets are swapped after
      every batch instead of copied.
    • Press/release failures are per key: logged, never fatal to the batch.

    Callers hold the keyboard lock around apply()/release_all().
    """

    def __init__(self) -> None:
        self._previous: Set[LogicalKey] = set()
        self._new: Set[LogicalKey] = set()
        self.failed_edges = 0

    @property
    def held(self) -> AbstractSet[LogicalKey]:
        return self._previous

    @property
    def scratch(self) -> Set[LogicalKey]:
        """The "new" set; the decoder fills it in place before apply_scratch()."""
        return self._new

    def apply(self, keyboard, keys: Iterable[LogicalKey]) -> KeyDiff:
        """Make the host match ``keys``: releases, then presses, then one synchronize."""
        new = self._new
        if keys is not new:
            new.clear()
            new.update(keys)
        return self.apply_scratch(keyboard)

    def apply_scratch(self, keyboard) -> KeyDiff:
        diff = diff_keys(self._previous, self._new)

        for key in diff.released:
            self._edge(keyboard.release, key, "release")
        for key in diff.pressed:
            self._edge(keyboard.press, key, "press")
        self._sync(keyboard)

        self._previous, self._new = self._new, self._previous
        return diff

    def release_all(self, keyboard) -> KeyDiff:
        """Release every held key (connection teardown)."""
        self._new.clear()
        if not self._previous:
            return KeyDiff(released=(), pressed=())
        return self.apply_scratch(keyboard)

    # ── Internals ───────────────────────────────────────────────────────────
    def _edge(self, op, key: LogicalKey, what: str) -> None:
        try:
            op(key)
        except Exception as exc:
            self.failed_edges += 1
            logger.warning("[kbd] failed to %s %s: %r", what, key.name, exc)
            return
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("[kbd] %s %s", key.name, what)

    @staticmethod
    def _sync(keyboard) -> None:
        try:
            keyboard.synchronize()
        except Exception as exc:
            logger.warning("[kbd] sync failed: %r", exc)
