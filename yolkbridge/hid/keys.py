"""Logical keys the relay can press on the host, independent of any OS input API."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Tuple


class LogicalKey(Enum):
    # Definition order is the emission order inside one report batch:
    # modifiers first, then everything else.
    LEFT_CTRL = "left_ctrl"
    LEFT_SHIFT = "left_shift"
    LEFT_ALT = "left_alt"
    LEFT_META = "left_meta"
    RIGHT_CTRL = "right_ctrl"
    RIGHT_SHIFT = "right_shift"
    RIGHT_ALT = "right_alt"
    RIGHT_META = "right_meta"

    A = "a"
    B = "b"
    C = "c"
    D = "d"
    E = "e"
    F = "f"
    G = "g"
    H = "h"
    I = "i"  # noqa: E741
    J = "j"
    K = "k"
    L = "l"
    M = "m"
    N = "n"
    O = "o"  # noqa: E741
    P = "p"
    Q = "q"
    R = "r"
    S = "s"
    T = "t"
    U = "u"
    V = "v"
    W = "w"
    X = "x"
    Y = "y"
    Z = "z"

    DIGIT_1 = "1"
    DIGIT_2 = "2"
    DIGIT_3 = "3"
    DIGIT_4 = "4"
    DIGIT_5 = "5"
    DIGIT_6 = "6"
    DIGIT_7 = "7"
    DIGIT_8 = "8"
    DIGIT_9 = "9"
    DIGIT_0 = "0"

    F1 = "f1"
    F2 = "f2"
    F3 = "f3"
    F4 = "f4"
    F5 = "f5"
    F6 = "f6"
    F7 = "f7"
    F8 = "f8"
    F9 = "f9"
    F10 = "f10"
    F11 = "f11"
    F12 = "f12"

    RIGHT = "right"
    LEFT = "left"
    DOWN = "down"
    UP = "up"

    ENTER = "enter"
    ESCAPE = "escape"
    BACKSPACE = "backspace"
    TAB = "tab"
    SPACE = "space"
    MINUS = "minus"
    EQUAL = "equal"
    LEFT_BRACE = "left_brace"
    RIGHT_BRACE = "right_brace"
    POUND = "pound"
    SEMICOLON = "semicolon"
    APOSTROPHE = "apostrophe"
    GRAVE = "grave"
    COMMA = "comma"
    DOT = "dot"
    SLASH = "slash"
    CAPS_LOCK = "caps_lock"
    DELETE = "delete"
    BACKSLASH = "backslash"


_ORDER = {key: index for index, key in enumerate(LogicalKey)}


def ordered(keys: Iterable[LogicalKey]) -> Tuple[LogicalKey, ...]:
    """Return keys sorted by definition order so emission is deterministic."""
    return tuple(sorted(keys, key=_ORDER.__getitem__))
