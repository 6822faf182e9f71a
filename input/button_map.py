# input/button_map.py
"""PS Navigation controller evdev code tables.

The controller reports different codes depending on the kernel driver:

  - WIRED (USB, hid-sony): gamepad block BTN_SOUTH.. plus BTN_DPAD_* and the
    ABS_HAT0X/ABS_HAT0Y hat axes. Sticks report 0..255.
  - WIRELESS (Bluetooth, hid-generic joystick): PS3 HID report buttons mapped
    sequentially from BTN_TRIGGER (0x120): Select, L3, R3, Start, Up, Right,
    Down, Left, L2, R2, L1, R1, Triangle, Circle, Cross, Square, PS.
    Sticks report -127..127.

BTN_SOUTH (0x130) is the one overlapping code: Cross when wired, PS when
wireless. It is resolved by the decoder once the dialect is known.

Discover codes with:
    sudo evtest /dev/input/eventX
"""
from __future__ import annotations

from typing import Dict, Tuple

from schema.nav_common import ConnectionMode

WIRELESS_BUTTONS: Dict[int, str] = {
    0x121: "l3",          # BTN_THUMB
    0x124: "dpad_up",     # BTN_TOP2
    0x125: "dpad_right",  # BTN_PINKIE
    0x126: "dpad_down",   # BTN_BASE
    0x127: "dpad_left",   # BTN_BASE2
    0x128: "l2",          # BTN_BASE3 (digital)
    0x12A: "l1",          # BTN_BASE5
    0x12D: "circle",
    0x12E: "cross",
}

WIRED_BUTTONS: Dict[int, str] = {
    0x131: "circle",      # BTN_EAST
    0x136: "l1",          # BTN_TL
    0x138: "l2",          # BTN_TL2 (digital)
    0x13C: "ps",          # BTN_MODE
    0x13D: "l3",          # BTN_THUMBL
    # D-pad as buttons
    0x220: "dpad_up",     # BTN_DPAD_UP
    0x221: "dpad_down",   # BTN_DPAD_DOWN
    0x222: "dpad_left",   # BTN_DPAD_LEFT
    0x223: "dpad_right",  # BTN_DPAD_RIGHT
}

AMBIGUOUS_CODE = 0x130  # BTN_SOUTH
AMBIGUOUS_BUTTON: Dict[ConnectionMode, str] = {
    ConnectionMode.WIRED: "cross",
    ConnectionMode.WIRELESS: "ps",
}
# Tie-break while the dialect is still unknown.
AMBIGUOUS_DEFAULT_MODE = ConnectionMode.WIRELESS

# Reserved ranges that only one driver ever produces (inclusive).
WIRELESS_ONLY_RANGES: Tuple[Tuple[int, int], ...] = ((0x120, 0x12F),)
WIRED_ONLY_RANGES: Tuple[Tuple[int, int], ...] = ((0x131, 0x13F), (0x220, 0x223))

_STICK_AXES: Dict[int, str] = {
    0x00: "stick_x",    # ABS_X
    0x01: "stick_y",    # ABS_Y
    0x02: "l2_analog",  # ABS_Z
}

AXIS_MAP: Dict[ConnectionMode, Dict[int, str]] = {
    ConnectionMode.WIRED: dict(_STICK_AXES),
    ConnectionMode.WIRELESS: dict(_STICK_AXES),
    ConnectionMode.UNKNOWN: dict(_STICK_AXES),
}

# code -> (negative button, positive button)
HAT_MAP: Dict[int, Tuple[str, str]] = {
    0x10: ("dpad_left", "dpad_right"),  # ABS_HAT0X
    0x11: ("dpad_up", "dpad_down"),     # ABS_HAT0Y
}

_BUTTONS_BY_MODE: Dict[ConnectionMode, Dict[int, str]] = {
    ConnectionMode.WIRED: WIRED_BUTTONS,
    ConnectionMode.WIRELESS: WIRELESS_BUTTONS,
    # The two non-ambiguous tables never overlap.
    ConnectionMode.UNKNOWN: {**WIRELESS_BUTTONS, **WIRED_BUTTONS},
}


def _in_ranges(code: int, ranges: Tuple[Tuple[int, int], ...]) -> bool:
    return any(lo <= code <= hi for lo, hi in ranges)


def button_dialect(code: int) -> ConnectionMode:
    """Which dialect a button code proves, or UNKNOWN if it proves nothing."""
    if _in_ranges(code, WIRELESS_ONLY_RANGES):
        return ConnectionMode.WIRELESS
    if _in_ranges(code, WIRED_ONLY_RANGES):
        return ConnectionMode.WIRED
    return ConnectionMode.UNKNOWN


def button_name(code: int, mode: ConnectionMode) -> str | None:
    if code == AMBIGUOUS_CODE:
        if mode is ConnectionMode.UNKNOWN:
            mode = AMBIGUOUS_DEFAULT_MODE
        return AMBIGUOUS_BUTTON[mode]
    return _BUTTONS_BY_MODE[mode].get(code)
