# input/nav_decoder.py
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from schema.nav_common import (
    EV_ABS,
    EV_KEY,
    AxisEvent,
    ButtonEvent,
    ConnectionMode,
    NavEvent,
    RawFrame,
    now_ms,
)
from input.button_map import AXIS_MAP, HAT_MAP, button_dialect, button_name

logger = logging.getLogger(__name__)

# Stick deadzone: values within [DEADZONE_MIN, DEADZONE_MAX] snap to center.
DEADZONE_MIN = 118
DEADZONE_MAX = 138
DEADZONE_CENTER = 128

AXIS_MIN = 0
AXIS_MAX = 255
WIRELESS_RANGE = 127  # hid-generic sticks report -127..127


def normalize_axis(raw: int, mode: ConnectionMode) -> int:
    """Map a native axis value into 0..255 and apply the center deadzone."""
    if mode is ConnectionMode.WIRELESS:
        v = round(((raw + WIRELESS_RANGE) / (2 * WIRELESS_RANGE)) * AXIS_MAX)
    else:
        v = int(raw)
    v = max(AXIS_MIN, min(AXIS_MAX, v))
    if DEADZONE_MIN <= v <= DEADZONE_MAX:
        return DEADZONE_CENTER
    return v


class HatEdgeTracker:
    """Turns signed hat axis values into directional press/release pairs."""

    def __init__(self):
        self.state: Dict[int, int] = {}

    def update(self, code: int, value: int, now: Optional[int] = None) -> List[ButtonEvent]:
        mapping = HAT_MAP.get(code)
        if mapping is None:
            return []
        neg, pos = mapping
        ts = now_ms() if now is None else now

        prev = self.state.get(code, 0)
        self.state[code] = value

        out: List[ButtonEvent] = []
        # Release first so a direct -1 -> +1 flip never shows both held.
        if prev < 0:
            out.append(ButtonEvent(neg, False, ts))
        elif prev > 0:
            out.append(ButtonEvent(pos, False, ts))
        if value < 0:
            out.append(ButtonEvent(neg, True, ts))
        elif value > 0:
            out.append(ButtonEvent(pos, True, ts))
        return out


class DeviceSession:
    """Per-connection decode state: dialect, hat state and axis cache.

    A new session is created every time the device handle opens, so a
    reconnect re-runs dialect detection from scratch.

    Dialect detection is first-evidence-wins: until a frame proves the
    dialect (a stick value < 0 or > 127, or a button from a driver-specific
    range) the mode stays UNKNOWN. BTN_SOUTH pressed before that point is
    read as the wireless PS button.

    Only the stick/analog axes count as evidence, not every EV_ABS frame:
    hid-sony reports -1 on the hat codes at rest, which would otherwise
    misread a wired controller as wireless. While UNKNOWN, axis values pass
    through unscaled, so a wireless stick still in 0..127 is read under the
    wired (0..255) scale until evidence arrives.
    """

    def __init__(self, device: str = ""):
        self.device = device
        self.mode = ConnectionMode.UNKNOWN
        self.hats = HatEdgeTracker()
        self.axis_cache: Dict[str, int] = {}

    # --- dialect -------------------------------------------------------

    def _set_mode(self, mode: ConnectionMode, frame: RawFrame) -> None:
        self.mode = mode
        logger.info(
            "Detected %s dialect on %s (type=0x%02x code=0x%03x value=%d)",
            mode.value, self.device or "device", frame.type, frame.code, frame.value,
        )

    def observe(self, frame: RawFrame) -> ConnectionMode:
        """Update the dialect from one frame; no-op once the mode is frozen."""
        if self.mode is not ConnectionMode.UNKNOWN:
            return self.mode

        if frame.type == EV_ABS and frame.code in AXIS_MAP[ConnectionMode.UNKNOWN]:
            if frame.value < 0:
                self._set_mode(ConnectionMode.WIRELESS, frame)
            elif frame.value > 127:
                self._set_mode(ConnectionMode.WIRED, frame)
        elif frame.type == EV_KEY:
            evidence = button_dialect(frame.code)
            if evidence is not ConnectionMode.UNKNOWN:
                self._set_mode(evidence, frame)
        return self.mode

    # --- decode --------------------------------------------------------

    def process(self, frame: RawFrame, now: Optional[int] = None) -> List[NavEvent]:
        """Decode one raw frame into zero or more semantic events."""
        self.observe(frame)
        ts = now_ms() if now is None else now

        if frame.type == EV_KEY:
            name = button_name(frame.code, self.mode)
            if name is None:
                return []
            # 1 = pressed, 0 = released, 2 = autorepeat (collapsed into pressed)
            return [ButtonEvent(name, frame.value != 0, ts)]

        if frame.type == EV_ABS:
            if frame.code in HAT_MAP:
                return list(self.hats.update(frame.code, frame.value, ts))
            evt = self._axis(frame, ts)
            return [evt] if evt is not None else []

        # EV_SYN and everything else carries no semantic input.
        return []

    def _axis(self, frame: RawFrame, ts: int) -> Optional[AxisEvent]:
        axis = AXIS_MAP[self.mode].get(frame.code)
        if axis is None:
            return None
        value = normalize_axis(frame.value, self.mode)
        if self.axis_cache.get(axis) == value:
            return None
        self.axis_cache[axis] = value
        return AxisEvent(axis, value, ts)
