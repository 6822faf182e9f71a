# nav_common.py
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Union
import time

# Linux evdev event types
EV_SYN = 0x00
EV_KEY = 0x01
EV_ABS = 0x03

BUTTON_IDS = (
    "cross",
    "circle",
    "l1",
    "l2",
    "l3",
    "dpad_up",
    "dpad_down",
    "dpad_left",
    "dpad_right",
    "ps",
)

AXIS_IDS = ("stick_x", "stick_y", "l2_analog")


def now_ms() -> int:
    return int(time.time() * 1000)


class ConnectionMode(Enum):
    UNKNOWN = "unknown"
    WIRED = "wired"        # USB / hid-sony
    WIRELESS = "wireless"  # Bluetooth / hid-generic


@dataclass(frozen=True)
class RawFrame:
    time_sec: int
    time_usec: int
    type: int
    code: int
    value: int

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "RawFrame":
        return cls(
            time_sec=int(d.get("time_sec", 0)),
            time_usec=int(d.get("time_usec", 0)),
            type=int(d["type"]),
            code=int(d["code"]),
            value=int(d["value"]),
        )


@dataclass
class ButtonEvent:
    button: str
    pressed: bool
    timestamp: int = field(default_factory=now_ms)

    kind = "button"

    def to_dict(self) -> dict:
        return {
            "kind": "button",
            "button": self.button,
            "pressed": bool(self.pressed),
            "timestamp": self.timestamp,
        }


@dataclass
class AxisEvent:
    axis: str
    value: int
    timestamp: int = field(default_factory=now_ms)

    kind = "axis"

    def to_dict(self) -> dict:
        return {
            "kind": "axis",
            "axis": self.axis,
            "value": int(self.value),
            "timestamp": self.timestamp,
        }


NavEvent = Union[ButtonEvent, AxisEvent]


def nav_event_from_dict(d: dict) -> NavEvent:
    kind = d.get("kind")
    if kind == "button":
        return ButtonEvent(
            button=d["button"],
            pressed=bool(d["pressed"]),
            timestamp=int(d.get("timestamp", now_ms())),
        )
    if kind == "axis":
        return AxisEvent(
            axis=d["axis"],
            value=int(d["value"]),
            timestamp=int(d.get("timestamp", now_ms())),
        )
    raise ValueError(f"Unknown nav event kind: {kind!r}")
