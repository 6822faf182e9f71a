# input/mock_source.py
"""Synthetic PS Navigation input for running the hub without a controller.

  - sticks trace a circle (sin/cos) every stick_period_s
  - a random button is pressed and released every button_period_s
  - every cycle_period_s the active service rotates, as if PS were pressed
"""
from __future__ import annotations

import logging
import math
import random
import threading
import time
from typing import Callable, Optional

from schema.nav_common import AxisEvent, ButtonEvent, NavEvent

logger = logging.getLogger(__name__)

MOCK_DEVICE = "mock"

MOCK_BUTTONS = (
    "cross",
    "circle",
    "l1",
    "l2",
    "dpad_up",
    "dpad_down",
    "dpad_left",
    "dpad_right",
)


def stick_position(t_ms: int) -> tuple[int, int]:
    """Point on the mock stick circle at time t_ms (0..255 each axis)."""
    x = round(128 + 127 * math.sin(t_ms / 1000))
    y = round(128 + 127 * math.cos(t_ms / 1000))
    return x, y


class MockNavSource:
    def __init__(
        self,
        on_nav: Callable[[NavEvent], None],
        on_open: Optional[Callable[[str], None]] = None,
        on_cycle: Optional[Callable[[], None]] = None,
        stick_period_s: float = 0.05,
        button_period_s: float = 2.0,
        button_hold_s: float = 0.1,
        cycle_period_s: float = 8.0,
        rng: Optional[random.Random] = None,
    ):
        self.on_nav = on_nav
        self.on_open = on_open
        self.on_cycle = on_cycle
        self.stick_period_s = float(stick_period_s)
        self.button_period_s = float(button_period_s)
        self.button_hold_s = float(button_hold_s)
        self.cycle_period_s = float(cycle_period_s)
        self._rng = rng or random.Random()

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="nav-mock", daemon=True)
        self._thread.start()

    def stop(self, timeout_s: float = 1.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout_s)
            self._thread = None

    def tick(self, now: float, state: dict) -> None:
        """Emit whatever is due at wall time ``now``; ``state`` carries timers."""
        ts = int(now * 1000)

        last_stick = state.get("stick")
        if last_stick is None or now - last_stick >= self.stick_period_s:
            state["stick"] = now
            x, y = stick_position(ts)
            self.on_nav(AxisEvent("stick_x", x, ts))
            self.on_nav(AxisEvent("stick_y", y, ts))

        held = state.get("held")
        if held is not None and now - state.get("pressed_at", 0.0) >= self.button_hold_s:
            self.on_nav(ButtonEvent(held, False, ts))
            state["held"] = None

        if state.get("held") is None and now - state.get("button", now) >= self.button_period_s:
            state["button"] = now
            btn = self._rng.choice(MOCK_BUTTONS)
            state["held"] = btn
            state["pressed_at"] = now
            self.on_nav(ButtonEvent(btn, True, ts))

        if now - state.get("cycle", now) >= self.cycle_period_s:
            state["cycle"] = now
            logger.info("Simulating PS button -> cycling active client")
            if self.on_cycle is not None:
                self.on_cycle()

    def _run(self) -> None:
        logger.info("Starting mock PS Navigation input (no real device)")
        if self.on_open is not None:
            self.on_open(MOCK_DEVICE)

        start = time.time()
        state = {"button": start, "cycle": start}
        while not self._stop.is_set():
            try:
                self.tick(time.time(), state)
            except Exception:
                logger.exception("mock input tick failed")
            self._stop.wait(min(self.stick_period_s, self.button_hold_s) / 2)
