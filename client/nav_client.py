# client/nav_client.py
"""Consumer side of the nav hub.

Usage:

    from client.nav_client import NavClient

    nav = NavClient("tcp://192.168.1.50:3050", name="lights")
    nav.on("button", lambda evt: print(evt.button, evt.pressed))
    nav.on("axis", lambda evt: print(evt.axis, evt.value))
    nav.connect()

Leave ``name`` unset to run as an always-on observer that receives every
event regardless of which service is active.
"""
from __future__ import annotations

import json
import logging
import queue
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

import zmq

from network.zmq_hotplug import apply_hotplug_opts
from schema.nav_common import AXIS_IDS, BUTTON_IDS, RawFrame, nav_event_from_dict

logger = logging.getLogger(__name__)

EVENT_NAMES = (
    "button",
    "axis",
    "raw",
    "connected",
    "disconnected",
    "activated",
    "deactivated",
    "client_list",
    "status",
    "open",
    "close",
)

_HUB_EVENTS = {
    "nav:connected": "connected",
    "nav:disconnected": "disconnected",
    "client:activated": "activated",
    "client:deactivated": "deactivated",
    "client:list": "client_list",
    "hub:status": "status",
}


class NavClient:
    """Background DEALER that turns hub messages into callbacks.

    Hotplug goals:
      - the consumer can start before the hub (no blocking / no crash)
      - if the hub restarts, re-announce (hello / register / raw opt-in)
      - if the hub goes silent, recreate the socket

    Note: ZMQ sockets are *thread-affine*. The socket is created, used and
    closed in the background thread; register()/subscribe_raw() only queue
    requests for it.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        name: Optional[str] = None,
        raw: bool = False,
        reconnect: bool = True,
        *,
        ping_s: float | None = None,
        stale_reconnect_s: float = 3.0,
        poll_ms: int = 50,
    ):
        if endpoint is None:
            from config import HUB_CONNECT_ENDPOINT
            endpoint = HUB_CONNECT_ENDPOINT
        if ping_s is None:
            from config import CLIENT_PING_S
            ping_s = CLIENT_PING_S

        self.endpoint = endpoint
        self.name = name
        self.raw = bool(raw)
        self.reconnect = bool(reconnect)
        self.ping_s = float(ping_s)
        # Silence shorter than a few ping periods is normal.
        self.stale_reconnect_s = max(float(stale_reconnect_s), 3 * self.ping_s)
        self.poll_ms = int(poll_ms)

        # Kept across socket re-creations so the hub (ROUTER_HANDOVER) sees
        # one consumer, not a new one per reconnect.
        self.identity = uuid.uuid4().bytes

        self._callbacks: Dict[str, List[Callable]] = {e: [] for e in EVENT_NAMES}

        # Snapshot of latest state
        self.buttons: Dict[str, bool] = {b: False for b in BUTTON_IDS}
        self.axes: Dict[str, int] = {"stick_x": 128, "stick_y": 128, "l2_analog": 0}
        self.active = False
        self.client_list: Optional[dict] = None
        self.device_connected = False

        self._outbox: "queue.Queue[dict]" = queue.Queue()
        self._connected = False
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # Created inside the client thread
        self._sock: Optional[zmq.Socket] = None

    # --- subscription ----------------------------------------------------

    def on(self, event: str, callback: Callable) -> "NavClient":
        if event not in self._callbacks:
            raise ValueError(f"Unknown event {event!r} (expected one of {', '.join(EVENT_NAMES)})")
        self._callbacks[event].append(callback)
        return self

    def off(self, event: str, callback: Callable) -> "NavClient":
        try:
            self._callbacks[event].remove(callback)
        except (KeyError, ValueError):
            pass
        return self

    def on_button(self, button: str, callback: Callable[[bool], None]) -> "NavClient":
        """Subscribe to a single button; callback gets ``pressed``."""
        if button not in BUTTON_IDS:
            raise ValueError(f"Unknown button {button!r}")
        return self.on("button", lambda evt: callback(evt.pressed) if evt.button == button else None)

    def on_axis(self, axis: str, callback: Callable[[int], None]) -> "NavClient":
        """Subscribe to a single axis; callback gets the 0..255 value."""
        if axis not in AXIS_IDS:
            raise ValueError(f"Unknown axis {axis!r}")
        return self.on("axis", lambda evt: callback(evt.value) if evt.axis == axis else None)

    # --- lifecycle -------------------------------------------------------

    def connect(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="nav-client", daemon=True)
        self._thread.start()

    def disconnect(self, timeout_s: float = 1.0) -> None:
        if self._thread and self._thread.is_alive():
            self._outbox.put({"op": "bye"})
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout_s)
            self._thread = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    def register(self, name: str) -> None:
        self.name = name
        self._outbox.put({"op": "register", "name": name})

    def subscribe_raw(self, enabled: bool = True) -> None:
        self.raw = bool(enabled)
        self._outbox.put({"op": "subscribe_raw", "enabled": self.raw})

    def request_status(self) -> None:
        self._outbox.put({"op": "status"})

    # --- internals -------------------------------------------------------

    def _fire(self, event: str, *args: Any) -> None:
        for cb in list(self._callbacks.get(event, ())):
            try:
                cb(*args)
            except Exception:
                # Never crash the client thread due to user callbacks
                logger.exception("nav client %s callback failed", event)

    def _make_sock(self) -> zmq.Socket:
        ctx = zmq.Context.instance()
        sock = ctx.socket(zmq.DEALER)
        sock.setsockopt(zmq.IDENTITY, self.identity)
        apply_hotplug_opts(
            sock,
            linger_ms=0,
            snd_hwm=64,
            rcv_hwm=1000,
            reconnect_ivl_ms=250,
            reconnect_ivl_max_ms=2000,
            heartbeat_ivl_ms=1000,
            heartbeat_timeout_ms=3000,
            heartbeat_ttl_ms=6000,
            tcp_keepalive=True,
        )
        sock.connect(self.endpoint)
        return sock

    def _close_sock(self, linger_ms: int = 0) -> None:
        s = self._sock
        self._sock = None
        if s is not None:
            try:
                s.close(linger_ms)
            except zmq.ZMQError:
                pass

    def _send(self, msg: dict) -> None:
        if self._sock is None:
            return
        try:
            self._sock.send_string(json.dumps(msg), flags=zmq.NOBLOCK)
        except zmq.Again:
            logger.debug("nav client dropped %s (hub unreachable)", msg.get("op"))

    def _greet(self) -> None:
        self._send({"op": "hello"})
        if self.name:
            self._send({"op": "register", "name": self.name})
        if self.raw:
            self._send({"op": "subscribe_raw", "enabled": True})

    def _set_connected(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        if not connected:
            self.active = False
        self._fire("open" if connected else "close")

    def _handle(self, msg: dict) -> None:
        event = msg.get("event")
        data = msg.get("data") or {}

        if event in ("nav:button", "nav:axis"):
            evt = nav_event_from_dict(data)
            if evt.kind == "button":
                self.buttons[evt.button] = evt.pressed
            else:
                self.axes[evt.axis] = evt.value
            self._fire(evt.kind, evt)
        elif event == "nav:raw":
            self._fire("raw", RawFrame.from_dict(data))
        elif event == "hub:hello-required":
            # The hub restarted or timed us out; announce again.
            self._greet()
        elif event == "hub:pong":
            pass
        elif event in _HUB_EVENTS:
            if event == "nav:connected":
                self.device_connected = True
            elif event == "nav:disconnected":
                self.device_connected = False
            elif event == "client:activated":
                self.active = True
            elif event == "client:deactivated":
                self.active = False
            elif event == "client:list":
                self.client_list = data
            self._fire(_HUB_EVENTS[event], data)
        else:
            logger.debug("nav client ignoring %r", event)

    def _drain_outbox(self) -> None:
        while True:
            try:
                msg = self._outbox.get_nowait()
            except queue.Empty:
                return
            self._send(msg)

    def _run(self) -> None:
        self._sock = self._make_sock()
        poller = zmq.Poller()
        poller.register(self._sock, zmq.POLLIN)
        self._greet()

        last_rx = time.time()
        last_ping = 0.0

        while not self._stop.is_set():
            try:
                self._drain_outbox()

                now = time.time()
                if (now - last_ping) >= self.ping_s:
                    self._send({"op": "ping"})
                    last_ping = now

                events = dict(poller.poll(self.poll_ms))
                if self._sock not in events:
                    if self.reconnect and (time.time() - last_rx) > self.stale_reconnect_s:
                        logger.info("nav hub silent for %.1fs, reconnecting to %s", self.stale_reconnect_s, self.endpoint)
                        self._set_connected(False)
                        old = self._sock
                        self._close_sock()
                        poller.unregister(old)
                        self._sock = self._make_sock()
                        poller.register(self._sock, zmq.POLLIN)
                        self._greet()
                        last_rx = time.time()
                    continue

                while True:
                    try:
                        raw = self._sock.recv_string(flags=zmq.NOBLOCK)
                    except zmq.Again:
                        break
                    try:
                        msg = json.loads(raw)
                    except ValueError:
                        logger.debug("nav client bad json: %r", raw[:80])
                        continue
                    last_rx = time.time()
                    self._set_connected(True)
                    if not isinstance(msg, dict):
                        continue
                    try:
                        self._handle(msg)
                    except (KeyError, ValueError, TypeError) as e:
                        logger.debug("nav client bad %r message: %s", msg.get("event"), e)

            except zmq.ZMQError as e:
                logger.warning("nav client loop ZMQError: %s", e)
                time.sleep(0.05)

        # Say goodbye so the hub frees our slot immediately.
        self._drain_outbox()
        self._set_connected(False)
        self._close_sock(linger_ms=200)
