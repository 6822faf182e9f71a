# hub/nav_hub.py
from __future__ import annotations

import json
import logging
import queue
import threading
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

import zmq

from network.zmq_hotplug import apply_hotplug_opts
from schema.nav_common import AxisEvent, ButtonEvent, NavEvent, RawFrame
from hub.session_router import Notice, SessionRouter

logger = logging.getLogger(__name__)

# The PS button belongs to the hub: it cycles the active service.
CYCLE_BUTTON = "ps"

_DeviceEvent = Tuple[str, Any]

# Only input traffic may be shed under load; lifecycle and cycle events
# always get through.
_DROPPABLE = ("nav", "raw")


class NavHubService:
    """
    Background ZMQ ROUTER that fans controller events out to consumers.

    Each consumer is one DEALER connection; its routing identity is its
    consumer id. Requests and events are single JSON frames:

        consumer -> hub   {"op": "hello" | "register" | "subscribe_raw" | "ping" | "status" | "bye", ...}
        hub -> consumer   {"event": "nav:button" | "nav:axis" | ..., "data": {...}}

    Device-side producers (the evdev reader, the mock source) may call the
    publish_* / device_* methods from any thread; those only enqueue. The ROUTER
    socket and all router mutations live in the hub thread.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        device: str = "",
        router: Optional[SessionRouter] = None,
        consumer_timeout_s: float | None = None,
        poll_ms: int = 10,
        max_pending: int = 10_000,
    ):
        if endpoint is None:
            from config import HUB_BIND_ENDPOINT
            endpoint = HUB_BIND_ENDPOINT
        if consumer_timeout_s is None:
            from config import CONSUMER_TIMEOUT_S
            consumer_timeout_s = CONSUMER_TIMEOUT_S

        self.endpoint = endpoint
        self.device = device
        self.device_connected = False
        self.router = router if router is not None else SessionRouter()
        self.consumer_timeout_s = float(consumer_timeout_s)
        self.poll_ms = int(poll_ms)
        self.max_pending = int(max_pending)

        self._events: "queue.Queue[_DeviceEvent]" = queue.Queue()
        self._last_seen: Dict[str, float] = {}
        self._started_at = time.time()

        self._stop = threading.Event()
        self._ready = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # Created inside the hub thread
        self._sock: Optional[zmq.Socket] = None

    # --- producer API (any thread) -------------------------------------

    def _enqueue(self, kind: str, payload: Any = None) -> None:
        if kind in _DROPPABLE and self._events.qsize() >= self.max_pending:
            # drop if overwhelmed (keeps the reader real-time)
            logger.debug("Hub queue full, dropped %s", kind)
            return
        self._events.put_nowait((kind, payload))

    def device_opened(self, device: str) -> None:
        self._enqueue("opened", device)

    def device_closed(self, reason: str) -> None:
        self._enqueue("closed", reason)

    def publish_nav(self, event: NavEvent) -> None:
        self._enqueue("nav", event)

    def publish_raw(self, frame: RawFrame) -> None:
        self._enqueue("raw", frame)

    def request_cycle(self) -> None:
        self._enqueue("cycle")

    def attach_reader(self, reader) -> None:
        """Wire a NavReaderService's callbacks into this hub."""
        reader.on_open = self.device_opened
        reader.on_close = self.device_closed
        reader.on_nav = self.publish_nav
        reader.on_frame = self.publish_raw

    def status(self) -> dict:
        return {
            "name": "psnavhub",
            "status": "running",
            "device": self.device,
            "device_connected": self.device_connected,
            "clients": len(self.router.connected_ids()),
            "services": self.router.snapshot(),
            "uptime": time.time() - self._started_at,
        }

    # --- lifecycle -------------------------------------------------------

    def start(self, threaded: bool = True, ready_timeout_s: float = 2.0) -> None:
        if threaded:
            if self._thread and self._thread.is_alive():
                return
            self._stop.clear()
            self._ready.clear()
            self._thread = threading.Thread(target=self._run, name="nav-hub", daemon=True)
            self._thread.start()
            self._ready.wait(timeout=ready_timeout_s)
        else:
            self._stop.clear()
            self._run()

    def stop(self, timeout_s: float = 2.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout_s)
            self._thread = None

    # --- sending ---------------------------------------------------------

    def _send(self, consumer_id: str, event: str, data: Optional[dict] = None) -> None:
        if self._sock is None:
            return
        msg = json.dumps({"event": event, "data": data if data is not None else {}})
        try:
            self._sock.send_multipart(
                [bytes.fromhex(consumer_id), msg.encode("utf-8")], flags=zmq.NOBLOCK
            )
        except zmq.Again:
            # Slow consumer: drop instead of blocking the fan-out.
            logger.debug("Dropped %s for %s (HWM)", event, consumer_id)
        except zmq.ZMQError as e:
            logger.debug("Send %s to %s failed: %s", event, consumer_id, e)

    def _send_many(self, targets: Iterable[str], event: str, data: dict) -> None:
        for cid in targets:
            self._send(cid, event, data)

    def _broadcast(self, event: str, data: dict) -> None:
        self._send_many(self.router.connected_ids(), event, data)

    def _deliver(self, notices: List[Notice]) -> None:
        for n in notices:
            if n.target is None:
                self._broadcast(n.event, n.payload)
            else:
                self._send(n.target, n.event, n.payload)

    # --- device events -------------------------------------------------

    def _handle_device_event(self, kind: str, payload: Any) -> None:
        if kind == "nav":
            self._route_nav(payload)
        elif kind == "raw":
            self._send_many(self.router.raw_targets(), "nav:raw", payload.to_dict())
        elif kind == "opened":
            self.device = payload
            self.device_connected = True
            logger.info("Device connected: %s", payload)
            self._broadcast("nav:connected", {"device": payload})
        elif kind == "closed":
            self.device_connected = False
            logger.info("Device closed: %s", payload)
            self._broadcast("nav:disconnected", {"device": self.device, "reason": payload})
        elif kind == "cycle":
            self._deliver(self.router.cycle_active())

    def _route_nav(self, event: NavEvent) -> None:
        if isinstance(event, ButtonEvent):
            if event.button == CYCLE_BUTTON:
                # Consumed by the hub; neither press nor release is forwarded.
                if event.pressed:
                    self._deliver(self.router.cycle_active())
                return
            self._send_many(self.router.delivery_targets(), "nav:button", event.to_dict())
        elif isinstance(event, AxisEvent):
            self._send_many(self.router.delivery_targets(), "nav:axis", event.to_dict())

    def _drain_events(self) -> None:
        while True:
            try:
                kind, payload = self._events.get_nowait()
            except queue.Empty:
                return
            try:
                self._handle_device_event(kind, payload)
            except Exception:
                logger.exception("Failed to route %s event", kind)

    # --- consumer requests ---------------------------------------------

    def _handle_request(self, consumer_id: str, msg: dict) -> None:
        op = msg.get("op")
        known = self.router.is_connected(consumer_id)
        if known:
            self._last_seen[consumer_id] = time.time()

        if op == "status":
            self._send(consumer_id, "hub:status", self.status())
            return

        if op == "hello":
            self._last_seen[consumer_id] = time.time()
            notices = self.router.connect(consumer_id)
            logger.info("Client connected: %s (%d total)", consumer_id, len(self.router.connected_ids()))
            if self.device_connected:
                self._send(consumer_id, "nav:connected", {"device": self.device})
            self._deliver(notices)
            return

        if not known:
            if op != "bye":
                self._send(consumer_id, "hub:hello-required", {})
            return

        if op == "register":
            name = msg.get("name")
            if not isinstance(name, str) or not name:
                logger.debug("Ignoring register without a name from %s", consumer_id)
                return
            self._deliver(self.router.register(consumer_id, name))
        elif op == "subscribe_raw":
            enabled = bool(msg.get("enabled", False))
            self.router.set_raw(consumer_id, enabled)
            logger.info("%s raw events: %s", consumer_id, enabled)
        elif op == "ping":
            self._send(consumer_id, "hub:pong", {})
        elif op == "bye":
            self._drop_consumer(consumer_id, "bye")
        else:
            logger.debug("Unknown op %r from %s", op, consumer_id)

    def _drop_consumer(self, consumer_id: str, reason: str) -> None:
        self._last_seen.pop(consumer_id, None)
        self._deliver(self.router.disconnect(consumer_id))
        logger.info(
            "Client disconnected: %s (%s), %d remaining",
            consumer_id, reason, len(self.router.connected_ids()),
        )

    def _expire_consumers(self, now: float) -> None:
        if self.consumer_timeout_s <= 0:
            return
        stale = [cid for cid, t in self._last_seen.items() if (now - t) > self.consumer_timeout_s]
        for cid in stale:
            self._drop_consumer(cid, "timeout")

    def _recv_requests(self) -> None:
        assert self._sock is not None
        while True:
            try:
                frames = self._sock.recv_multipart(flags=zmq.NOBLOCK)
            except zmq.Again:
                return
            if len(frames) < 2:
                continue
            consumer_id = frames[0].hex()
            try:
                msg = json.loads(frames[-1].decode("utf-8"))
            except (UnicodeDecodeError, ValueError):
                logger.debug("Bad JSON from %s: %r", consumer_id, frames[-1][:80])
                continue
            if not isinstance(msg, dict):
                continue
            try:
                self._handle_request(consumer_id, msg)
            except Exception:
                logger.exception("Failed to handle %r from %s", msg.get("op"), consumer_id)

    # --- loop ------------------------------------------------------------

    def _run(self) -> None:
        ctx = zmq.Context.instance()
        self._sock = ctx.socket(zmq.ROUTER)
        apply_hotplug_opts(
            self._sock,
            linger_ms=0,
            snd_hwm=256,
            rcv_hwm=256,
            heartbeat_ivl_ms=1000,
            heartbeat_timeout_ms=3000,
            heartbeat_ttl_ms=6000,
            tcp_keepalive=True,
            router_handover=True,
        )
        try:
            self._sock.bind(self.endpoint)
        except zmq.ZMQError:
            logger.exception("Cannot bind hub socket to %s", self.endpoint)
            self._sock.close(0)
            self._sock = None
            self._ready.set()
            return
        logger.info("Hub listening on %s", self.endpoint)
        self._ready.set()

        poller = zmq.Poller()
        poller.register(self._sock, zmq.POLLIN)

        try:
            while not self._stop.is_set():
                try:
                    events = dict(poller.poll(self.poll_ms))
                    if self._sock in events:
                        self._recv_requests()
                    self._drain_events()
                    self._expire_consumers(time.time())
                except zmq.ZMQError as e:
                    logger.warning("Hub loop ZMQError: %s", e)
                    time.sleep(0.05)
        finally:
            sock, self._sock = self._sock, None
            if sock is not None:
                sock.close(0)
