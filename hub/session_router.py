# hub/session_router.py
"""Active-consumer rotation for the nav hub.

Consumers come in two flavours:

  - registered services: join an ordered rotation by name; only the *active*
    one receives gameplay events. The PS button cycles through them.
  - always-on observers: connected consumers that never registered. They get
    every event regardless of rotation.

The router does no I/O. Every mutating call returns the notices the transport
should deliver, so it can be driven and tested without sockets.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

EVT_ACTIVATED = "client:activated"
EVT_DEACTIVATED = "client:deactivated"
EVT_CLIENT_LIST = "client:list"


@dataclass
class ConsumerRegistration:
    id: str
    name: str
    registered_at: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "registered_at": self.registered_at}


@dataclass
class RouterState:
    consumers: List[ConsumerRegistration] = field(default_factory=list)
    active_index: int = -1

    def index_of(self, consumer_id: str) -> int:
        for i, c in enumerate(self.consumers):
            if c.id == consumer_id:
                return i
        return -1

    @property
    def active(self) -> Optional[ConsumerRegistration]:
        if 0 <= self.active_index < len(self.consumers):
            return self.consumers[self.active_index]
        return None

    def snapshot(self) -> dict:
        active = self.active
        return {
            "consumers": [c.to_dict() for c in self.consumers],
            "active_index": self.active_index,
            "active_name": active.name if active is not None else None,
        }


@dataclass
class Notice:
    """One outgoing message. target=None means every connected consumer."""

    target: Optional[str]
    event: str
    payload: Dict[str, Any]


class SessionRouter:
    def __init__(self, state: Optional[RouterState] = None):
        self.state = state if state is not None else RouterState()
        # consumer id -> wants raw frames
        self._connected: Dict[str, bool] = {}
        self._lock = threading.RLock()

    # --- queries ---------------------------------------------------------

    @property
    def active_index(self) -> int:
        return self.state.active_index

    @property
    def active_id(self) -> Optional[str]:
        with self._lock:
            active = self.state.active
            return active.id if active is not None else None

    def is_connected(self, consumer_id: str) -> bool:
        with self._lock:
            return consumer_id in self._connected

    def connected_ids(self) -> List[str]:
        with self._lock:
            return list(self._connected)

    def is_registered(self, consumer_id: str) -> bool:
        with self._lock:
            return self.state.index_of(consumer_id) >= 0

    def snapshot(self) -> dict:
        with self._lock:
            return self.state.snapshot()

    def delivery_targets(self) -> List[str]:
        """Active consumer (if any) plus every unregistered connected consumer."""
        with self._lock:
            out: List[str] = []
            active = self.state.active
            if active is not None:
                out.append(active.id)
            registered = {c.id for c in self.state.consumers}
            out.extend(cid for cid in self._connected if cid not in registered)
            return out

    def raw_targets(self) -> List[str]:
        with self._lock:
            return [cid for cid in self.delivery_targets() if self._connected.get(cid, False)]

    # --- connection bookkeeping -----------------------------------------

    def connect(self, consumer_id: str) -> List[Notice]:
        with self._lock:
            self._connected.setdefault(consumer_id, False)
            return [Notice(consumer_id, EVT_CLIENT_LIST, self.state.snapshot())]

    def disconnect(self, consumer_id: str) -> List[Notice]:
        with self._lock:
            notices = self.unregister(consumer_id)
            self._connected.pop(consumer_id, None)
            return notices

    def set_raw(self, consumer_id: str, enabled: bool) -> None:
        with self._lock:
            if consumer_id in self._connected:
                self._connected[consumer_id] = bool(enabled)

    # --- rotation --------------------------------------------------------

    def _broadcast(self) -> Notice:
        return Notice(None, EVT_CLIENT_LIST, self.state.snapshot())

    def register(self, consumer_id: str, name: str) -> List[Notice]:
        with self._lock:
            self._connected.setdefault(consumer_id, False)
            st = self.state
            notices: List[Notice] = []

            idx = st.index_of(consumer_id)
            if idx >= 0:
                st.consumers[idx].name = name
                logger.info('Updated registration: "%s" (%s)', name, consumer_id)
                if idx == st.active_index:
                    # re-announce after reconnect: still the active one
                    notices.append(Notice(consumer_id, EVT_ACTIVATED, {"name": name}))
            else:
                st.consumers.append(ConsumerRegistration(id=consumer_id, name=name))
                logger.info('Registered: "%s" (%s), %d service(s)', name, consumer_id, len(st.consumers))

            if len(st.consumers) == 1 and st.active_index < 0:
                st.active_index = 0
                notices.append(Notice(consumer_id, EVT_ACTIVATED, {"name": name}))
                logger.info('Auto-activated: "%s"', name)

            notices.append(self._broadcast())
            return notices

    def unregister(self, consumer_id: str) -> List[Notice]:
        with self._lock:
            st = self.state
            idx = st.index_of(consumer_id)
            if idx < 0:
                return []

            removed = st.consumers.pop(idx)
            logger.info(
                'Unregistered: "%s" (%s), %d service(s)', removed.name, consumer_id, len(st.consumers)
            )
            notices: List[Notice] = []

            if not st.consumers:
                st.active_index = -1
            elif idx == st.active_index:
                # Active consumer left: the next one in line takes over.
                st.active_index = st.active_index % len(st.consumers)
                nxt = st.consumers[st.active_index]
                notices.append(Notice(nxt.id, EVT_ACTIVATED, {"name": nxt.name}))
                logger.info('Active client left, switched to: "%s"', nxt.name)
            elif idx < st.active_index:
                st.active_index -= 1

            notices.append(self._broadcast())
            return notices

    def cycle_active(self) -> List[Notice]:
        with self._lock:
            st = self.state
            if not st.consumers:
                return []

            notices: List[Notice] = []
            prev = st.active
            if prev is not None:
                notices.append(Notice(prev.id, EVT_DEACTIVATED, {"name": prev.name}))

            st.active_index = (st.active_index + 1) % len(st.consumers)
            nxt = st.consumers[st.active_index]
            notices.append(Notice(nxt.id, EVT_ACTIVATED, {"name": nxt.name}))
            logger.info('Switched active client -> "%s"', nxt.name)

            notices.append(self._broadcast())
            return notices
