"""network/zmq_hotplug.py

Socket options that keep hub <-> consumer links recoverable.

Consumers (DEALER) and the hub (ROUTER) can come and go independently: the hub
restarts, a consumer's laptop sleeps, Wi-Fi drops. Without help a DEALER may
sit on a half-open TCP connection for a long time. We apply best-effort:
  - fast reconnect backoff
  - TCP keepalive with short idle/interval/count
  - ZMQ heartbeats (libzmq >= 4.2)
  - small high-water marks so a stalled peer drops events instead of
    buffering stale input

All options are guarded so older libzmq/pyzmq builds keep working.
"""

from __future__ import annotations

from typing import Optional

import zmq


def _set(sock: zmq.Socket, name: str, val) -> None:
    opt = getattr(zmq, name, None)
    if opt is None:
        return
    try:
        sock.setsockopt(opt, val)
    except zmq.ZMQError:
        pass


def apply_hotplug_opts(
    sock: zmq.Socket,
    *,
    linger_ms: int = 0,
    snd_hwm: Optional[int] = None,
    rcv_hwm: Optional[int] = None,
    reconnect_ivl_ms: int = 250,
    reconnect_ivl_max_ms: int = 2000,
    heartbeat_ivl_ms: int = 1000,
    heartbeat_timeout_ms: int = 3000,
    heartbeat_ttl_ms: int = 6000,
    tcp_keepalive: bool = True,
    tcp_keepalive_idle_s: int = 10,
    tcp_keepalive_intvl_s: int = 5,
    tcp_keepalive_cnt: int = 3,
    router_handover: Optional[bool] = None,
) -> None:
    """Apply best-effort hotplug/reconnect options to a socket."""

    _set(sock, "LINGER", int(linger_ms))

    if snd_hwm is not None:
        _set(sock, "SNDHWM", int(snd_hwm))
    if rcv_hwm is not None:
        _set(sock, "RCVHWM", int(rcv_hwm))

    _set(sock, "RECONNECT_IVL", int(reconnect_ivl_ms))
    _set(sock, "RECONNECT_IVL_MAX", int(reconnect_ivl_max_ms))

    _set(sock, "HEARTBEAT_IVL", int(heartbeat_ivl_ms))
    _set(sock, "HEARTBEAT_TIMEOUT", int(heartbeat_timeout_ms))
    _set(sock, "HEARTBEAT_TTL", int(heartbeat_ttl_ms))

    if tcp_keepalive:
        _set(sock, "TCP_KEEPALIVE", 1)
        _set(sock, "TCP_KEEPALIVE_IDLE", int(tcp_keepalive_idle_s))
        _set(sock, "TCP_KEEPALIVE_INTVL", int(tcp_keepalive_intvl_s))
        _set(sock, "TCP_KEEPALIVE_CNT", int(tcp_keepalive_cnt))

    # A consumer that reconnects with the same identity replaces its old pipe.
    if router_handover is not None:
        _set(sock, "ROUTER_HANDOVER", 1 if router_handover else 0)
