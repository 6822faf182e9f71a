# input/nav_reader.py
from __future__ import annotations

import logging
import os
import select
import threading
from typing import Callable, Optional, Union

from schema.nav_common import NavEvent, RawFrame
from input.evdev_frames import FrameDecoder
from input.nav_decoder import DeviceSession

logger = logging.getLogger(__name__)

DevicePath = Union[str, Callable[[], str]]

STATE_CLOSED = "closed"
STATE_OPENING = "opening"
STATE_OPEN = "open"


class NavReaderService:
    """
    Background evdev reader with automatic reconnect:
      - opens the device node in the SAME thread that reads it
      - non-blocking reads (select + os.read), one frame at a time
      - decodes each frame through a fresh DeviceSession per connection
      - reports lifecycle through named callbacks

    Callbacks (all optional, all called from the reader thread):
      on_open(device)     device handle acquired
      on_frame(frame)     every complete RawFrame, including EV_SYN
      on_nav(event)       decoded ButtonEvent / AxisEvent
      on_close(reason)    handle released (open failure, read error, stop)
      on_error(exc)       open or read failure, before the matching on_close

    After any close other than stop() a reconnect is attempted after
    reconnect_delay_s. device_path may be a callable so each attempt can
    re-resolve the path.
    """

    def __init__(
        self,
        device_path: DevicePath,
        is_32bit: bool = False,
        reconnect_delay_s: float | None = None,
        poll_s: float = 0.1,
        on_open: Optional[Callable[[str], None]] = None,
        on_frame: Optional[Callable[[RawFrame], None]] = None,
        on_nav: Optional[Callable[[NavEvent], None]] = None,
        on_close: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self._device_path = device_path
        self.decoder = FrameDecoder(is_32bit=is_32bit)
        if reconnect_delay_s is None:
            from config import RECONNECT_DELAY_S
            reconnect_delay_s = RECONNECT_DELAY_S
        self.reconnect_delay_s = float(reconnect_delay_s)
        self.poll_s = float(poll_s)

        self.on_open = on_open
        self.on_frame = on_frame
        self.on_nav = on_nav
        self.on_close = on_close
        self.on_error = on_error

        self.state = STATE_CLOSED
        self.session: Optional[DeviceSession] = None
        self.device: str = ""

        self._fd: Optional[int] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # --- lifecycle -------------------------------------------------------

    def start(self, threaded: bool = True) -> None:
        if threaded:
            if self._thread and self._thread.is_alive():
                return
            self._stop.clear()
            self._thread = threading.Thread(target=self._run, name="nav-reader", daemon=True)
            self._thread.start()
        else:
            # Foreground mode (useful for debugging)
            self._stop.clear()
            self._run()

    def stop(self, timeout_s: float = 2.0) -> None:
        self._stop.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout_s)
            self._thread = None

    @property
    def is_open(self) -> bool:
        return self.state == STATE_OPEN

    def resolve_device_path(self) -> str:
        p = self._device_path
        return str(p() if callable(p) else p)

    # --- internals -------------------------------------------------------

    def _fire(self, name: str, *args) -> None:
        cb = getattr(self, name, None)
        if cb is None:
            return
        try:
            cb(*args)
        except Exception:
            # Never let a consumer callback kill the reader thread
            logger.exception("%s callback failed", name)

    def _open(self) -> bool:
        self.state = STATE_OPENING
        self.device = self.resolve_device_path()
        try:
            self._fd = os.open(self.device, os.O_RDONLY | os.O_NONBLOCK)
        except OSError as e:
            self.state = STATE_CLOSED
            msg = (
                f"Cannot open {self.device}: {e.strerror or e}. "
                "Make sure the device exists and you have read permissions."
            )
            logger.warning(msg)
            self._fire("on_error", e)
            self._fire("on_close", msg)
            return False

        self.session = DeviceSession(device=self.device)
        self.state = STATE_OPEN
        logger.info("Opened %s (event size: %d bytes)", self.device, self.decoder.frame_size)
        self._fire("on_open", self.device)
        return True

    def _release(self) -> None:
        fd, self._fd = self._fd, None
        if fd is not None:
            try:
                os.close(fd)
            except OSError:
                pass
        self.session = None
        self.state = STATE_CLOSED

    def _close(self, reason: str, error: Exception | None = None) -> None:
        self._release()
        if error is not None:
            logger.error("Read error on %s: %s", self.device, error)
            self._fire("on_error", error)
        logger.info("Device closed: %s", reason)
        self._fire("on_close", reason)

    def _read_one(self) -> Optional[bytes]:
        """Wait up to poll_s for one frame. Returns None on timeout."""
        assert self._fd is not None
        ready, _, _ = select.select([self._fd], [], [], self.poll_s)
        if not ready:
            return None
        try:
            return os.read(self._fd, self.decoder.frame_size)
        except BlockingIOError:
            return None

    def handle_frame(self, frame: RawFrame) -> None:
        """Route one decoded frame through the session and the callbacks."""
        self._fire("on_frame", frame)
        if self.session is None:
            return
        for evt in self.session.process(frame):
            self._fire("on_nav", evt)

    def _read_loop(self) -> None:
        while not self._stop.is_set():
            try:
                buf = self._read_one()
            except OSError as e:
                self._close(e.strerror or str(e), error=e)
                return
            if buf is None:
                continue
            if len(buf) == 0:
                self._close("end of stream")
                return
            frame = self.decoder.decode(buf)
            if frame is None:
                # Partial read at a stream boundary
                logger.debug("Dropped %d-byte partial frame", len(buf))
                continue
            self.handle_frame(frame)

        self._close("stopped")

    def _run(self) -> None:
        while not self._stop.is_set():
            if self._open():
                self._read_loop()
            if self._stop.is_set():
                break
            logger.info("Reconnecting in %.1fs...", self.reconnect_delay_s)
            if self._stop.wait(max(0.0, self.reconnect_delay_s)):
                break
