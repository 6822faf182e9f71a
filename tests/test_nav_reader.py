import errno
import os
import threading
import time

from input import nav_reader
from input.evdev_frames import encode_frame
from input.nav_reader import NavReaderService
from schema.nav_common import EV_ABS, EV_KEY, EV_SYN, ButtonEvent, RawFrame


def _frames(*specs, is_32bit=False):
    return b"".join(encode_frame(RawFrame(1, 2, t, c, v), is_32bit=is_32bit) for t, c, v in specs)


class Recorder:
    def __init__(self):
        self.opened = []
        self.frames = []
        self.nav = []
        self.closed = []
        self.errors = []
        self.close_evt = threading.Event()

    def attach(self, reader: NavReaderService) -> NavReaderService:
        reader.on_open = self.opened.append
        reader.on_frame = self.frames.append
        reader.on_nav = self.nav.append
        reader.on_error = self.errors.append
        reader.on_close = self._on_close
        return reader

    def _on_close(self, reason):
        self.closed.append(reason)
        self.close_evt.set()

    def wait_closes(self, n, timeout_s=2.0):
        deadline = time.time() + timeout_s
        while time.time() < deadline and len(self.closed) < n:
            time.sleep(0.01)
        return len(self.closed) >= n


def test_reads_decodes_and_closes_at_end_of_stream(tmp_path):
    dev = tmp_path / "event0"
    dev.write_bytes(_frames(
        (EV_ABS, 0x00, 200),   # wired stick -> fixes the dialect
        (EV_SYN, 0, 0),
        (EV_KEY, 0x130, 1),
        (EV_SYN, 0, 0),
        (EV_KEY, 0x130, 0),
        (EV_SYN, 0, 0),
    ))
    rec = Recorder()
    reader = rec.attach(NavReaderService(str(dev), reconnect_delay_s=10.0, poll_s=0.05))
    reader.start()
    assert rec.close_evt.wait(2.0)
    reader.stop()

    assert rec.opened == [str(dev)]
    assert len(rec.frames) == 6
    buttons = [(e.button, e.pressed) for e in rec.nav if isinstance(e, ButtonEvent)]
    assert buttons == [("cross", True), ("cross", False)]
    assert rec.closed == ["end of stream"]
    assert rec.errors == []


def test_narrow_frames(tmp_path):
    dev = tmp_path / "event1"
    dev.write_bytes(_frames((EV_KEY, 0x131, 1), (EV_KEY, 0x131, 0), is_32bit=True))
    rec = Recorder()
    reader = rec.attach(NavReaderService(str(dev), is_32bit=True, reconnect_delay_s=10.0, poll_s=0.05))
    reader.start()
    assert rec.close_evt.wait(2.0)
    reader.stop()
    assert [(e.button, e.pressed) for e in rec.nav] == [("circle", True), ("circle", False)]


def test_partial_trailing_frame_is_dropped(tmp_path):
    dev = tmp_path / "event2"
    dev.write_bytes(_frames((EV_KEY, 0x136, 1), (EV_KEY, 0x136, 0)) + b"\x01" * 10)
    rec = Recorder()
    reader = rec.attach(NavReaderService(str(dev), reconnect_delay_s=10.0, poll_s=0.05))
    reader.start()
    assert rec.close_evt.wait(2.0)
    reader.stop()
    assert len(rec.frames) == 2
    assert rec.errors == []


def test_open_failure_reports_reason_and_retries(tmp_path):
    missing = str(tmp_path / "nope")
    calls = []

    def _path():
        calls.append(1)
        return missing

    rec = Recorder()
    reader = rec.attach(NavReaderService(_path, reconnect_delay_s=0.05, poll_s=0.05))
    reader.start()
    assert rec.wait_closes(2)
    reader.stop()

    assert len(calls) >= 2
    assert rec.opened == []
    assert missing in rec.closed[0]
    assert isinstance(rec.errors[0], OSError)
    assert not reader.is_open


def test_reconnect_starts_a_fresh_session(tmp_path):
    wired = tmp_path / "wired"
    wired.write_bytes(_frames((EV_KEY, 0x13C, 0), (EV_KEY, 0x130, 1)))
    unknown = tmp_path / "unknown"
    unknown.write_bytes(_frames((EV_KEY, 0x130, 1)))
    paths = [str(wired), str(unknown)]

    def _path():
        return paths.pop(0) if len(paths) > 1 else paths[0]

    rec = Recorder()
    reader = rec.attach(NavReaderService(_path, reconnect_delay_s=0.05, poll_s=0.05))
    reader.start()
    assert rec.wait_closes(2)
    reader.stop()

    pressed = [e.button for e in rec.nav if e.pressed]
    # first session learned WIRED (BTN_SOUTH = cross); the second starts UNKNOWN again
    assert pressed[:2] == ["cross", "ps"]
    assert rec.opened[:2] == [str(wired), str(unknown)]


def test_stop_closes_without_reconnect(tmp_path):
    fifo = str(tmp_path / "fifo")
    os.mkfifo(fifo)
    # Hold a writer open so the reader sees "no data yet" instead of EOF.
    wfd = os.open(fifo, os.O_RDWR | os.O_NONBLOCK)
    try:
        rec = Recorder()
        opened = threading.Event()
        reader = rec.attach(NavReaderService(fifo, reconnect_delay_s=0.05, poll_s=0.05))
        reader.on_open = lambda dev: (rec.opened.append(dev), opened.set())
        reader.start()
        assert opened.wait(2.0)

        os.write(wfd, _frames((EV_KEY, 0x131, 1)))
        deadline = time.time() + 2.0
        while time.time() < deadline and not rec.nav:
            time.sleep(0.01)
        assert [(e.button, e.pressed) for e in rec.nav] == [("circle", True)]

        reader.stop()
        time.sleep(0.2)
        assert rec.closed == ["stopped"]
        assert rec.opened == [fifo]
        assert not reader.is_open
    finally:
        os.close(wfd)


def test_callback_errors_do_not_kill_the_reader(tmp_path):
    dev = tmp_path / "event3"
    dev.write_bytes(_frames((EV_KEY, 0x131, 1), (EV_KEY, 0x131, 0)))
    rec = Recorder()
    reader = rec.attach(NavReaderService(str(dev), reconnect_delay_s=10.0, poll_s=0.05))

    def _boom(_frame):
        raise RuntimeError("consumer bug")

    reader.on_frame = _boom
    reader.start()
    assert rec.close_evt.wait(2.0)
    reader.stop()
    assert len(rec.nav) == 2
    assert rec.closed == ["end of stream"]


def test_read_error_reports_closes_and_reconnects(tmp_path, monkeypatch):
    dev = tmp_path / "event4"
    dev.write_bytes(_frames((EV_KEY, 0x131, 1), (EV_KEY, 0x131, 0)))

    real_read, real_close = os.read, os.close
    reads = []
    failed_fds = []
    closed_fds = []

    def _read(fd, n):
        reads.append(fd)
        if len(reads) == 2:
            failed_fds.append(fd)
            raise OSError(errno.ENODEV, os.strerror(errno.ENODEV))
        return real_read(fd, n)

    def _close(fd):
        closed_fds.append(fd)
        real_close(fd)

    monkeypatch.setattr(nav_reader.os, "read", _read)
    monkeypatch.setattr(nav_reader.os, "close", _close)

    rec = Recorder()
    reader = rec.attach(NavReaderService(str(dev), reconnect_delay_s=0.05, poll_s=0.05))
    reader.start()
    assert rec.wait_closes(2)
    reader.stop()

    assert isinstance(rec.errors[0], OSError)
    assert rec.errors[0].errno == errno.ENODEV
    assert rec.closed[:2] == ["No such device", "end of stream"]
    assert len(rec.opened) >= 2
    assert failed_fds[0] in closed_fds
    # the second session re-reads the file from the start
    assert [(e.button, e.pressed) for e in rec.nav][:3] == [
        ("circle", True),
        ("circle", True),
        ("circle", False),
    ]
