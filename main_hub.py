# main_hub.py
from __future__ import annotations

import argparse
import logging
import signal
import threading

from config import (
    DEBUG,
    DEVICE_PATH,
    HUB_BIND_ENDPOINT,
    IS_32BIT,
    MOCK_INPUT,
    RECONNECT_DELAY_S,
)
from hub.nav_hub import NavHubService
from input.mock_source import MOCK_DEVICE, MockNavSource
from input.nav_reader import NavReaderService


def _setup_logging(debug: bool) -> None:
    h = logging.StreamHandler()
    h.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger()
    root.addHandler(h)
    root.setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    ap = argparse.ArgumentParser(description="PS Navigation hub (evdev -> ZMQ consumers)")
    ap.add_argument("--endpoint", default=HUB_BIND_ENDPOINT, help="ZMQ ROUTER bind endpoint")
    ap.add_argument("--device", default=DEVICE_PATH, help="evdev device node, e.g. /dev/input/event5")
    ap.add_argument("--32bit", dest="is_32bit", action="store_true", default=IS_32BIT,
                    help="Device uses 16-byte input_event records (32-bit kernel)")
    ap.add_argument("--mock", action="store_true", default=MOCK_INPUT,
                    help="Generate synthetic input instead of reading a device")
    ap.add_argument("--reconnect", type=float, default=RECONNECT_DELAY_S,
                    help="Seconds between device reconnect attempts")
    ap.add_argument("--debug", action="store_true", default=DEBUG, help="Enable debug logs")
    args = ap.parse_args()

    _setup_logging(args.debug)

    mode = "MOCK" if args.mock else "LIVE"
    print(f"[hub] psnavhub on {args.endpoint} (device={args.device}, mode={mode})")

    hub = NavHubService(endpoint=args.endpoint, device=MOCK_DEVICE if args.mock else args.device)
    hub.start()

    if args.mock:
        source = MockNavSource(
            on_nav=hub.publish_nav,
            on_open=hub.device_opened,
            on_cycle=hub.request_cycle,
        )
    else:
        source = NavReaderService(
            device_path=args.device,
            is_32bit=args.is_32bit,
            reconnect_delay_s=args.reconnect,
        )
        hub.attach_reader(source)

    done = threading.Event()

    def _shutdown(signum, _frame):
        print(f"\n[hub] {signal.Signals(signum).name} received, shutting down...")
        done.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    source.start()
    try:
        # Keep main alive without pegging CPU
        while not done.wait(0.25):
            pass
    finally:
        source.stop()
        hub.stop()
        print("[hub] stopped")


if __name__ == "__main__":
    main()
