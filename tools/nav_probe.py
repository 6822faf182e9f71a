#!/usr/bin/env python3
"""Print PS Navigation events from a running hub.

Examples
--------
  # Always-on observer, default endpoint from config.py (PSNAV_HUB_HOST)
  python3 tools/nav_probe.py

  # Join the rotation as a named service
  python3 tools/nav_probe.py --name probe

  # Also print raw evdev frames
  python3 tools/nav_probe.py --raw

  # One-shot hub status
  python3 tools/nav_probe.py --status
"""
from __future__ import annotations

import argparse
import json
import sys
import threading
import time
from pathlib import Path

# Ensure repo root is on sys.path when run as `python3 tools/...`
_THIS = Path(__file__).resolve()
_REPO_ROOT = _THIS.parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from config import HUB_CONNECT_ENDPOINT  # noqa: E402
from client.nav_client import NavClient  # noqa: E402


def main():
    ap = argparse.ArgumentParser(description="Print events from the PS Navigation hub")
    ap.add_argument("--endpoint", default=HUB_CONNECT_ENDPOINT, help="Hub endpoint (tcp://host:3050)")
    ap.add_argument("--name", default=None, help="Register as a named service (default: observer)")
    ap.add_argument("--raw", action="store_true", help="Subscribe to raw evdev frames")
    ap.add_argument("--status", action="store_true", help="Print hub status and exit")
    args = ap.parse_args()

    nav = NavClient(args.endpoint, name=args.name, raw=args.raw)

    if args.status:
        got = threading.Event()

        def _print_status(st: dict):
            print(json.dumps(st, indent=2))
            got.set()

        nav.on("status", _print_status)
        nav.connect()
        nav.request_status()
        if not got.wait(3.0):
            print(f"[probe] no answer from {args.endpoint}")
        nav.disconnect()
        return

    nav.on("button", lambda e: print(f"[probe] {e.button:<11} {'down' if e.pressed else 'up'}"))
    nav.on("axis", lambda e: print(f"[probe] {e.axis:<11} {e.value:3d}"))
    nav.on("raw", lambda f: print(f"[probe] raw type={f.type} code=0x{f.code:03x} value={f.value}"))
    nav.on("connected", lambda d: print(f"[probe] device connected: {d.get('device')}"))
    nav.on("disconnected", lambda d: print(f"[probe] device disconnected: {d.get('reason')}"))
    nav.on("activated", lambda d: print(f"[probe] >>> active: {d.get('name')}"))
    nav.on("deactivated", lambda d: print(f"[probe] <<< inactive: {d.get('name')}"))
    nav.on("client_list", lambda d: print(f"[probe] services={[c['name'] for c in d.get('consumers', [])]} "
                                          f"active={d.get('active_name')}"))

    print(f"[probe] connecting to {args.endpoint} (name={args.name or '<observer>'}, raw={args.raw})")
    nav.connect()
    try:
        while True:
            time.sleep(0.25)
    except KeyboardInterrupt:
        print("[probe] stopping…")
        nav.disconnect()


if __name__ == "__main__":
    main()
