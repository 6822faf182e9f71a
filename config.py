"""
Global-ish config for the PS Navigation hub.

You can import this from anywhere:

    from config import DEVICE_PATH, HUB_BIND_ENDPOINT, HUB_CONNECT_ENDPOINT
"""

import os


def _env_bool(var: str, default: str = "0") -> bool:
    return os.environ.get(var, default).strip().lower() in ("1", "true", "yes")


# Hub address (can be overridden via env)
HUB_HOST = os.environ.get("PSNAV_HUB_HOST", "127.0.0.1")
HUB_PORT = int(os.environ.get("PSNAV_PORT", "3050"))

# ZMQ endpoints: the hub binds, consumers connect
HUB_BIND_ENDPOINT = os.environ.get("PSNAV_HUB_BIND", f"tcp://*:{HUB_PORT}")
HUB_CONNECT_ENDPOINT = os.environ.get("PSNAV_HUB_EP", f"tcp://{HUB_HOST}:{HUB_PORT}")


# Input device
#
# The PS Navigation controller shows up as /dev/input/eventN. Find yours with:
#   sudo evtest
#
# The path is re-read on every reconnect attempt, so a udev symlink such as
# /dev/input/by-id/...-event-joystick survives replugging.
DEVICE_PATH = os.environ.get("PSNAV_DEVICE_PATH", "/dev/input/event5")

# 32-bit kernels use a 16-byte input_event (64-bit: 24 bytes).
IS_32BIT = _env_bool("PSNAV_IS_32BIT")

# Synthetic input instead of a real device (development without the controller)
MOCK_INPUT = _env_bool("PSNAV_MOCK_INPUT")

# Seconds to wait before re-opening the device after it closes.
RECONNECT_DELAY_S = float(os.environ.get("PSNAV_RECONNECT_S", "3.0"))


# Consumer liveness
#
# ZMQ ROUTER sockets don't report peer disconnects, so consumers ping the hub.
# A consumer silent for longer than CONSUMER_TIMEOUT_S is dropped from the
# rotation (same as a disconnect).
CONSUMER_TIMEOUT_S = float(os.environ.get("PSNAV_CONSUMER_TIMEOUT_S", "5.0"))
CLIENT_PING_S = float(os.environ.get("PSNAV_CLIENT_PING_S", "1.0"))

# Optional diagnostic logging.
DEBUG = _env_bool("PSNAV_DEBUG")
