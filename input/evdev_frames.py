# input/evdev_frames.py
"""Binary decoding of Linux ``struct input_event`` records.

On 64-bit kernels (Raspberry Pi OS 64-bit / aarch64)::

    struct input_event {
        struct timeval { uint64 tv_sec; uint64 tv_usec; }  // 16 bytes
        uint16_t type;
        uint16_t code;
        int32_t  value;
    };                                                     // 24 bytes

On 32-bit kernels the timeval is 2x uint32, so the record is 16 bytes.
All fields are little-endian.
"""
from __future__ import annotations

import struct
from typing import Optional

from schema.nav_common import RawFrame

_WIDE = struct.Struct("<QQHHi")
_NARROW = struct.Struct("<IIHHi")

EVENT_SIZE_64 = _WIDE.size    # 24
EVENT_SIZE_32 = _NARROW.size  # 16


class FrameDecoder:
    """Decode fixed-width input_event buffers.

    The width is chosen once at construction (boot-time bitness flag). Buffers
    of any other length are partial reads and decode to ``None``.
    """

    def __init__(self, is_32bit: bool = False):
        self.is_32bit = bool(is_32bit)
        self._struct = _NARROW if self.is_32bit else _WIDE

    @property
    def frame_size(self) -> int:
        return self._struct.size

    def decode(self, buf: bytes) -> Optional[RawFrame]:
        if buf is None or len(buf) != self._struct.size:
            return None
        sec, usec, ev_type, code, value = self._struct.unpack(buf)
        return RawFrame(time_sec=sec, time_usec=usec, type=ev_type, code=code, value=value)

    def encode(self, frame: RawFrame) -> bytes:
        return encode_frame(frame, is_32bit=self.is_32bit)


def encode_frame(frame: RawFrame, is_32bit: bool = False) -> bytes:
    """Pack a RawFrame back into kernel layout (used by tools and tests)."""
    st = _NARROW if is_32bit else _WIDE
    return st.pack(frame.time_sec, frame.time_usec, frame.type, frame.code, frame.value)
