import pytest

from schema.nav_common import AxisEvent, ButtonEvent, RawFrame, nav_event_from_dict


def test_raw_frame_roundtrip():
    f = RawFrame(time_sec=1700000000, time_usec=123456, type=1, code=0x130, value=1)
    d = f.to_dict()
    assert set(d.keys()) == {"time_sec", "time_usec", "type", "code", "value"}
    assert RawFrame.from_dict(d) == f


def test_button_event_wire_shape():
    d = ButtonEvent("cross", True, 42).to_dict()
    assert d == {"kind": "button", "button": "cross", "pressed": True, "timestamp": 42}
    evt = nav_event_from_dict(d)
    assert isinstance(evt, ButtonEvent)
    assert evt.pressed is True


def test_axis_event_wire_shape():
    d = AxisEvent("stick_x", 200, 7).to_dict()
    assert d["kind"] == "axis"
    assert d["axis"] == "stick_x"
    evt = nav_event_from_dict(d)
    assert isinstance(evt, AxisEvent)
    assert evt.value == 200


def test_unknown_kind_rejected():
    with pytest.raises(ValueError):
        nav_event_from_dict({"kind": "gyro"})
