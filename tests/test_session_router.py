from hub.session_router import (
    EVT_ACTIVATED,
    EVT_CLIENT_LIST,
    EVT_DEACTIVATED,
    RouterState,
    SessionRouter,
)


def _events(notices):
    return [(n.target, n.event) for n in notices]


def test_first_registration_becomes_active():
    r = SessionRouter()
    notices = r.register("a", "A")
    assert r.active_index == 0
    assert r.active_id == "a"
    assert _events(notices) == [("a", EVT_ACTIVATED), (None, EVT_CLIENT_LIST)]
    assert notices[0].payload == {"name": "A"}
    snap = notices[-1].payload
    assert snap["active_index"] == 0
    assert snap["active_name"] == "A"
    assert [c["name"] for c in snap["consumers"]] == ["A"]


def test_second_registration_does_not_steal_active():
    r = SessionRouter()
    r.register("a", "A")
    notices = r.register("b", "B")
    assert r.active_id == "a"
    assert _events(notices) == [(None, EVT_CLIENT_LIST)]


def test_reregistration_renames_in_place():
    r = SessionRouter()
    r.register("a", "A")
    r.register("b", "B")
    notices = r.register("a", "Alpha")
    snap = r.snapshot()
    assert [(c["id"], c["name"]) for c in snap["consumers"]] == [("a", "Alpha"), ("b", "B")]
    assert snap["active_name"] == "Alpha"
    # still active: re-told so it can restore its flag
    assert _events(notices) == [("a", EVT_ACTIVATED), (None, EVT_CLIENT_LIST)]
    assert notices[0].payload == {"name": "Alpha"}


def test_reregistration_of_inactive_consumer_only_broadcasts():
    r = SessionRouter()
    r.register("a", "A")
    r.register("b", "B")
    notices = r.register("b", "B")
    assert r.active_id == "a"
    assert len(r.snapshot()["consumers"]) == 2
    assert _events(notices) == [(None, EVT_CLIENT_LIST)]


def test_unregister_active_hands_over_to_next():
    r = SessionRouter()
    r.register("a", "A")
    r.register("b", "B")
    notices = r.unregister("a")
    assert r.active_index == 0
    assert r.active_id == "b"
    assert _events(notices) == [("b", EVT_ACTIVATED), (None, EVT_CLIENT_LIST)]


def test_unregister_last_active_wraps_to_first():
    r = SessionRouter()
    for cid in ("a", "b", "c"):
        r.register(cid, cid.upper())
    r.cycle_active()
    r.cycle_active()
    assert r.active_id == "c"
    r.unregister("c")
    assert r.active_index == 0
    assert r.active_id == "a"


def test_unregister_before_active_keeps_same_consumer():
    r = SessionRouter()
    for cid in ("a", "b", "c"):
        r.register(cid, cid.upper())
    r.cycle_active()
    r.cycle_active()
    assert r.active_id == "c"
    notices = r.unregister("a")
    assert r.active_index == 1
    assert r.active_id == "c"
    assert _events(notices) == [(None, EVT_CLIENT_LIST)]


def test_unregister_after_active_keeps_index():
    r = SessionRouter()
    for cid in ("a", "b", "c"):
        r.register(cid, cid.upper())
    r.unregister("c")
    assert r.active_index == 0
    assert r.active_id == "a"


def test_unregister_everyone_clears_active():
    r = SessionRouter()
    r.register("a", "A")
    r.unregister("a")
    assert r.active_index == -1
    assert r.active_id is None
    assert r.snapshot()["active_name"] is None


def test_unregister_unknown_is_noop():
    r = SessionRouter()
    r.register("a", "A")
    assert r.unregister("zzz") == []
    assert r.active_id == "a"


def test_cycle_alternates_with_wraparound():
    r = SessionRouter()
    r.register("a", "A")
    r.register("b", "B")
    seen = []
    for _ in range(5):
        notices = r.cycle_active()
        seen.append(r.active_id)
        assert _events(notices)[0][1] == EVT_DEACTIVATED
        assert _events(notices)[1][1] == EVT_ACTIVATED
        assert _events(notices)[2] == (None, EVT_CLIENT_LIST)
    assert seen == ["b", "a", "b", "a", "b"]


def test_cycle_notifies_old_and_new():
    r = SessionRouter()
    r.register("a", "A")
    r.register("b", "B")
    notices = r.cycle_active()
    assert _events(notices) == [("a", EVT_DEACTIVATED), ("b", EVT_ACTIVATED), (None, EVT_CLIENT_LIST)]
    assert notices[0].payload == {"name": "A"}
    assert notices[1].payload == {"name": "B"}


def test_cycle_on_empty_is_noop():
    r = SessionRouter()
    assert r.cycle_active() == []
    assert r.active_index == -1


def test_delivery_targets_active_plus_observers():
    r = SessionRouter()
    for cid in ("obs1", "a", "b", "obs2"):
        r.connect(cid)
    r.register("a", "A")
    r.register("b", "B")
    targets = r.delivery_targets()
    assert set(targets) == {"a", "obs1", "obs2"}
    assert "b" not in targets

    r.cycle_active()
    targets = r.delivery_targets()
    assert set(targets) == {"b", "obs1", "obs2"}
    assert "a" not in targets


def test_raw_targets_need_opt_in():
    r = SessionRouter()
    for cid in ("obs1", "obs2", "a", "b"):
        r.connect(cid)
    r.register("a", "A")
    r.register("b", "B")
    r.set_raw("obs1", True)
    r.set_raw("a", True)
    r.set_raw("b", True)
    assert set(r.raw_targets()) == {"obs1", "a"}


def test_disconnect_forgets_consumer():
    r = SessionRouter()
    r.connect("obs")
    r.register("a", "A")
    r.disconnect("a")
    r.disconnect("obs")
    assert r.connected_ids() == []
    assert r.delivery_targets() == []
    assert r.active_index == -1


def test_connect_sends_snapshot_to_newcomer():
    r = SessionRouter()
    r.register("a", "A")
    notices = r.connect("new")
    assert _events(notices) == [("new", EVT_CLIENT_LIST)]
    assert notices[0].payload["active_name"] == "A"


def test_active_index_always_valid():
    r = SessionRouter(RouterState())
    ops = [
        ("reg", "a"), ("reg", "b"), ("cycle", None), ("reg", "c"), ("unreg", "b"),
        ("cycle", None), ("unreg", "a"), ("unreg", "c"), ("reg", "d"), ("cycle", None),
    ]
    for op, cid in ops:
        if op == "reg":
            r.register(cid, cid)
        elif op == "unreg":
            r.unregister(cid)
        else:
            r.cycle_active()
        n = len(r.state.consumers)
        assert -1 <= r.active_index <= n - 1
        assert (r.active_index == -1) == (n == 0)
