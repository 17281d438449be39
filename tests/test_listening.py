"""
Tests for cross-emitter listening, mimicry and private events.
"""
import gc
import weakref

import pytest
from mimicry.events import (
    InvalidListenerKey,
    InvalidTarget,
    ListeningRecord,
    NotListening,
)


@pytest.fixture
def pair(make_emitter):
    """A listener emitter and a source emitter."""
    listener = make_emitter()
    source = make_emitter()
    yield listener, source
    listener.unlisten()


def _record(emitter, names):
    received = []
    for name in names:
        emitter.on(name, lambda *data, name=name: received.append((name,) + data))
    return received


class TestRelay:
    """Relaying a source's notify channel."""

    def test_only_filter_relays_under_id_and_alias(self, pair):
        a, b = pair
        received = _record(a, [f"{b.id}.ping", "alias.ping", "ping", f"{b.id}.other"])

        a.listen(b, "alias", {"only": ["ping"], "async": False})

        b.emit("ping", 42)
        assert received == [(f"{b.id}.ping", 42), ("alias.ping", 42)]

        b.emit("other")
        assert len(received) == 2

    def test_only_shorthand_as_list(self, pair):
        a, b = pair
        a.listen(b, "alias", ["ping"])

        assert a.is_listening(b, "ping")
        assert not a.is_listening(b, "other")

    def test_default_listen_is_deferred(self, pair, deferred):
        a, b = pair
        received = _record(a, [f"{b.id}.ping"])

        key = a.listen(b)
        assert key
        assert b.has(key)

        b.emit("ping", 1)
        assert received == []

        deferred.drain()
        assert received == [(f"{b.id}.ping", 1)]

    def test_alias_equal_to_id_relays_once(self, pair):
        a, b = pair
        received = _record(a, [f"{b.id}.ping"])

        a.listen(b, {"async": False})
        b.emit("ping")

        assert received == [(f"{b.id}.ping",)]

    def test_except_wins_over_only(self, pair):
        a, b = pair
        received = _record(a, ["x.a", "x.b"])

        a.listen(b, "x", {"only": ["a", "b"], "except": ["b"], "async": False})
        b.emit("a")
        b.emit("b")

        assert received == [("x.a",)]

    def test_notified_event(self, pair):
        a, b = pair
        received = _record(a, ["notified"])

        a.listen(b, {"async": False})
        b.emit("ping", 1, 2)

        assert received == [("notified", "ping", 1, 2)]

    def test_relay_dropped_after_unlisten(self, pair, deferred):
        a, b = pair
        received = _record(a, ["notified"])

        a.listen(b)
        b.emit("ping")
        a.unlisten(b)
        deferred.drain()

        assert received == []

    def test_listen_is_idempotent(self, pair):
        a, b = pair

        first = a.listen(b, {"async": False})
        second = a.listen(b, {"async": False})

        assert first
        assert second is True
        assert a.listening_ids() == [b.id]
        assert len(b.listener_keys("notify")) == 1

    def test_chained_relay(self, make_emitter):
        """A listens to B which mimics C: events travel C -> B -> A."""
        a, b, c = make_emitter(), make_emitter(), make_emitter()
        received = _record(a, [f"{b.id}.ping"])

        b.listen(c, {"async": False})
        b.mimic(True)
        a.listen(b, {"async": False})

        c.emit("ping", "hop")

        assert received == [(f"{b.id}.ping", "hop")]


class TestListenLifecycle:
    """listen()/unlisten() hooks and lifecycle events."""

    def test_lifecycle_events(self, pair):
        a, b = pair
        seen = []
        a.on("before_listen", lambda target, opts: seen.append(("before_listen", target, opts.listener_key)))
        a.on("listen", lambda target, opts: seen.append(("listen", target, opts.listener_key)))
        a.on("before_unlisten", lambda target, record: seen.append(("before_unlisten", target, record.listener_key)))
        a.on("unlisten", lambda target, record: seen.append(("unlisten", target, record.listener_key)))

        key = a.listen(b, {"async": False})
        a.unlisten(b)

        assert seen == [
            ("before_listen", b, None),
            ("listen", b, key),
            ("before_unlisten", b, key),
            ("unlisten", b, key),
        ]
        assert not b.has(key)
        assert not b.has(key, listening=False)
        assert not a.is_listening(b)

    def test_unlisten_releases_listener_emitter(self, make_emitter):
        """The source no longer holds the relay, so the listener can be collected."""
        a = make_emitter()
        b = make_emitter()

        keys = []
        for _ in range(3):
            keys.append(a.listen(b, {"async": False}))
            a.unlisten(b)

        assert b.listener_keys() == []
        assert not any(b.has(key, listening=False) for key in keys)

        ref = weakref.ref(a)
        del a
        gc.collect()

        assert ref() is None

    def test_custom_add_and_remove_methods(self, pair):
        a, b = pair
        removed = []
        received = _record(a, ["custom.ping"])

        def add_method(host, target, opts, relay, listen_opts):
            assert host is a
            assert listen_opts == {"async": False}
            return target.on("custom_channel", relay, listen_opts)

        key = a.listen(b, "custom", {
            "add_method": add_method,
            "remove_method": removed.append,
            "async": False,
        })

        b.emit("custom_channel", "ping", 5)
        assert received == [("custom.ping", 5)]

        a.unlisten("custom")
        assert removed == [key]

    def test_add_method_without_key_fails(self, pair):
        a, b = pair

        with pytest.raises(InvalidListenerKey):
            a.listen(b, {"add_method": lambda *args: None})

        assert not a.is_listening(b)

    @pytest.mark.parametrize("target", [None, "emitter", 42, object()])
    def test_invalid_targets(self, emitter, target):
        with pytest.raises(InvalidTarget):
            emitter.listen(target)

    def test_unlisten_by_alias_and_all(self, make_emitter):
        a, b, c = make_emitter(), make_emitter(), make_emitter()
        a.listen(b, "bee", {"async": False})
        a.listen(c, {"async": False})

        assert a.is_listening("bee")
        assert a.is_listening(b.id)

        a.unlisten("bee")
        assert not a.is_listening(b)
        assert a.is_listening(c)

        a.unlisten()
        assert a.listening_ids() == []
        assert c.listener_keys("notify") == []

    def test_unlisten_unknown_target_is_noop(self, emitter):
        emitter.unlisten("nobody")

    def test_listening_record_is_stored(self, pair):
        a, b = pair
        a.listen(b, "alias", {"only": ["ping"], "mimics": ["ping"], "async": False})

        record = a._listening[b.id]
        assert isinstance(record, ListeningRecord)
        assert record.name == "alias"
        assert record.only == {"ping"}
        assert record.mimics == {"ping"}


class TestMimicry:
    """Re-emitting relayed events under their bare name."""

    def test_mimic_events_for_target(self, pair):
        a, b = pair
        received = _record(a, [f"{b.id}.ping", "alias.ping", "ping"])

        a.listen(b, "alias", {"only": ["ping"], "async": False})
        a.mimic("ping", b)

        b.emit("ping", 42)

        assert received == [(f"{b.id}.ping", 42), ("alias.ping", 42), ("ping", 42)]

    def test_global_mimic(self, pair):
        a, b = pair
        received = _record(a, ["ping", "pong"])

        a.listen(b, {"async": False})
        a.mimic()

        b.emit("ping")
        b.emit("pong")

        assert received == [("ping",), ("pong",)]
        assert a.is_mimic("anything")

    def test_global_mimic_events(self, pair):
        a, b = pair
        received = _record(a, ["ping", "pong"])

        a.listen(b, {"async": False})
        a.mimic(["ping"])

        b.emit("ping")
        b.emit("pong")

        assert received == [("ping",)]

    def test_mimic_target_alone(self, pair):
        a, b = pair
        a.listen(b, {"async": False})

        a.mimic(b)

        assert a.is_mimic("whatever", b)
        assert not a.is_mimic("whatever")

    def test_mimic_flag_by_alias(self, pair):
        a, b = pair
        a.listen(b, "bee", {"async": False})

        a.mimic(True, "bee")
        assert a.is_mimic("ping", "bee")

        a.mimic(False, "bee")
        assert not a.is_mimic("ping", "bee")

    def test_mimics_from_listen_options(self, pair):
        a, b = pair
        received = _record(a, ["ping"])

        a.listen(b, {"mimics": True, "async": False})
        b.emit("ping")

        assert received == [("ping",)]

    def test_disabling_global_mimic_keeps_target_rules(self, pair):
        a, b = pair
        a.listen(b, {"async": False})
        a.mimic("ping", b)

        a.mimic(False)

        assert a.is_mimic("ping", b)
        assert not a.is_mimic("ping")

    def test_named_operations(self, pair):
        a, b = pair
        a.listen(b, {"async": False})

        a.add_global_mimic_events({"x", "y"})
        a.set_target_mimic(b, True)
        a.add_target_mimic_events(b, "z")

        assert a.is_mimic("x")
        assert a.is_mimic("z", b)
        assert not a.is_mimic("w", b)

    def test_mimic_target_not_listened(self, make_emitter):
        a, stranger = make_emitter(), make_emitter()

        with pytest.raises(NotListening):
            a.mimic("ping", stranger)
        with pytest.raises(NotListening):
            a.mimic(True, "unknown-alias")
        with pytest.raises(NotListening):
            a.mimic(stranger)

    def test_mimic_invalid_target(self, emitter):
        with pytest.raises(InvalidTarget):
            emitter.mimic("ping", 3.5)
        with pytest.raises(InvalidTarget):
            emitter.mimic(True, object())

    def test_is_mimic_with_unknown_target(self, emitter):
        assert not emitter.is_mimic("ping", "not-listening")


class TestPrivateEvents:
    """Private events skip the notify relay only."""

    def test_private_event_not_relayed(self, pair):
        a, b = pair
        received = _record(a, ["notified"])
        on_b = _record(b, ["secret_complete", "event_emitted"])

        a.listen(b, {"async": False})
        b.private("secret")

        b.emit("secret", 1)
        b.emit("public", 2)

        assert received == [("notified", "public", 2)]
        assert on_b[:2] == [("secret_complete", 1), ("event_emitted", "secret", 1)]

    def test_private_notify_listener_never_called(self, emitter):
        received = _record(emitter, ["notify"])
        emitter.private("secret")

        emitter.emit("secret")

        assert received == []

    def test_private_all_and_none(self, emitter):
        emitter.private(True)
        assert emitter.is_private("anything")

        emitter.private(False)
        assert not emitter.is_private("anything")

        emitter.private("a", ["b", "c"])
        assert emitter.is_private("b")
        assert not emitter.is_private("d")
