"""Unit tests for the shared, path-addressable state."""

from __future__ import annotations

import pytest

from microflow.core.state import State, StateRef, parse_path
from microflow.errors import InvalidStatePathError, StateFrozenError


def test_parse_path_handles_keys_indices_and_quotes() -> None:
    assert parse_path("users[0].profile.name") == ["users", 0, "profile", "name"]
    assert parse_path("config['api-key']") == ["config", "api-key"]
    assert parse_path('a["b.c"][2]') == ["a", "b.c", 2]


@pytest.mark.parametrize("path", ["", "   ", "*", "a..b", "a[", "a.[0]x["])
def test_parse_path_rejects_malformed_paths(path: str) -> None:
    with pytest.raises(InvalidStatePathError):
        parse_path(path)


def test_get_reads_nested_values(state: State) -> None:
    assert state.get("user.name") == "Ada"
    assert state.get("user.roles[1]") == "dev"
    assert state.get("user.roles.0") == "admin"


def test_get_returns_default_only_for_missing_paths() -> None:
    state = State({"flag": None})

    assert state.get("missing", 5) == 5
    assert state.get("flag", 5) is None


def test_get_without_path_returns_whole_store(state: State) -> None:
    assert state.get() is state.get("*")
    assert set(state.get()) == {"user", "count"}


def test_set_then_get_roundtrips_and_creates_containers() -> None:
    state = State()

    state.set("a.b.c", 1)
    state.set("items[2]", "x")

    assert state.get("a.b.c") == 1
    assert state.get("a") == {"b": {"c": 1}}
    assert state.get("items") == [None, None, "x"]


@pytest.mark.parametrize("path", ["point[0]", "point[1].x"])
def test_set_refuses_to_write_into_tuples(path: str) -> None:
    state = State({"point": (1, 2)})

    with pytest.raises(InvalidStatePathError):
        state.set(path, 5)

    assert state.get("point") == (1, 2)


def test_merge_is_shallow(state: State) -> None:
    state.merge({"user": {"name": "Grace"}, "extra": True})

    assert state.get("user") == {"name": "Grace"}
    assert state.get("extra") is True


def test_merge_rejects_non_mappings(state: State) -> None:
    with pytest.raises(TypeError):
        state.merge([("a", 1)])  # type: ignore[arg-type]


def test_delete_removes_value_and_ignores_missing_paths(state: State) -> None:
    state.delete("user.roles[0]")
    state.delete("does.not.exist")

    assert state.get("user.roles") == ["dev"]


def test_each_visits_entries_in_order(state: State) -> None:
    seen: list[tuple[object, object]] = []

    state.each("user.roles", lambda value, key: seen.append((key, value)))

    assert seen == [(0, "admin"), (1, "dev")]


def test_frozen_state_rejects_every_mutation(state: State) -> None:
    state.freeze()

    with pytest.raises(StateFrozenError):
        state.set("count", 1)
    with pytest.raises(StateFrozenError):
        state.merge({"count": 1})
    with pytest.raises(StateFrozenError):
        state.delete("count")

    assert state.get("count") == 0
    assert state.get("user.name") == "Ada"


def test_reset_restores_defaults_and_unfreezes() -> None:
    initial = {"nested": {"value": 1}}
    state = State(initial)

    state.set("nested.value", 2)
    state.freeze()
    state.reset()

    assert state.frozen is False
    assert state.get("nested.value") == 1
    assert initial == {"nested": {"value": 1}}


def test_get_clone_is_detached(state: State) -> None:
    snapshot = state.get_clone()
    snapshot["user"]["roles"].append("ops")

    assert state.get("user.roles") == ["admin", "dev"]


def test_state_ref_resolves_lazily(state: State) -> None:
    ref = StateRef("count", default=-1)

    state.set("count", 7)

    assert ref.resolve(state) == 7
    assert StateRef("nope", default=-1).resolve(state) == -1


def test_mutations_emit_events(state: State, recorder) -> None:
    state.events.on("set", recorder)
    state.events.on("delete", recorder)

    state.set("count", 3)
    state.delete("count")

    assert recorder.names == ["set", "delete"]
    assert recorder.events[0].payload == {"path": "count", "value": 3}
    assert recorder.events[0].source is state
