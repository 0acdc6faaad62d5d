"""Unit tests for deep cloning of state values."""

from __future__ import annotations

import re
from collections import defaultdict, namedtuple
from datetime import datetime

from microflow.core.clone import deep_clone


def test_containers_are_copied_recursively() -> None:
    original = {"a": [1, {"b": {2, 3}}], "t": (1, [2])}

    clone = deep_clone(original)

    assert clone == original
    assert clone["a"] is not original["a"]
    assert clone["a"][1]["b"] is not original["a"][1]["b"]
    assert clone["t"][1] is not original["t"][1]


def test_cycles_are_preserved() -> None:
    original: dict[str, object] = {"name": "root"}
    original["self"] = original

    clone = deep_clone(original)

    assert clone["self"] is clone
    assert clone is not original


def test_callables_and_immutables_are_shared() -> None:
    def handler() -> None:
        return None

    stamp = datetime(2024, 1, 1)
    original = {"fn": handler, "cls": int, "when": stamp}

    clone = deep_clone(original)

    assert clone["fn"] is handler
    assert clone["cls"] is int
    assert clone["when"] is stamp


def test_patterns_and_subclasses_keep_their_type() -> None:
    Point = namedtuple("Point", "x y")
    counts: defaultdict[str, list[int]] = defaultdict(list, {"a": [1]})

    clone = deep_clone({"re": re.compile("ab+", re.I), "p": Point(1, [2]), "d": counts})

    assert clone["re"].pattern == "ab+"
    assert clone["re"].flags & re.I
    assert isinstance(clone["p"], Point) and clone["p"].y == [2]
    assert isinstance(clone["d"], defaultdict)
    assert clone["d"]["missing"] == []
    assert clone["d"]["a"] is not counts["a"]
