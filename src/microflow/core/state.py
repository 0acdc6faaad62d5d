"""Path-addressable shared state.

One :class:`State` instance is shared by reference across a whole top-level
workflow invocation: the workflow, its steps, and every nested workflow see
the same store. Paths use dotted keys and bracketed indices, e.g.
``users[0].profile.name`` or ``config['api-key']``.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from microflow.core.clone import deep_clone
from microflow.core.events import Broadcaster, EventBus, StateEventName
from microflow.errors import InvalidStatePathError, StateFrozenError

_MISSING = object()

_SEGMENT = re.compile(
    r"""\[\s*(?P<quoted>'[^']*'|"[^"]*")\s*\]"""
    r"""|\[\s*(?P<index>-?\d+)\s*\]"""
    r"""|\[(?P<bare>[^\]]+)\]"""
    r"""|(?P<key>[^.\[\]]+)"""
)

Segment = str | int


def parse_path(path: str) -> list[Segment]:
    """Split a state path into keys (str) and list indices (int).

    Raises:
        InvalidStatePathError: If the path is empty or contains stray characters.
    """

    if not path or not path.strip() or path.strip() == "*":
        raise InvalidStatePathError(f"The provided state path is invalid: {path!r}")

    segments: list[Segment] = []
    position = 0
    for match in _SEGMENT.finditer(path):
        gap = path[position : match.start()]
        if gap not in ("", "."):
            raise InvalidStatePathError(f"The provided state path is invalid: {path!r}")
        if match.group("quoted") is not None:
            segments.append(match.group("quoted")[1:-1])
        elif match.group("index") is not None:
            segments.append(int(match.group("index")))
        else:
            segments.append((match.group("bare") or match.group("key")).strip())
        position = match.end()

    if not segments or path[position:] != "":
        raise InvalidStatePathError(f"The provided state path is invalid: {path!r}")
    return segments


def _coerce(container: Any, segment: Segment) -> Segment:
    # Dotted numeric keys address list elements too: ``items.0`` == ``items[0]``.
    if isinstance(container, list) and isinstance(segment, str) and segment.lstrip("-").isdigit():
        return int(segment)
    return segment


def _lookup(store: Any, segments: list[Segment]) -> Any:
    current = store
    for raw in segments:
        segment = _coerce(current, raw)
        if isinstance(current, Mapping):
            if segment not in current:
                return _MISSING
            current = current[segment]
        elif isinstance(current, (list, tuple)) and isinstance(segment, int):
            if not -len(current) <= segment < len(current):
                return _MISSING
            current = current[segment]
        else:
            return _MISSING
    return current


@dataclass(frozen=True, slots=True)
class StateRef:
    """A late-bound reference to a value in the shared state."""

    path: str
    default: Any = None

    def resolve(self, state: State) -> Any:
        return state.get(self.path, self.default)


class State:
    """A mutable key/value tree with change events and a one-way freeze.

    ``freeze()`` guards this object's own mutators. Containers handed out by
    ``get()`` are the live objects; use ``get_clone()`` for a detached snapshot.
    """

    def __init__(
        self,
        initial: Mapping[str, Any] | None = None,
        *,
        broadcaster: Broadcaster | None = None,
    ) -> None:
        self._defaults: dict[str, Any] = deep_clone(dict(initial or {}))
        self._store: dict[str, Any] = deep_clone(self._defaults)
        self._frozen = False
        self.events = EventBus(StateEventName, owner="state", broadcaster=broadcaster)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _guard(self, operation: str) -> None:
        if self._frozen:
            raise StateFrozenError(f"Cannot {operation}: state is frozen")

    def get(self, path: str | None = None, default: Any = None) -> Any:
        """Return the value at ``path``; the whole store for ``None``, ``""`` or ``"*"``."""

        if not path or path == "*":
            value = self._store
        else:
            value = _lookup(self._store, parse_path(path))
            if value is _MISSING:
                value = default
        self.events.emit(StateEventName.GET, {"path": path, "value": value}, source=self)
        return value

    def set(self, path: str, value: Any) -> None:
        """Set ``path`` to ``value``, creating missing intermediate containers."""

        self._guard("set")
        segments = parse_path(path)

        current: Any = self._store
        for raw, following in zip(segments, segments[1:]):
            segment = _coerce(current, raw)
            child = self._child(current, segment)
            if isinstance(child, tuple):
                raise InvalidStatePathError(f"Cannot assign into a tuple at {path!r}")
            if not isinstance(child, (dict, list)):
                child = [] if isinstance(following, int) else {}
                self._assign(current, segment, child)
            current = child

        self._assign(current, _coerce(current, segments[-1]), value)
        self.events.emit(StateEventName.SET, {"path": path, "value": value}, source=self)

    @staticmethod
    def _child(container: Any, segment: Segment) -> Any:
        if isinstance(container, dict):
            return container.get(segment)
        if isinstance(segment, int) and -len(container) <= segment < len(container):
            return container[segment]
        return None

    @staticmethod
    def _assign(container: Any, segment: Segment, value: Any) -> None:
        if isinstance(container, dict):
            container[segment] = value
            return
        if not isinstance(container, list):
            raise InvalidStatePathError(f"Cannot assign into a {type(container).__name__}")
        if not isinstance(segment, int):
            raise InvalidStatePathError(f"Cannot use key {segment!r} on a list")
        if segment < 0:
            if segment < -len(container):
                raise InvalidStatePathError(f"List index {segment} out of range")
            container[segment] = value
            return
        if segment >= len(container):
            container.extend([None] * (segment + 1 - len(container)))
        container[segment] = value

    def merge(self, values: Mapping[str, Any]) -> None:
        """Shallow-merge ``values`` into the top level of the store."""

        self._guard("merge")
        if not isinstance(values, Mapping):
            raise TypeError(f"merge() expects a mapping, got {type(values).__name__}")
        self._store.update(values)
        self.events.emit(StateEventName.MERGE, {"keys": list(values)}, source=self)

    def delete(self, path: str) -> None:
        """Delete ``path``. Deleting a missing path is a no-op."""

        self._guard("delete")
        segments = parse_path(path)
        parent = _lookup(self._store, segments[:-1]) if len(segments) > 1 else self._store
        last = _coerce(parent, segments[-1])

        deleted = False
        if isinstance(parent, dict) and last in parent:
            del parent[last]
            deleted = True
        elif isinstance(parent, list) and isinstance(last, int) and -len(parent) <= last < len(parent):
            del parent[last]
            deleted = True

        self.events.emit(StateEventName.DELETE, {"path": path, "deleted": deleted}, source=self)

    def each(self, path: str | None, fn: Callable[[Any, Any], Any]) -> None:
        """Call ``fn(value, key)`` for each entry of the container at ``path``.

        Dicts yield their keys, lists and tuples their indices. A missing path
        visits nothing.
        """

        target = self._store if not path or path == "*" else _lookup(self._store, parse_path(path))
        if target is _MISSING or target is None:
            entries: list[tuple[Any, Any]] = []
        elif isinstance(target, Mapping):
            entries = list(target.items())
        elif isinstance(target, (list, tuple)):
            entries = list(enumerate(target))
        else:
            raise TypeError(f"State value at {path!r} is not a container")

        for key, value in entries:
            fn(value, key)
        self.events.emit(StateEventName.EACH, {"path": path, "count": len(entries)}, source=self)

    def freeze(self) -> None:
        """Reject every further mutation until ``reset()``."""

        self._frozen = True
        self.events.emit(StateEventName.FREEZE, {}, source=self)

    def reset(self) -> None:
        """Restore the construction-time defaults and lift any freeze."""

        self._store = deep_clone(self._defaults)
        self._frozen = False
        self.events.emit(StateEventName.RESET, {}, source=self)

    def get_clone(self) -> dict[str, Any]:
        return deep_clone(self._store)

    def __repr__(self) -> str:
        return f"State(keys={list(self._store)!r}, frozen={self._frozen})"
