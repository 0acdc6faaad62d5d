"""Cycle-safe deep cloning for state snapshots."""

from __future__ import annotations

import copy
import re
import types
import weakref
from datetime import date, datetime, time, timedelta
from typing import Any

_IMMUTABLE_SCALARS = (str, bytes, int, float, complex, bool, type(None), range)
_BY_REFERENCE = (
    types.FunctionType,
    types.BuiltinFunctionType,
    types.MethodType,
    types.ModuleType,
    type,
    weakref.ref,
    weakref.WeakKeyDictionary,
    weakref.WeakValueDictionary,
    weakref.WeakSet,
)


def deep_clone(value: Any, memo: dict[int, Any] | None = None) -> Any:
    """Return a deep copy of ``value``.

    Behaviour:
    - scalars, ``None`` and dates/times are returned as-is (they are immutable)
    - dicts, lists, sets and tuples are copied recursively
    - compiled regular expressions and bytearrays are copied
    - functions, classes, modules and weak-reference structures are returned
      by reference
    - cycles are preserved through an identity-keyed memo

    Objects of any other type are returned by reference too; the store is
    expected to hold plain data plus opaque handles.
    """

    if isinstance(value, _IMMUTABLE_SCALARS) or isinstance(
        value, (datetime, date, time, timedelta)
    ):
        return value
    if isinstance(value, _BY_REFERENCE) or callable(value):
        return value

    if memo is None:
        memo = {}
    key = id(value)
    if key in memo:
        return memo[key]

    if isinstance(value, re.Pattern):
        clone: Any = re.compile(value.pattern, value.flags)
        memo[key] = clone
        return clone

    if isinstance(value, bytearray):
        clone = bytearray(value)
        memo[key] = clone
        return clone

    if isinstance(value, dict):
        if type(value) is dict:
            clone = {}
        else:
            # Keeps subclass configuration such as a defaultdict factory.
            clone = copy.copy(value)
            clone.clear()
        memo[key] = clone
        for k, v in value.items():
            clone[deep_clone(k, memo)] = deep_clone(v, memo)
        return clone

    if isinstance(value, list):
        clone = []
        memo[key] = clone
        clone.extend(deep_clone(item, memo) for item in value)
        return clone

    if isinstance(value, set):
        clone = set()
        memo[key] = clone
        clone.update(deep_clone(item, memo) for item in value)
        return clone

    if isinstance(value, frozenset):
        clone = frozenset(deep_clone(item, memo) for item in value)
        memo[key] = clone
        return clone

    if isinstance(value, tuple):
        # A tuple can only take part in a cycle through a mutable member, which is
        # memoised before recursion, so building it after the fact is safe.
        items = [deep_clone(item, memo) for item in value]
        clone = type(value)(*items) if hasattr(value, "_fields") else tuple(items)
        memo[key] = clone
        return clone

    return value
