"""Condition evaluation shared by every branching, looping and flow-control step.

A condition is the triple ``(subject, operator, value)``. Operands may be
late-bound (a :class:`~microflow.core.state.StateRef` or a function of the
execution context); they are resolved right before evaluation, and the
comparison itself is pure and synchronous.
"""

from __future__ import annotations

import inspect
import operator as op
import re
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, model_validator
from pydantic import field_validator

from microflow.core.events import Broadcaster
from microflow.core.executable import ExecutionContext
from microflow.core.state import StateRef
from microflow.errors import InvalidComparatorError, InvalidConditionError
from microflow.steps.step import Step

_SYMBOLS: dict[str, str] = {
    "==": "equals",
    "===": "strict_equals",
    "!=": "not_equals",
    "!==": "strict_not_equals",
    ">": "greater_than",
    "<": "less_than",
    ">=": "greater_than_or_equal",
    "<=": "less_than_or_equal",
    "=~": "matches",
    "!~": "not_matches",
}


class Comparator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    STRICT_EQUALS = "strict_equals"
    STRICT_NOT_EQUALS = "strict_not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IN = "in"
    NOT_IN = "not_in"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    MATCHES = "matches"
    NOT_MATCHES = "not_matches"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    IS_TYPE = "is_type"
    IS_NOT_TYPE = "is_not_type"

    @classmethod
    def _missing_(cls, value: object) -> Comparator | None:
        if not isinstance(value, str):
            return None
        key = value.strip()
        key = _SYMBOLS.get(key, key.lower())
        for member in cls:
            if member.value == key:
                return member
        return None


UNARY_COMPARATORS: frozenset[Comparator] = frozenset(
    {Comparator.IS_EMPTY, Comparator.IS_NOT_EMPTY, Comparator.IS_NULL, Comparator.IS_NOT_NULL}
)


def _strict_equals(subject: Any, value: Any) -> bool:
    return type(subject) is type(value) and subject == value


def _is_empty(subject: Any, _value: Any = None) -> bool:
    if subject is None:
        return True
    try:
        return len(subject) == 0
    except TypeError:
        return False


def _matches(subject: Any, value: Any) -> bool:
    if subject is None:
        return False
    pattern = value if isinstance(value, re.Pattern) else re.compile(str(value))
    return pattern.search(str(subject)) is not None


def _starts_with(subject: Any, value: Any) -> bool:
    if isinstance(subject, (str, bytes)):
        return subject.startswith(value)
    return bool(subject) and subject[0] == value


def _ends_with(subject: Any, value: Any) -> bool:
    if isinstance(subject, (str, bytes)):
        return subject.endswith(value)
    return bool(subject) and subject[-1] == value


def _is_type(subject: Any, value: Any) -> bool:
    if isinstance(value, str):
        return any(cls.__name__ == value for cls in type(subject).__mro__)
    return isinstance(subject, value)


_EVALUATORS: dict[Comparator, Callable[[Any, Any], bool]] = {
    Comparator.EQUALS: op.eq,
    Comparator.NOT_EQUALS: op.ne,
    Comparator.STRICT_EQUALS: _strict_equals,
    Comparator.STRICT_NOT_EQUALS: lambda s, v: not _strict_equals(s, v),
    Comparator.GREATER_THAN: op.gt,
    Comparator.LESS_THAN: op.lt,
    Comparator.GREATER_THAN_OR_EQUAL: op.ge,
    Comparator.LESS_THAN_OR_EQUAL: op.le,
    Comparator.CONTAINS: lambda s, v: s is not None and v in s,
    Comparator.NOT_CONTAINS: lambda s, v: s is None or v not in s,
    Comparator.IN: lambda s, v: s in v,
    Comparator.NOT_IN: lambda s, v: s not in v,
    Comparator.IS_EMPTY: _is_empty,
    Comparator.IS_NOT_EMPTY: lambda s, v: not _is_empty(s),
    Comparator.MATCHES: _matches,
    Comparator.NOT_MATCHES: lambda s, v: not _matches(s, v),
    Comparator.STARTS_WITH: _starts_with,
    Comparator.ENDS_WITH: _ends_with,
    Comparator.IS_NULL: lambda s, v: s is None,
    Comparator.IS_NOT_NULL: lambda s, v: s is not None,
    Comparator.IS_TYPE: _is_type,
    Comparator.IS_NOT_TYPE: lambda s, v: not _is_type(s, v),
}


def parse_operator(operator: Any) -> Comparator | Callable[[Any, Any], Any]:
    """Return a :class:`Comparator` or a predicate ``(subject, value) -> bool``.

    Raises:
        InvalidComparatorError: If ``operator`` is neither.
    """

    if isinstance(operator, Comparator):
        return operator
    if isinstance(operator, str):
        try:
            return Comparator(operator)
        except ValueError:
            raise InvalidComparatorError(f"Unknown operator: {operator!r}") from None
    if callable(operator):
        return operator
    raise InvalidComparatorError(f"Unknown operator: {operator!r}")


def evaluate(subject: Any, operator: Any, value: Any = None) -> bool:
    """Evaluate an already-resolved condition."""

    parsed = parse_operator(operator)
    if isinstance(parsed, Comparator):
        return bool(_EVALUATORS[parsed](subject, value))
    return bool(parsed(subject, value))


async def resolve_operand(operand: Any, context: ExecutionContext) -> Any:
    """Resolve a late-bound operand against the running context.

    Plain functions and methods are called (with the context when they take an
    argument) and awaited if needed. Classes are left alone so that type checks
    can use them as values.
    """

    if isinstance(operand, StateRef):
        return operand.resolve(context.state)
    if inspect.isfunction(operand) or inspect.ismethod(operand):
        takes_args = bool(inspect.signature(operand).parameters)
        result = operand(context) if takes_args else operand()
        if inspect.isawaitable(result):
            result = await result
        return result
    return operand


class Condition(BaseModel):
    """A validated ``(subject, operator, value)`` triple."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    subject: Any = None
    operator: Any
    value: Any = None

    @field_validator("operator", mode="before")
    @classmethod
    def _known_operator(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("operator is required")
        return parse_operator(value)

    @model_validator(mode="after")
    def _operands_present(self, info: ValidationInfo) -> Condition:
        require_subject = (info.context or {}).get("require_subject", True)
        if require_subject and "subject" not in self.model_fields_set:
            raise ValueError("subject is required")
        if (
            isinstance(self.operator, Comparator)
            and self.operator not in UNARY_COMPARATORS
            and "value" not in self.model_fields_set
        ):
            raise ValueError(f"value is required for operator {self.operator.value!r}")
        return self

    @property
    def has_subject(self) -> bool:
        return "subject" in self.model_fields_set

    @classmethod
    def parse(cls, definition: Any, *, require_subject: bool = True) -> Condition:
        """Build a condition from a Condition, a mapping, or a 3-tuple.

        Raises:
            InvalidComparatorError: If the operator is not supported.
            InvalidConditionError: If the condition is otherwise incomplete.
        """

        if isinstance(definition, Condition):
            if require_subject and not definition.has_subject:
                raise InvalidConditionError("Invalid condition: subject is required")
            return definition
        if isinstance(definition, tuple) and len(definition) == 3:
            definition = dict(zip(("subject", "operator", "value"), definition))
        if not isinstance(definition, Mapping):
            raise InvalidConditionError(f"Invalid condition: {definition!r}")

        operator = definition.get("operator")
        if operator is not None:
            parse_operator(operator)

        try:
            return cls.model_validate(dict(definition), context={"require_subject": require_subject})
        except ValidationError as e:
            details = "; ".join(err["msg"] for err in e.errors())
            raise InvalidConditionError(f"Invalid condition: {details}") from e


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


def condition_definition(
    condition: Any, subject: Any, operator: Any, value: Any
) -> Any:
    """Merge the ``condition=`` and ``subject=/operator=/value=`` spellings."""

    if condition is not None:
        return condition
    if operator is None and subject is UNSET and value is UNSET:
        return None
    definition: dict[str, Any] = {"operator": operator}
    if subject is not UNSET:
        definition["subject"] = subject
    if value is not UNSET:
        definition["value"] = value
    return definition


class LogicStep(Step):
    """A step that carries a condition."""

    step_type = "logic"

    def __init__(
        self,
        executable: Any = None,
        *,
        condition: Any = None,
        subject: Any = UNSET,
        operator: Any = None,
        value: Any = UNSET,
        name: str | None = None,
        log_suppress: bool | None = None,
        broadcaster: Broadcaster | None = None,
        require_subject: bool = True,
    ) -> None:
        super().__init__(executable, name=name, log_suppress=log_suppress, broadcaster=broadcaster)
        definition = condition_definition(condition, subject, operator, value)
        self.condition: Condition | None = (
            Condition.parse(definition, require_subject=require_subject) if definition is not None else None
        )

    def set_condition(self, condition: Any) -> None:
        self.condition = Condition.parse(condition)

    def condition_is_valid(self) -> bool:
        return self.condition is not None

    async def check_condition(self, context: ExecutionContext, *, subject: Any = UNSET) -> bool:
        """Resolve the operands and evaluate the condition.

        Raises:
            InvalidConditionError: If no condition is configured.
        """

        if self.condition is None:
            raise InvalidConditionError(f"{self.label} has no condition configured")

        raw_subject = self.condition.subject if subject is UNSET else subject
        resolved_subject = await resolve_operand(raw_subject, context)
        resolved_value = await resolve_operand(self.condition.value, context)
        return evaluate(resolved_subject, self.condition.operator, resolved_value)
