"""Smart-list rules: parse and evaluate flat AND/OR condition lists.

A rule set looks like::

    {
        "operator": "AND",
        "conditions": [
            {"field": "starred", "operator": "equals", "value": true},
            {"field": "tag", "operator": "contains", "value": "<tag-id>"},
        ],
    }

Evaluation is pure: given the same rules, the same contact snapshot and the
same resolver clock, :func:`evaluate` always returns the same answer.

Field values come from a :class:`FieldResolver`.  Each resolved value is either
a scalar (``str``/``float``/``bool``/``None``) or a ``frozenset`` for
membership-style dimensions (tags, groups, fact values, sources).  ``None`` and
an empty set both count as "empty".
"""

from __future__ import annotations

import enum
import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pkb.errors import ValidationError
from pkb.tools.contacts import ContactSnapshot

logger = logging.getLogger(__name__)

FACT_FIELD_PREFIX = "fact."


class Combinator(enum.StrEnum):
    AND = "AND"
    OR = "OR"


class ConditionOperator(enum.StrEnum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


_VALUELESS_OPERATORS = frozenset({ConditionOperator.IS_EMPTY, ConditionOperator.IS_NOT_EMPTY})


@dataclass(frozen=True)
class Condition:
    field: str
    operator: ConditionOperator
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"field": self.field, "operator": self.operator.value}
        if self.operator not in _VALUELESS_OPERATORS:
            data["value"] = self.value
        return data


@dataclass(frozen=True)
class SmartListRules:
    operator: Combinator
    conditions: tuple[Condition, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "operator": self.operator.value,
            "conditions": [c.to_dict() for c in self.conditions],
        }


class UnknownFieldError(LookupError):
    """Raised by a resolver for a field outside its registry."""


# ---------------------------------------------------------------------------
# Field resolution
# ---------------------------------------------------------------------------

Resolved = str | float | bool | frozenset | None


@dataclass(frozen=True)
class FieldSpec:
    """A registered field: how to read it and which operators make sense."""

    name: str
    resolve: Callable[[ContactSnapshot, datetime], Resolved]
    operators: frozenset[ConditionOperator]
    # When true a missing value compares as +infinity (e.g. "never contacted"
    # is older than any number of days).
    missing_is_infinite: bool = False
    # Set-valued free text (fact values): "contains" matches substrings.
    text_values: bool = False


_MEMBERSHIP_OPERATORS = frozenset(
    {
        ConditionOperator.EQUALS,
        ConditionOperator.NOT_EQUALS,
        ConditionOperator.CONTAINS,
        ConditionOperator.IS_EMPTY,
        ConditionOperator.IS_NOT_EMPTY,
    }
)
_NUMERIC_OPERATORS = frozenset(
    {
        ConditionOperator.EQUALS,
        ConditionOperator.NOT_EQUALS,
        ConditionOperator.GREATER_THAN,
        ConditionOperator.LESS_THAN,
        ConditionOperator.IS_EMPTY,
        ConditionOperator.IS_NOT_EMPTY,
    }
)
_BOOLEAN_OPERATORS = frozenset({ConditionOperator.EQUALS, ConditionOperator.NOT_EQUALS})


def _days_since_last_contact(contact: ContactSnapshot, now: datetime) -> float | None:
    if contact.last_contact_at is None:
        return None
    last = contact.last_contact_at
    if last.tzinfo is None:
        last = last.replace(tzinfo=UTC)
    return (now - last).total_seconds() / 86400.0


_BUILTIN_FIELDS: dict[str, FieldSpec] = {
    spec.name: spec
    for spec in (
        FieldSpec("tag", lambda c, _now: c.tag_ids, _MEMBERSHIP_OPERATORS),
        FieldSpec("group", lambda c, _now: c.group_ids, _MEMBERSHIP_OPERATORS),
        FieldSpec("starred", lambda c, _now: c.starred, _BOOLEAN_OPERATORS),
        FieldSpec("engagement_score", lambda c, _now: c.engagement_score, _NUMERIC_OPERATORS),
        FieldSpec(
            "manual_importance",
            lambda c, _now: None if c.manual_importance is None else float(c.manual_importance),
            _NUMERIC_OPERATORS,
        ),
        FieldSpec("display_name", lambda c, _now: c.display_name or None, _MEMBERSHIP_OPERATORS),
        FieldSpec(
            "last_contact_days",
            _days_since_last_contact,
            _NUMERIC_OPERATORS,
            missing_is_infinite=True,
        ),
        FieldSpec(
            "communication_source",
            lambda c, _now: c.communication_sources,
            _MEMBERSHIP_OPERATORS,
        ),
    )
}


class FieldResolver:
    """Resolves a field name against a contact snapshot.

    The registry is fixed at construction.  ``fact.<type>`` fields are resolved
    dynamically to the set of values of that fact type.
    """

    def __init__(
        self,
        *,
        now: datetime | None = None,
        fields: Mapping[str, FieldSpec] | None = None,
    ) -> None:
        self.now = now or datetime.now(UTC)
        self._fields = dict(_BUILTIN_FIELDS if fields is None else fields)

    @property
    def field_names(self) -> list[str]:
        return sorted(self._fields)

    def spec_for(self, field_name: str) -> FieldSpec:
        spec = self._fields.get(field_name)
        if spec is not None:
            return spec
        if field_name.startswith(FACT_FIELD_PREFIX) and len(field_name) > len(FACT_FIELD_PREFIX):
            fact_type = field_name[len(FACT_FIELD_PREFIX) :]
            return FieldSpec(
                field_name,
                lambda c, _now: frozenset(c.fact_values(fact_type)),
                _MEMBERSHIP_OPERATORS,
                text_values=True,
            )
        raise UnknownFieldError(field_name)

    def is_known(self, field_name: str) -> bool:
        try:
            self.spec_for(field_name)
        except UnknownFieldError:
            return False
        return True

    def resolve(self, field_name: str, contact: ContactSnapshot) -> Resolved:
        return self.spec_for(field_name).resolve(contact, self.now)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_rules(raw: Any, *, resolver: FieldResolver | None = None) -> SmartListRules:
    """Validate a raw rules payload and return a :class:`SmartListRules`.

    When *resolver* is given, fields it does not know and operators a field
    does not support are rejected as well.

    Raises:
        ValidationError: If the payload is malformed.
    """
    if isinstance(raw, SmartListRules):
        rules = raw
    else:
        if not isinstance(raw, Mapping):
            raise ValidationError("rules must be an object")
        try:
            combinator = Combinator(str(raw.get("operator", "")).upper())
        except ValueError:
            raise ValidationError("rules.operator must be 'AND' or 'OR'") from None

        raw_conditions = raw.get("conditions")
        if not isinstance(raw_conditions, list) or not raw_conditions:
            raise ValidationError("rules.conditions must be a non-empty list")

        conditions = tuple(
            _parse_condition(item, index) for index, item in enumerate(raw_conditions)
        )
        rules = SmartListRules(operator=combinator, conditions=conditions)

    if resolver is not None:
        for index, condition in enumerate(rules.conditions):
            try:
                spec = resolver.spec_for(condition.field)
            except UnknownFieldError:
                raise ValidationError(
                    f"conditions[{index}].field: unknown field {condition.field!r}"
                ) from None
            if condition.operator not in spec.operators:
                raise ValidationError(
                    f"conditions[{index}].operator: {condition.operator.value!r} "
                    f"is not supported for field {condition.field!r}"
                )
    return rules


def _parse_condition(raw: Any, index: int) -> Condition:
    if not isinstance(raw, Mapping):
        raise ValidationError(f"conditions[{index}] must be an object")
    field_name = raw.get("field")
    if not isinstance(field_name, str) or not field_name.strip():
        raise ValidationError(f"conditions[{index}].field must be a non-empty string")
    try:
        operator = ConditionOperator(raw.get("operator"))
    except ValueError:
        raise ValidationError(
            f"conditions[{index}].operator must be one of "
            f"{', '.join(op.value for op in ConditionOperator)}"
        ) from None
    value = raw.get("value")
    if operator not in _VALUELESS_OPERATORS and value is None:
        raise ValidationError(f"conditions[{index}].value is required for {operator.value}")
    return Condition(field=field_name.strip(), operator=operator, value=value)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _is_empty(value: Resolved) -> bool:
    if value is None:
        return True
    if isinstance(value, (frozenset, str)):
        return len(value) == 0
    return False


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    if isinstance(value, (int, float)):
        return bool(value)
    return None


def _scalar_equals(actual: Any, expected: Any) -> bool:
    if isinstance(actual, bool):
        return actual == _as_bool(expected)
    if isinstance(actual, float):
        number = _as_number(expected)
        return number is not None and actual == number
    return str(actual) == str(expected)


def _contains(actual: Any, expected: Any, *, substrings: bool = True) -> bool:
    if isinstance(actual, frozenset):
        needle = str(expected)
        if needle in actual:
            return True
        if not substrings:
            return False
        lowered = needle.lower()
        return any(lowered in str(item).lower() for item in actual)
    if isinstance(actual, str):
        return str(expected).lower() in actual.lower()
    return False


def _compare(actual: Resolved, expected: Any, spec: FieldSpec, greater: bool) -> bool:
    limit = _as_number(expected)
    if limit is None:
        return False
    if actual is None:
        if not spec.missing_is_infinite:
            return False
        number = math.inf
    elif isinstance(actual, frozenset):
        numbers = [n for n in (_as_number(item) for item in actual) if n is not None]
        return any((n > limit) if greater else (n < limit) for n in numbers)
    else:
        number = _as_number(actual)
        if number is None:
            return False
    return number > limit if greater else number < limit


def evaluate_condition(
    condition: Condition, contact: ContactSnapshot, resolver: FieldResolver
) -> bool:
    """Evaluate one condition; unknown fields fail closed (return False)."""
    try:
        spec = resolver.spec_for(condition.field)
    except UnknownFieldError:
        logger.warning("Unknown smart list field %r; condition treated as false", condition.field)
        return False

    actual = spec.resolve(contact, resolver.now)
    operator = condition.operator
    expected = condition.value

    if operator is ConditionOperator.IS_EMPTY:
        return _is_empty(actual)
    if operator is ConditionOperator.IS_NOT_EMPTY:
        return not _is_empty(actual)
    if operator is ConditionOperator.GREATER_THAN:
        return _compare(actual, expected, spec, greater=True)
    if operator is ConditionOperator.LESS_THAN:
        return _compare(actual, expected, spec, greater=False)

    if isinstance(actual, frozenset):
        if operator is ConditionOperator.EQUALS:
            return str(expected) in actual
        if operator is ConditionOperator.NOT_EQUALS:
            return str(expected) not in actual
        return _contains(actual, expected, substrings=spec.text_values)

    if operator is ConditionOperator.CONTAINS:
        return actual is not None and _contains(actual, expected)
    if actual is None:
        return operator is ConditionOperator.NOT_EQUALS
    matched = _scalar_equals(actual, expected)
    return matched if operator is ConditionOperator.EQUALS else not matched


def evaluate(
    rules: SmartListRules | Mapping[str, Any],
    contact: ContactSnapshot,
    resolver: FieldResolver | None = None,
) -> bool:
    """Return True when *contact* satisfies *rules*.

    AND requires every condition to hold, OR at least one.
    """
    parsed = parse_rules(rules)
    resolver = resolver or FieldResolver()
    results = (evaluate_condition(c, contact, resolver) for c in parsed.conditions)
    if parsed.operator is Combinator.OR:
        return any(results)
    return all(results)
