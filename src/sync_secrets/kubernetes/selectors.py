"""Kubernetes label selector parsing and matching.

Supports the equality-based and set-based grammar accepted by the API server:

    key=value, key==value, key!=value
    key in (a, b), key notin (a, b)
    key, !key
    key>1, key<10

Requirements are comma separated and all of them must match. An empty
selector matches everything.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum


MAX_NAME_LENGTH = 63
MAX_PREFIX_LENGTH = 253

_NAME_RE = re.compile(r"^([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]$")
_DNS_SUBDOMAIN_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")
_INTEGER_RE = re.compile(r"^[-+]?[0-9]+$")
_TOKEN_RE = re.compile(r"\s*(?:(==|!=|=|!|<|>|\(|\)|,)|([^\s,()=!<>]+))")


class Operator(str, Enum):
    """Label selector requirement operator."""

    EQUALS = "="
    NOT_EQUALS = "!="
    IN = "in"
    NOT_IN = "notin"
    EXISTS = "exists"
    DOES_NOT_EXIST = "!"
    GREATER_THAN = ">"
    LESS_THAN = "<"


@dataclass(frozen=True)
class Requirement:
    """A single ``key <operator> values`` clause of a selector."""

    key: str
    operator: Operator
    values: tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        """Return True if ``labels`` satisfy this requirement."""
        present = self.key in labels
        match self.operator:
            case Operator.EQUALS | Operator.IN:
                return present and labels[self.key] in self.values
            case Operator.NOT_EQUALS | Operator.NOT_IN:
                return not present or labels[self.key] not in self.values
            case Operator.EXISTS:
                return present
            case Operator.DOES_NOT_EXIST:
                return not present
            case Operator.GREATER_THAN | Operator.LESS_THAN:
                if not present or not _INTEGER_RE.match(labels[self.key]):
                    return False
                actual, bound = int(labels[self.key]), int(self.values[0])
                if self.operator is Operator.GREATER_THAN:
                    return actual > bound
                return actual < bound

    def __str__(self) -> str:
        match self.operator:
            case Operator.EXISTS:
                return self.key
            case Operator.DOES_NOT_EXIST:
                return f"!{self.key}"
            case Operator.IN | Operator.NOT_IN:
                return f"{self.key} {self.operator.value} ({','.join(sorted(self.values))})"
            case _:
                return f"{self.key}{self.operator.value}{self.values[0]}"


@dataclass(frozen=True)
class LabelSelector:
    """A conjunction of label requirements."""

    requirements: tuple[Requirement, ...] = ()

    @property
    def empty(self) -> bool:
        """True if the selector matches every object."""
        return not self.requirements

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        """Return True if ``labels`` satisfy every requirement."""
        labels = labels or {}
        return all(requirement.matches(labels) for requirement in self.requirements)

    def __str__(self) -> str:
        return ",".join(str(requirement) for requirement in self.requirements)


def validate_label_key(key: str) -> None:
    """Validate a label key (``[prefix/]name``).

    Raises:
        ValueError: If the key is not a qualified name.
    """
    prefix, _, name = key.rpartition("/")
    if "/" in key and not prefix:
        raise ValueError(f"invalid label key '{key}': prefix part must be non-empty")
    if prefix and (len(prefix) > MAX_PREFIX_LENGTH or not _DNS_SUBDOMAIN_RE.match(prefix)):
        raise ValueError(f"invalid label key '{key}': prefix must be a DNS subdomain")
    if not name or len(name) > MAX_NAME_LENGTH or not _NAME_RE.match(name):
        raise ValueError(
            f"invalid label key '{key}': name part must consist of alphanumeric characters, "
            f"'-', '_' or '.', and be at most {MAX_NAME_LENGTH} characters"
        )


def validate_label_value(value: str) -> None:
    """Validate a label value (empty values are allowed).

    Raises:
        ValueError: If the value is not a valid label value.
    """
    if value and (len(value) > MAX_NAME_LENGTH or not _NAME_RE.match(value)):
        raise ValueError(
            f"invalid label value '{value}': must consist of alphanumeric characters, "
            f"'-', '_' or '.', and be at most {MAX_NAME_LENGTH} characters"
        )


def _tokenize(expression: str) -> Iterator[str]:
    position = 0
    stripped = expression.rstrip()
    while position < len(stripped):
        match = _TOKEN_RE.match(stripped, position)
        if match is None:
            raise ValueError(f"unable to parse selector at position {position}")
        yield match.group(1) or match.group(2)
        position = match.end()


class _Parser:
    """Recursive-descent parser over selector tokens."""

    _SYMBOLS = frozenset({"==", "!=", "=", "!", "<", ">", "(", ")", ","})

    def __init__(self, expression: str) -> None:
        self.expression = expression
        self.tokens = list(_tokenize(expression))
        self.position = 0

    def peek(self) -> str | None:
        if self.position < len(self.tokens):
            return self.tokens[self.position]
        return None

    def next(self) -> str | None:
        token = self.peek()
        self.position += 1
        return token

    def error(self, message: str) -> ValueError:
        return ValueError(f"unable to parse selector '{self.expression}': {message}")

    def identifier(self, what: str) -> str:
        token = self.next()
        if token is None or token in self._SYMBOLS:
            raise self.error(f"expected {what}, found {token!r}")
        return token

    def parse(self) -> LabelSelector:
        requirements: list[Requirement] = []
        if self.peek() is None:
            return LabelSelector()

        while True:
            requirements.append(self.requirement())
            token = self.next()
            if token is None:
                break
            if token != ",":
                raise self.error(f"expected ',' or end of selector, found {token!r}")
            if self.peek() is None:
                raise self.error("trailing ','")

        return LabelSelector(tuple(requirements))

    def requirement(self) -> Requirement:
        if self.peek() == "!":
            self.next()
            key = self.identifier("label key")
            validate_label_key(key)
            return Requirement(key, Operator.DOES_NOT_EXIST)

        key = self.identifier("label key")
        validate_label_key(key)

        token = self.peek()
        if token is None or token == ",":
            return Requirement(key, Operator.EXISTS)

        self.next()
        match token:
            case "=" | "==":
                return Requirement(key, Operator.EQUALS, (self.exact_value(),))
            case "!=":
                return Requirement(key, Operator.NOT_EQUALS, (self.exact_value(),))
            case "in":
                return Requirement(key, Operator.IN, self.value_set())
            case "notin":
                return Requirement(key, Operator.NOT_IN, self.value_set())
            case ">" | "<":
                value = self.identifier("integer value")
                if not _INTEGER_RE.match(value):
                    raise self.error(f"'{value}' is not an integer")
                operator = Operator.GREATER_THAN if token == ">" else Operator.LESS_THAN
                return Requirement(key, operator, (value,))
            case _:
                raise self.error(f"unknown operator {token!r}")

    def exact_value(self) -> str:
        token = self.peek()
        if token is None or token == ",":
            return ""
        value = self.identifier("label value")
        validate_label_value(value)
        return value

    def value_set(self) -> tuple[str, ...]:
        if self.next() != "(":
            raise self.error("expected '(' after set operator")

        values: list[str] = []
        expecting_value = True
        while True:
            token = self.next()
            if token is None:
                raise self.error("unterminated value set")
            if token == ")":
                if expecting_value and values:
                    values.append("")
                break
            if token == ",":
                if expecting_value:
                    values.append("")
                expecting_value = True
                continue
            if token in self._SYMBOLS or not expecting_value:
                raise self.error(f"unexpected {token!r} in value set")
            validate_label_value(token)
            values.append(token)
            expecting_value = False

        if not values:
            raise self.error("for 'in' and 'notin' operators, the value set can't be empty")
        return tuple(values)


def parse_selector(expression: str) -> LabelSelector:
    """Parse a label selector expression.

    Args:
        expression: Selector such as ``"env in (prod, staging),!legacy"``

    Returns:
        LabelSelector: Parsed selector (empty selector for blank input)

    Raises:
        ValueError: If the expression is not a valid selector.
    """
    return _Parser(expression).parse()


__all__ = [
    "LabelSelector",
    "Operator",
    "Requirement",
    "parse_selector",
    "validate_label_key",
    "validate_label_value",
]
