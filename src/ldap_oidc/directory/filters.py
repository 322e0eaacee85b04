"""LDAP search filter expressions.

Filters are built from nodes and rendered to RFC 4515 strings. Assertion values
are always escaped, so values coming from a login form or a configuration file
cannot change the structure of the filter.

    >>> str(And((Equality("objectClass", "person"), Equality("uid", "a*"))))
    '(&(objectClass=person)(uid=a\\\\2a))'
"""
import re
from dataclasses import dataclass
from typing import Any, Sequence, Tuple

from ldap3.utils.conv import escape_filter_chars

__all__ = [
    "And",
    "Equality",
    "Filter",
    "Not",
    "Or",
    "Presence",
    "account_filter",
    "parse_fragment",
    "parse_fragments",
]

_ATTRIBUTE = re.compile(r"^(?:[A-Za-z][A-Za-z0-9-]*|\d+(?:\.\d+)+)(?:;[A-Za-z0-9-]+)*$")


def _check_attribute(attribute: str) -> None:
    if not isinstance(attribute, str) or not _ATTRIBUTE.match(attribute):
        raise ValueError(f"invalid attribute description: {attribute!r}")


class Filter:
    def render(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.render()

    def __and__(self, other: "Filter") -> "And":
        return And((self, other))

    def __or__(self, other: "Filter") -> "Or":
        return Or((self, other))

    def __invert__(self) -> "Not":
        return Not(self)


@dataclass(frozen=True)
class Equality(Filter):
    attribute: str
    value: str

    def __post_init__(self) -> None:
        _check_attribute(self.attribute)
        if not isinstance(self.value, str):
            raise ValueError(f"assertion value for {self.attribute} must be a string")

    def render(self) -> str:
        return f"({self.attribute}={escape_filter_chars(self.value)})"


@dataclass(frozen=True)
class Presence(Filter):
    attribute: str

    def __post_init__(self) -> None:
        _check_attribute(self.attribute)

    def render(self) -> str:
        return f"({self.attribute}=*)"


@dataclass(frozen=True)
class And(Filter):
    filters: Tuple[Filter, ...]

    def __post_init__(self) -> None:
        if not self.filters:
            raise ValueError("'&' needs at least one operand")

    def render(self) -> str:
        return "(&" + "".join(f.render() for f in self.filters) + ")"


@dataclass(frozen=True)
class Or(Filter):
    filters: Tuple[Filter, ...]

    def __post_init__(self) -> None:
        if not self.filters:
            raise ValueError("'|' needs at least one operand")

    def render(self) -> str:
        return "(|" + "".join(f.render() for f in self.filters) + ")"


@dataclass(frozen=True)
class Not(Filter):
    filter: Filter

    def render(self) -> str:
        return f"(!{self.filter.render()})"


_OPERATORS = ("&", "|", "!")


def parse_fragment(fragment: Any) -> Filter:
    """Parse one configured filter fragment.

    A fragment is either an ``"attribute=value"`` string (optionally wrapped in
    parentheses; a value of ``*`` tests for presence) or a list. Lists headed by
    ``&``, ``|`` or ``!`` combine the remaining fragments; any other list is the
    conjunction of its items.
    """
    if isinstance(fragment, Filter):
        return fragment

    if isinstance(fragment, str):
        text = fragment.strip()
        if text.startswith("(") and text.endswith(")"):
            text = text[1:-1]
        attribute, sep, value = text.partition("=")
        if not sep:
            raise ValueError(f"filter fragment {fragment!r} is not of the form attribute=value")
        if value == "*":
            return Presence(attribute.strip())
        return Equality(attribute.strip(), value)

    if isinstance(fragment, (list, tuple)) and fragment:
        head, rest = fragment[0], fragment[1:]
        if head == "!":
            if len(rest) != 1:
                raise ValueError("'!' takes exactly one operand")
            return Not(parse_fragment(rest[0]))
        if head == "&":
            return And(tuple(parse_fragment(f) for f in rest))
        if head == "|":
            return Or(tuple(parse_fragment(f) for f in rest))
        if len(fragment) == 1:
            return parse_fragment(head)
        return And(tuple(parse_fragment(f) for f in fragment))

    raise ValueError(f"unsupported filter fragment: {fragment!r}")


def parse_fragments(value: Any) -> Tuple[Filter, ...]:
    """Parse the ``filter`` entry of an organization into a tuple of filters."""
    if value is None or (isinstance(value, (str, list, tuple)) and not value):
        return ()
    if isinstance(value, str):
        return (parse_fragment(value),)
    if isinstance(value, (list, tuple)):
        if value[0] in _OPERATORS:
            return (parse_fragment(value),)
        return tuple(parse_fragment(f) for f in value)
    raise ValueError(f"unsupported filter: {value!r}")


def account_filter(
    object_class: str, attribute: str, value: str, extra: Sequence[Filter] = ()
) -> And:
    """``(&(objectClass=<object_class>)(<attribute>=<value>)<extra>...)``"""
    return And((Equality("objectClass", object_class), Equality(attribute, value), *extra))
