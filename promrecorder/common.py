"""Metric-name matchers, build errors and exposition-format sanitizers."""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass


class MatchKind(enum.IntEnum):
    """How a :class:`Matcher` compares its pattern with a metric name.

    The numeric order is the precedence order: full beats prefix beats suffix.
    """

    FULL = 0
    PREFIX = 1
    SUFFIX = 2


@dataclass(frozen=True, order=True)
class Matcher:
    """Matches a metric name in full, by prefix or by suffix."""

    kind: MatchKind
    pattern: str

    def matches(self, key: str) -> bool:
        """Return whether ``key`` matches this matcher."""
        if self.kind is MatchKind.PREFIX:
            return key.startswith(self.pattern)
        if self.kind is MatchKind.SUFFIX:
            return key.endswith(self.pattern)
        return key == self.pattern

    def sanitized(self) -> Matcher:
        """Return a copy whose pattern is a valid metric name."""
        return Matcher(self.kind, sanitize_metric_name(self.pattern))


class BuildError(Exception):
    """Raised when building or installing a recorder/exporter fails."""


class EmptyBucketsOrQuantilesError(BuildError, ValueError):
    """Bucket bounds or quantiles were empty."""

    def __init__(self) -> None:
        super().__init__("bucket bounds/quantiles cannot be empty")


class _DetailedBuildError(BuildError):
    _template = "{}"

    def __init__(self, reason: object) -> None:
        self.reason = str(reason)
        super().__init__(self._template.format(self.reason))


class InvalidAllowlistAddressError(_DetailedBuildError, ValueError):
    """The address could not be parsed as an IP address or subnet."""

    _template = "failed to parse address as a valid IP address/subnet: {}"


class InvalidPushGatewayEndpointError(_DetailedBuildError, ValueError):
    """The push gateway endpoint is not a valid URI."""

    _template = "push gateway endpoint is not valid: {}"


class FailedToCreateHTTPListenerError(_DetailedBuildError):
    """The HTTP listener could not be created."""

    _template = "failed to create HTTP listener: {}"


class FailedToSetGlobalRecorderError(_DetailedBuildError):
    """Installing the global recorder did not succeed."""

    _template = "failed to install exporter as global recorder: {}"


def _is_ascii_alpha(c: str) -> bool:
    return c.isascii() and c.isalpha()


def _is_ascii_alnum(c: str) -> bool:
    return c.isascii() and c.isalnum()


def _invalid_metric_name_start_character(c: str) -> bool:
    return not (_is_ascii_alpha(c) or c in "_:")


def _invalid_metric_name_character(c: str) -> bool:
    return not (_is_ascii_alnum(c) or c in "_:")


def _invalid_label_key_start_character(c: str) -> bool:
    return not (_is_ascii_alpha(c) or c == "_")


def _invalid_label_key_character(c: str) -> bool:
    return not (_is_ascii_alnum(c) or c == "_")


def _replace_first(text: str, invalid: Callable[[str], bool]) -> str:
    position = next((i for i, c in enumerate(text) if invalid(c)), None)
    if position is None:
        return text
    return f"{text[:position]}_{text[position + 1:]}"


def _replace_all(text: str, invalid: Callable[[str], bool]) -> str:
    return "".join("_" if invalid(c) else c for c in text)


def sanitize_metric_name(name: str) -> str:
    """Make ``name`` a valid metric name by replacing invalid characters with ``_``."""
    name = _replace_first(name, _invalid_metric_name_start_character)
    return _replace_all(name, _invalid_metric_name_character)


def sanitize_label_key(key: str) -> str:
    """Make ``key`` a valid label key; a leading ``__`` becomes ``___``."""
    key = _replace_first(key, _invalid_label_key_start_character)
    key = _replace_all(key, _invalid_label_key_character)
    return key.replace("__", "___", 1)


def sanitize_label_value(value: str) -> str:
    """Escape backslashes, double quotes and newlines in a label value."""
    return _escape(value, is_description=False)


def sanitize_description(value: str) -> str:
    """Escape backslashes and newlines in a HELP description."""
    return _escape(value, is_description=True)


def _escape(value: str, is_description: bool) -> str:
    parts: list[str] = []
    previous_backslash = False
    for c in value:
        if c == "\n":
            parts.append("\\n")
        elif c == '"' and not is_description:
            previous_backslash = False
            parts.append('\\"')
        elif c == "\\":
            if previous_backslash:
                parts.append("\\\\")
            previous_backslash = not previous_backslash
        else:
            if previous_backslash:
                previous_backslash = False
                parts.append("\\\\")
            parts.append(c)
    if previous_backslash:
        parts.append("\\\\")
    return "".join(parts)