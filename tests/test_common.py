import pytest

from promrecorder.common import (
    BuildError,
    EmptyBucketsOrQuantilesError,
    FailedToCreateHTTPListenerError,
    FailedToSetGlobalRecorderError,
    InvalidAllowlistAddressError,
    InvalidPushGatewayEndpointError,
    MatchKind,
    Matcher,
    sanitize_description,
    sanitize_label_key,
    sanitize_label_value,
    sanitize_metric_name,
)

SAMPLE_INPUTS = [
    "",
    "*",
    '"',
    "\\",
    "\n",
    ":",
    "__",
    "___x",
    "1foobar",
    "foo bar",
    'a"b\\c\nd',
    '\n"\\hello world\\"\n',
    "øhno",
    "yee_haw:lets go",
    "\\\\\\",
    '"\\n"',
    "9:9:9",
]


@pytest.mark.parametrize(
    "value, expected",
    [("*", "_"), ('"', "_"), ("foo_bar", "foo_bar"), ("1foobar", "_foobar")],
)
def test_sanitize_metric_name_known_cases(value, expected):
    assert sanitize_metric_name(value) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("*", "_"),
        ('"', "_"),
        (":", "_"),
        ("foo_bar", "foo_bar"),
        ("1foobar", "_foobar"),
        ("__foobar", "___foobar"),
    ],
)
def test_sanitize_label_key_known_cases(value, expected):
    assert sanitize_label_key(value) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("*", "*"),
        ('"', '\\"'),
        ("\\", "\\\\"),
        ("\\\\", "\\\\"),
        ("\n", "\\n"),
        ("foo_bar", "foo_bar"),
        ("1foobar", "1foobar"),
    ],
)
def test_sanitize_label_value_known_cases(value, expected):
    assert sanitize_label_value(value) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("*", "*"),
        ('"', '"'),
        ("\\", "\\\\"),
        ("\\\\", "\\\\"),
        ("\n", "\\n"),
        ("foo_bar", "foo_bar"),
        ("1foobar", "1foobar"),
    ],
)
def test_sanitize_description_known_cases(value, expected):
    assert sanitize_description(value) == expected


def test_sanitized_render_pieces():
    assert sanitize_metric_name("yee_haw:lets go") == "yee_haw:lets_go"
    assert sanitize_label_key("foo:") == "foo_"
    assert sanitize_label_key("øhno") == "_hno"
    assert sanitize_label_value('"yeet\nies\\"') == '\\"yeet\\nies\\"'
    assert sanitize_description('"Simplë stuff.\nRëally."') == '"Simplë stuff.\\nRëally."'


def test_metric_name_first_invalid_start_character_anywhere_is_replaced():
    assert sanitize_metric_name("foo1bar") == "foo_bar"


@pytest.mark.parametrize("value", SAMPLE_INPUTS)
def test_sanitize_metric_name_invariants(value):
    result = sanitize_metric_name(value)
    assert len(result) == len(value)
    if result:
        assert result[0].isascii() and (result[0].isalpha() or result[0] in "_:")
    assert all(c.isascii() and (c.isalnum() or c in "_:") for c in result)


@pytest.mark.parametrize("value", SAMPLE_INPUTS)
def test_sanitize_label_key_invariants(value):
    result = sanitize_label_key(value)
    if result:
        assert result[0].isascii() and (result[0].isalpha() or result[0] == "_")
    assert all(c.isascii() and (c.isalnum() or c == "_") for c in result)
    if len(result) == 2:
        assert result != "__"
    if len(result) == 3 and result.startswith("__"):
        assert result[2] == "_"


def _has_unescaped(text, check_quotes):
    chars = text.replace("\\\\", "")
    if check_quotes and chars.startswith('"'):
        return True
    for first, second in zip(chars, chars[1:]):
        if check_quotes and second == '"' and first != "\\":
            return True
        if first == "\\" and second != "n" and not (check_quotes and second == '"'):
            return True
    return False


@pytest.mark.parametrize("value", SAMPLE_INPUTS)
def test_sanitize_label_value_invariants(value):
    result = sanitize_label_value(value)
    assert "\n" not in result
    assert not _has_unescaped(result, check_quotes=True)


@pytest.mark.parametrize("value", SAMPLE_INPUTS)
def test_sanitize_description_invariants(value):
    result = sanitize_description(value)
    assert "\n" not in result
    assert not _has_unescaped(result, check_quotes=False)


def test_matcher_matches():
    assert Matcher(MatchKind.FULL, "abc").matches("abc")
    assert not Matcher(MatchKind.FULL, "abc").matches("abcd")
    assert Matcher(MatchKind.PREFIX, "ab").matches("abcd")
    assert not Matcher(MatchKind.PREFIX, "cd").matches("abcd")
    assert Matcher(MatchKind.SUFFIX, "cd").matches("abcd")
    assert not Matcher(MatchKind.SUFFIX, "ab").matches("abcd")


def test_matcher_sanitized():
    matcher = Matcher(MatchKind.FULL, "metrics.testing foo").sanitized()
    assert matcher == Matcher(MatchKind.FULL, "metrics_testing_foo")
    assert Matcher(MatchKind.PREFIX, "metrics.testing").sanitized().pattern == "metrics_testing"


def test_matcher_ordering_gives_full_precedence():
    matchers = [
        Matcher(MatchKind.SUFFIX, "foo"),
        Matcher(MatchKind.PREFIX, "metrics"),
        Matcher(MatchKind.FULL, "metrics_foo"),
    ]
    assert [m.kind for m in sorted(matchers)] == [
        MatchKind.FULL,
        MatchKind.PREFIX,
        MatchKind.SUFFIX,
    ]


def test_matcher_is_hashable():
    overrides = {Matcher(MatchKind.FULL, "a"): [1.0]}
    assert overrides[Matcher(MatchKind.FULL, "a")] == [1.0]


def test_build_error_messages():
    assert str(EmptyBucketsOrQuantilesError()) == "bucket bounds/quantiles cannot be empty"
    assert str(FailedToCreateHTTPListenerError("boom")) == "failed to create HTTP listener: boom"
    assert str(InvalidPushGatewayEndpointError("bad")) == "push gateway endpoint is not valid: bad"
    assert str(InvalidAllowlistAddressError("x")).startswith("failed to parse address")
    assert str(FailedToSetGlobalRecorderError("taken")).endswith(": taken")


def test_build_errors_share_base():
    allowlist_error = InvalidAllowlistAddressError("nope")
    assert isinstance(allowlist_error, BuildError)
    assert str(allowlist_error) == "failed to parse address as a valid IP address/subnet: nope"

    empty_error = EmptyBucketsOrQuantilesError()
    assert isinstance(empty_error, ValueError)
    assert isinstance(empty_error, BuildError)
    assert str(empty_error) == "bucket bounds/quantiles cannot be empty"