import logging

import pytest

from promrecorder.benchmark import (
    BenchmarkingRecorder,
    Controller,
    LatencyRecorder,
    main,
    nanos_to_readable,
    parse_args,
)
from promrecorder.metrics import Key, clear_recorder, try_recorder


@pytest.fixture(autouse=True)
def _no_global_recorder():
    clear_recorder()
    yield
    clear_recorder()


@pytest.mark.parametrize(
    ("nanos", "expected"),
    [
        (0, "0ns"),
        (500, "500ns"),
        (2_000, "2μs"),
        (3_000_000_000, "3.000s"),
    ],
)
def test_nanos_to_readable_units(nanos, expected):
    assert nanos_to_readable(nanos) == expected


def test_nanos_to_readable_millisecond_range_has_two_decimals():
    text = nanos_to_readable(1_500_000)
    assert text.endswith("ms")
    assert text == "1.50ms"


def test_nanos_to_readable_boundaries_change_unit():
    assert nanos_to_readable(999).endswith("ns")
    assert nanos_to_readable(1_000).endswith("μs")
    assert nanos_to_readable(1_999_999_999).endswith("ms")
    assert nanos_to_readable(2_000_000_000).endswith("s")
    assert not nanos_to_readable(2_000_000_000).endswith("ms")


def test_latency_recorder_percentiles():
    latency = LatencyRecorder()
    for value in range(100, 0, -1):
        latency.record(value)
    assert len(latency) == 100
    assert latency.min == 1
    assert latency.max == 100
    assert latency.value_at_percentile(50.0) == 50
    assert latency.value_at_percentile(100.0) == 100
    assert latency.value_at_percentile(0.0) == 1


def test_latency_recorder_percentiles_are_monotonic():
    latency = LatencyRecorder()
    for value in (7, 3, 900, 42, 42, 15, 1_000_000):
        latency.record(value)
    results = [latency.value_at_percentile(p) for p in (0, 10, 50, 90, 99, 99.9, 100)]
    assert results == sorted(results)
    assert results[-1] == latency.max


def test_latency_recorder_empty():
    latency = LatencyRecorder()
    assert latency.value_at_percentile(99.0) == 0
    assert latency.min == 0
    assert latency.max == 0


def test_recorder_returns_same_handle_for_same_key():
    recorder = BenchmarkingRecorder()
    key = Key.from_name("ok")
    recorder.register_counter(key).increment(1)
    recorder.register_counter(key).increment(2)
    assert recorder.register_counter(key).value == 3
    recorder.register_gauge(key).set(7.0)
    assert recorder.register_gauge(key).value == 7.0
    recorder.register_histogram(key).record(1.0)
    assert recorder.register_histogram(key).drain() == [1.0]


def test_recorder_handles_record_values():
    recorder = BenchmarkingRecorder()
    counter = recorder.register_counter(Key.from_name("ok"))
    counter.increment(1)
    counter.increment(1)
    gauge = recorder.register_gauge(Key.from_name("total"))
    gauge.set(5.0)
    assert recorder.register_counter(Key.from_name("ok")).value == 2
    assert recorder.register_gauge(Key.from_name("total")).value == 5.0


def test_controller_upkeep_clears_histograms():
    recorder = BenchmarkingRecorder()
    controller = recorder.controller()
    assert isinstance(controller, Controller)
    first = recorder.register_histogram(Key.from_name("ok"))
    second = recorder.register_histogram(Key.from_parts("ok", [("a", "b")]))
    first.record(1.0)
    second.record(2.0)
    second.record(3.0)
    controller.upkeep()
    assert first.drain() == []
    assert second.drain() == []


def test_parse_args_defaults():
    options = parse_args([])
    assert options.duration == 60
    assert options.producers == 1
    assert options.mode == "slow"
    assert options.show_help is False


def test_parse_args_values():
    options = parse_args(["-d", "5", "--producers", "3", "--mode", "FAST"])
    assert options.duration == 5
    assert options.producers == 3
    assert options.mode == "fast"


def test_parse_args_unknown_mode_is_slow():
    assert parse_args(["-m", "quick"]).mode == "slow"


def test_parse_args_help():
    assert parse_args(["-h"]).show_help is True
    assert parse_args(["--help"]).show_help is True


@pytest.mark.parametrize(
    "argv",
    [["--bogus"], ["-d", "abc"], ["-p", "-1"], ["--duration"]],
)
def test_parse_args_errors(argv):
    with pytest.raises(ValueError):
        parse_args(argv)


def test_main_help_prints_usage(capsys):
    main(["--help"])
    out = capsys.readouterr().out
    assert "Usage:" in out
    assert "--duration" in out
    assert "number of producers" in out
    assert try_recorder() is None


def test_main_bad_args_logs_error(caplog):
    caplog.set_level(logging.INFO, logger="promrecorder.benchmark")
    main(["--bogus"])
    assert "Failed to parse command line args" in caplog.text
    assert try_recorder() is None


@pytest.mark.parametrize("mode", ["fast", "slow"])
def test_main_zero_duration_run(caplog, mode):
    caplog.set_level(logging.INFO, logger="promrecorder.benchmark")
    main(["-d", "0", "-p", "2", "-m", mode])
    assert "ingested samples total: 0" in caplog.text
    assert caplog.text.count("sender latency:") == 2
    assert "recorder upkeep:" in caplog.text
    assert try_recorder() is None


def test_main_one_second_run_reports_rate(caplog):
    caplog.set_level(logging.INFO, logger="promrecorder.benchmark")
    main(["-d", "1", "-m", "fast"])
    assert caplog.text.count("sample ingest rate:") == 1
    assert caplog.text.count("sender latency:") == 1
    assert try_recorder() is None