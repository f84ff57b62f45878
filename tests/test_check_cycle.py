"""
Contract tests for the poll-compute-emit cycle
"""

import json

import pytest

from iostat_agent.check import EnumerationError, IOCheck, SnapshotQueryError, configure, run
from iostat_agent.collectors.base import CounterSnapshot
from iostat_agent.config import CheckConfig, ConfigError


class FakeSource:
    max_device_name_length = 3

    def __init__(self, drives, batches) -> None:
        self.drives = drives
        self.batches = list(batches)
        self.queries = 0
        self.fail_enumeration = False
        self.fail_query = False

    def list_fixed_drives(self):
        if self.fail_enumeration:
            raise OSError("drive strings unavailable")
        return list(self.drives)

    def query_counter_snapshots(self):
        if self.fail_query:
            raise RuntimeError("query failed")
        self.queries += 1
        return self.batches.pop(0)


class RecordingSink:
    def __init__(self) -> None:
        self.emitted = []
        self.commits = 0

    def emit(self, name, value, tags) -> None:
        self.emitted.append((name, value, list(tags)))

    def commit(self) -> None:
        self.commits += 1


def _snap(device_id, ticks, write_bytes=0, freq=10) -> CounterSnapshot:
    return CounterSnapshot(
        device_id=device_id,
        write_bytes_rate=write_bytes,
        timestamp_ticks=ticks,
        frequency_ticks_per_sec=freq,
    )


def _check(source, sink, **options) -> IOCheck:
    return IOCheck(CheckConfig.from_options(options, environ={}), source, sink, agent_version="0.1.0")


def test_first_observation_emits_nothing_and_stores_once() -> None:
    source = FakeSource(["C:"], [[_snap("C:", 100)]])
    sink = RecordingSink()
    check = _check(source, sink)

    result = check.run()

    assert sink.emitted == []
    assert sink.commits == 1
    assert check.store.get("C:") == _snap("C:", 100)
    assert len(check.store) == 1
    assert result.devices_baselined == 1
    assert result.metrics_emitted == 0


def test_second_observation_emits_five_tagged_metrics() -> None:
    source = FakeSource(
        ["C:"],
        [[_snap("C:", 100, write_bytes=1000)], [_snap("C:", 200, write_bytes=2024)]],
    )
    sink = RecordingSink()
    check = _check(source, sink)

    check.run()
    result = check.run()

    assert result.metrics_emitted == 5
    assert sink.commits == 2
    assert {tags[0] for _, _, tags in sink.emitted} == {"device:C:"}
    values = {name: value for name, value, _ in sink.emitted}
    assert values["system.io.wkb_s"] == pytest.approx(0.1)
    assert check.store.get("C:").timestamp_ticks == 200


def test_excluded_device_never_processed_or_tagged() -> None:
    source = FakeSource(
        ["C:", "D:"],
        [[_snap("C:", 100), _snap("D:", 100)], [_snap("C:", 200), _snap("D:", 200)]],
    )
    sink = RecordingSink()
    check = _check(source, sink, device_blacklist_re="^D")

    check.run()
    result = check.run()

    assert "D:" not in check.store
    assert all(tags == ["device:C:"] for _, _, tags in sink.emitted)
    assert result.devices_excluded == 1
    assert result.devices_tracked == 1


def test_badly_shaped_names_are_skipped() -> None:
    source = FakeSource(["C:", "_Total"], [[_snap("C:", 100), _snap("_Total", 100)]])
    check = _check(source, RecordingSink())

    check.run()

    assert check.store.device_ids() == ["C:"]


def test_zero_frequency_skips_emission_but_updates_store(capsys) -> None:
    source = FakeSource(
        ["C:", "E:"],
        [
            [_snap("C:", 100, freq=0), _snap("E:", 100)],
            [_snap("C:", 200), _snap("E:", 200)],
        ],
    )
    sink = RecordingSink()
    check = _check(source, sink)

    check.run()
    result = check.run()

    assert check.store.get("C:") == _snap("C:", 200)
    assert result.devices_failed == 1
    # the other device still emits in the same cycle
    assert {tags[0] for _, _, tags in sink.emitted} == {"device:E:"}
    assert sink.commits == 2

    events = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    failed = [e for e in events if e["event_type"] == "rate_computation_failed"]
    assert failed[0]["device"] == "C:"
    assert failed[0]["error_type"] == "ZeroFrequencyError"


def test_enumeration_error_aborts_without_commit() -> None:
    source = FakeSource(["C:"], [[_snap("C:", 100)]])
    source.fail_enumeration = True
    sink = RecordingSink()
    check = _check(source, sink)

    with pytest.raises(EnumerationError) as excinfo:
        run(check)

    assert isinstance(excinfo.value.__cause__, OSError)
    assert sink.commits == 0
    assert source.queries == 0
    assert len(check.store) == 0


def test_snapshot_query_error_aborts_without_commit() -> None:
    source = FakeSource(["C:"], [])
    source.fail_query = True
    sink = RecordingSink()

    with pytest.raises(SnapshotQueryError):
        _check(source, sink).run()

    assert sink.commits == 0


def test_tracked_device_missing_from_query_is_counted() -> None:
    source = FakeSource(["C:", "D:"], [[_snap("C:", 100)]])
    check = _check(source, RecordingSink())

    result = check.run()

    assert result.devices_missing == 1
    assert "D:" not in check.store


def test_configure_validates_options() -> None:
    source = FakeSource([], [])

    check = configure(
        {"device_blacklist_re": "^Z", "queue_length_mode": "gauge"},
        source=source,
        sink=RecordingSink(),
        agent_version="0.1.0",
    )
    assert check.config.queue_length_mode == "gauge"
    assert check.exclude("Z:")

    with pytest.raises(ConfigError):
        configure({"device_blacklist_re": "("}, source=source, sink=RecordingSink(), agent_version="0.1.0")

    with pytest.raises(ConfigError):
        configure({"blacklist": "x"}, source=source, sink=RecordingSink(), agent_version="0.1.0")


def test_counter_reset_recovers_on_next_cycle() -> None:
    """
    After a counter reset the store advances and the next cycle rates from it
    """
    source = FakeSource(
        ["C:"],
        [
            [_snap("C:", 100, write_bytes=5000)],
            [_snap("C:", 200, write_bytes=10)],
            [_snap("C:", 300, write_bytes=1034)],
        ],
    )
    sink = RecordingSink()
    check = _check(source, sink)

    check.run()
    second = check.run()

    assert second.devices_failed == 1
    assert second.metrics_emitted == 0
    assert check.store.get("C:").write_bytes_rate == 10

    third = check.run()

    assert third.devices_failed == 0
    assert third.metrics_emitted == 5
    values = {name: value for name, value, _ in sink.emitted}
    assert values["system.io.wkb_s"] == pytest.approx(0.1)
    assert sink.commits == 3


def test_zero_elapsed_time_recovers_on_next_cycle(capsys) -> None:
    """
    Two polls on the same tick skip emission; the following poll emits
    """
    source = FakeSource(
        ["C:"],
        [
            [_snap("C:", 100, write_bytes=0)],
            [_snap("C:", 100, write_bytes=1000)],
            [_snap("C:", 200, write_bytes=2024)],
        ],
    )
    sink = RecordingSink()
    check = _check(source, sink)

    check.run()
    second = check.run()

    assert second.devices_failed == 1
    assert sink.emitted == []
    assert check.store.get("C:").write_bytes_rate == 1000

    third = check.run()

    assert third.metrics_emitted == 5
    values = {name: value for name, value, _ in sink.emitted}
    assert values["system.io.wkb_s"] == pytest.approx(0.1)

    events = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    failed = [e for e in events if e["event_type"] == "rate_computation_failed"]
    assert [e["error_type"] for e in failed] == ["ZeroElapsedTimeError"]


def test_counter_reset_event_names_the_counter(capsys) -> None:
    source = FakeSource(
        ["C:"],
        [[_snap("C:", 100, write_bytes=5000)], [_snap("C:", 200, write_bytes=10)]],
    )
    check = _check(source, RecordingSink())

    check.run()
    check.run()

    events = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    failed = [e for e in events if e["event_type"] == "rate_computation_failed"]
    assert failed[0]["error_type"] == "CounterResetError"
    assert failed[0]["counter"] == "write_bytes_rate"
    assert failed[0]["device"] == "C:"
