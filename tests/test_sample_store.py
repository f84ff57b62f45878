"""
Contract test for per-device sample retention
"""

from iostat_agent.collectors.base import CounterSnapshot
from iostat_agent.state import SampleStore


def test_get_missing_then_put_overwrites() -> None:
    store = SampleStore()

    assert store.get("sda") is None
    assert "sda" not in store

    first = CounterSnapshot(device_id="sda", timestamp_ticks=1, frequency_ticks_per_sec=10)
    second = CounterSnapshot(device_id="sda", timestamp_ticks=2, frequency_ticks_per_sec=10)

    store.put("sda", first)
    store.put("sda", second)

    assert store.get("sda") == second
    assert len(store) == 1


def test_entries_are_never_evicted() -> None:
    store = SampleStore()
    store.put("sdb", CounterSnapshot(device_id="sdb"))
    store.put("sda", CounterSnapshot(device_id="sda"))

    assert store.device_ids() == ["sda", "sdb"]
    assert list(store) == ["sda", "sdb"]


def test_independent_stores_do_not_share_state() -> None:
    one = SampleStore()
    two = SampleStore()
    one.put("sda", CounterSnapshot(device_id="sda"))

    assert two.get("sda") is None
