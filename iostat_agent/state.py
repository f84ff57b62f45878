"""
iostat_agent.state
AUTHOR: carter-vin

Per-device sample store (process lifetime, in memory)

Current responsibilities:
- Hold the most recent CounterSnapshot per device id
- Overwrite semantics: every successful poll replaces the entry

Lifecycle:
- entry created on the first snapshot of a tracked device
- never deleted; a device that disappears just stops being updated
- one store per check instance, never shared
"""

from __future__ import annotations

from typing import Iterator

from iostat_agent.collectors.base import CounterSnapshot


class SampleStore:
    """
    device_id -> last CounterSnapshot

    No eviction: size is bounded by the devices seen in this process.
    """

    def __init__(self) -> None:
        self._samples: dict[str, CounterSnapshot] = {}

    def get(self, device_id: str) -> CounterSnapshot | None:
        return self._samples.get(device_id)

    def put(self, device_id: str, snapshot: CounterSnapshot) -> None:
        self._samples[device_id] = snapshot

    def device_ids(self) -> list[str]:
        return sorted(self._samples)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._samples

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[str]:
        return iter(self.device_ids())
