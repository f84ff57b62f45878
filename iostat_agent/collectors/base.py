"""
iostat_agent.collectors.base
AUTHOR: carter-vin

Counter snapshot record + collaborator contracts

- CounterSnapshot: raw cumulative counters for one device at one instant
- CounterSource: where snapshots come from (OS specific)
- run_collector: call a collaborator & capture failure as data
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol


@dataclass(frozen=True)
class CounterSnapshot:
    """
    One poll of a single device

    The *_rate fields are cumulative counters as the OS reports them,
    not rates; the rate engine diffs consecutive snapshots.

    timestamp_ticks / frequency_ticks_per_sec converts a tick delta into seconds.
    """

    device_id: str
    queue_length: int = 0
    read_bytes_rate: int = 0
    write_bytes_rate: int = 0
    read_ops_rate: int = 0
    write_ops_rate: int = 0
    timestamp_ticks: int = 0
    frequency_ticks_per_sec: int = 0


class CounterSource(Protocol):
    """
    OS collaborator consumed by the check

    - list_fixed_drives: candidate device ids
    - query_counter_snapshots: one batched read, one row per device
    - max_device_name_length: bound for the device-name shape check
    """

    max_device_name_length: int

    def list_fixed_drives(self) -> list[str]:
        ...

    def query_counter_snapshots(self) -> list[CounterSnapshot]:
        ...


@dataclass(frozen=True)
class CollectorOutcome:
    """
    Normalized collaborator result
    - ok: false=failure, error details in error field
    - value: collaborator result if ok=true
    - exception: original exception for chaining
    """

    name: str
    ok: bool
    value: Optional[Any] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    exception: Optional[BaseException] = None


def run_collector(name: str, fn, *args, **kwargs) -> CollectorOutcome:
    """
    Run collaborator & collect failure as data
    """
    try:
        v = fn(*args, **kwargs)
        return CollectorOutcome(name=name, ok=True, value=v)
    except Exception as e:
        return CollectorOutcome(
            name=name,
            ok=False,
            value=None,
            error_type=type(e).__name__,
            error_message=str(e),
            exception=e,
        )
