"""
iostat_agent.collectors.procfs
AUTHOR: carter-vin

Linux counter source
- fixed drives from /sys/block (removable == 0, no loop/ram/zram)
- counters from /proc/diskstats
- stdlib only

/proc/diskstats line (after major, minor, name):
  [0] reads completed      [4] writes completed
  [2] sectors read         [6] sectors written
  [8] I/Os currently in progress
Sectors are always 512 bytes in diskstats, regardless of hw sector size.
"""

from __future__ import annotations

import time
from pathlib import Path

from iostat_agent.collectors.base import CounterSnapshot

SECTOR_BYTES = 512
NS_PER_SEC = 1_000_000_000

VIRTUAL_PREFIXES = ("loop", "ram", "zram")

_FIELD_READS = 0
_FIELD_READ_SECTORS = 2
_FIELD_WRITES = 4
_FIELD_WRITE_SECTORS = 6
_FIELD_IN_PROGRESS = 8


def parse_diskstats(contents: str, *, timestamp_ticks: int) -> list[CounterSnapshot]:
    """
    Parse /proc/diskstats into snapshots sharing one timestamp

    Short or non-numeric lines are skipped.
    """
    snapshots: list[CounterSnapshot] = []
    for line in contents.splitlines():
        parts = line.split()
        if len(parts) < 3 + _FIELD_IN_PROGRESS + 1:
            continue
        name = parts[2]
        try:
            fields = [int(p) for p in parts[3:3 + _FIELD_IN_PROGRESS + 1]]
        except ValueError:
            continue
        snapshots.append(
            CounterSnapshot(
                device_id=name,
                queue_length=fields[_FIELD_IN_PROGRESS],
                read_bytes_rate=fields[_FIELD_READ_SECTORS] * SECTOR_BYTES,
                write_bytes_rate=fields[_FIELD_WRITE_SECTORS] * SECTOR_BYTES,
                read_ops_rate=fields[_FIELD_READS],
                write_ops_rate=fields[_FIELD_WRITES],
                timestamp_ticks=timestamp_ticks,
                frequency_ticks_per_sec=NS_PER_SEC,
            )
        )
    return snapshots


class ProcfsCounterSource:
    """
    CounterSource backed by procfs/sysfs

    proc_root / sys_root are overridable so tests can point at fixtures.
    """

    max_device_name_length = 32

    def __init__(self, proc_root: Path = Path("/proc"), sys_root: Path = Path("/sys"), clock=time.monotonic_ns) -> None:
        self.diskstats_path = Path(proc_root) / "diskstats"
        self.block_dir = Path(sys_root) / "block"
        self._clock = clock

    def list_fixed_drives(self) -> list[str]:
        """
        Non-removable, non-virtual block devices (sorted)

        Raises OSError when /sys/block cannot be listed
        """
        drives: list[str] = []
        for entry in sorted(self.block_dir.iterdir()):
            name = entry.name
            if name.startswith(VIRTUAL_PREFIXES):
                continue
            removable = entry / "removable"
            try:
                flag = removable.read_text(encoding="utf-8").strip()
            except OSError:
                # no flag -> not a fixed drive we can vouch for
                continue
            if flag == "0":
                drives.append(name)
        return drives

    def query_counter_snapshots(self) -> list[CounterSnapshot]:
        contents = self.diskstats_path.read_text(encoding="utf-8")
        return parse_diskstats(contents, timestamp_ticks=self._clock())
