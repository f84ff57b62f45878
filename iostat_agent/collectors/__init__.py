"""iostat_agent.collectors package exports."""

from iostat_agent.collectors.base import CollectorOutcome, CounterSnapshot, CounterSource, run_collector
from iostat_agent.collectors.procfs import ProcfsCounterSource, parse_diskstats

__all__ = [
    "CollectorOutcome",
    "CounterSnapshot",
    "CounterSource",
    "ProcfsCounterSource",
    "parse_diskstats",
    "run_collector",
]
