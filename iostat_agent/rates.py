"""
iostat_agent.rates
AUTHOR: carter-vin

Rate derivation from two consecutive snapshots of one device

rate = (cur - prev) / (dt / freq)
- dt: tick delta between the snapshots
- freq: ticks per second, taken from the previous snapshot
- byte rates reported in KB/s (/1024)

Per-device failures raise RateComputationError subclasses; the caller
skips emission for the device and keeps going.
"""

from __future__ import annotations

from iostat_agent.collectors.base import CounterSnapshot

BYTES_PER_KB = 1024

DEFAULT_PREFIX = "system"

QUEUE_MODE_RATE = "rate"
QUEUE_MODE_GAUGE = "gauge"
VALID_QUEUE_MODES = {QUEUE_MODE_RATE, QUEUE_MODE_GAUGE}

# Metric suffixes, in emission order
WRITE_KB_S = "io.wkb_s"
WRITE_OPS_S = "io.w_s"
READ_KB_S = "io.rkb_s"
READ_OPS_S = "io.r_s"
AVG_QUEUE_SIZE = "io.avg_q_sz"

METRIC_SUFFIXES = (WRITE_KB_S, WRITE_OPS_S, READ_KB_S, READ_OPS_S, AVG_QUEUE_SIZE)


class RateComputationError(Exception):
    """Per-device failure; never fatal to a cycle."""


class ZeroFrequencyError(RateComputationError):
    pass


class ZeroElapsedTimeError(RateComputationError):
    pass


class TimestampRegressionError(RateComputationError):
    pass


class CounterResetError(RateComputationError):
    """A cumulative counter went backwards (device reset or wraparound)."""

    def __init__(self, counter: str, previous: int, current: int) -> None:
        super().__init__(f"counter {counter} went backwards: {previous} -> {current}")
        self.counter = counter
        self.previous = previous
        self.current = current


def metric_names(prefix: str = DEFAULT_PREFIX) -> list[str]:
    return [f"{prefix}.{suffix}" for suffix in METRIC_SUFFIXES]


def _counter_delta(counter: str, previous: CounterSnapshot, current: CounterSnapshot) -> int:
    prev_value = getattr(previous, counter)
    cur_value = getattr(current, counter)
    if cur_value < prev_value:
        raise CounterResetError(counter, prev_value, cur_value)
    return cur_value - prev_value


def compute_rates(
    previous: CounterSnapshot,
    current: CounterSnapshot,
    *,
    prefix: str = DEFAULT_PREFIX,
    queue_mode: str = QUEUE_MODE_RATE,
) -> dict[str, float]:
    """
    Derive the five io metrics for one device

    Pure: same inputs always yield the same mapping.

    queue_mode:
    - "rate": queue_length delta over elapsed seconds (signed; a gauge may fall)
    - "gauge": current.queue_length as-is
    """
    if queue_mode not in VALID_QUEUE_MODES:
        raise ValueError(f"queue_mode must be one of: {sorted(VALID_QUEUE_MODES)}")

    freq = previous.frequency_ticks_per_sec
    if freq == 0:
        raise ZeroFrequencyError(f"frequency is zero for device {previous.device_id}")

    dt = current.timestamp_ticks - previous.timestamp_ticks
    if dt == 0:
        raise ZeroElapsedTimeError(f"elapsed time is zero for device {current.device_id}")
    if dt < 0:
        raise TimestampRegressionError(
            f"timestamp went backwards for device {current.device_id}: "
            f"{previous.timestamp_ticks} -> {current.timestamp_ticks}"
        )

    elapsed_s = dt / freq

    # Check every counter before producing anything
    write_bytes = _counter_delta("write_bytes_rate", previous, current)
    write_ops = _counter_delta("write_ops_rate", previous, current)
    read_bytes = _counter_delta("read_bytes_rate", previous, current)
    read_ops = _counter_delta("read_ops_rate", previous, current)

    if queue_mode == QUEUE_MODE_GAUGE:
        avg_queue = float(current.queue_length)
    else:
        avg_queue = (current.queue_length - previous.queue_length) / elapsed_s

    return {
        f"{prefix}.{WRITE_KB_S}": write_bytes / elapsed_s / BYTES_PER_KB,
        f"{prefix}.{WRITE_OPS_S}": write_ops / elapsed_s,
        f"{prefix}.{READ_KB_S}": read_bytes / elapsed_s / BYTES_PER_KB,
        f"{prefix}.{READ_OPS_S}": read_ops / elapsed_s,
        f"{prefix}.{AVG_QUEUE_SIZE}": avg_queue,
    }
