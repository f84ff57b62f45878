"""
iostat_agent.check
AUTHOR: carter-vin

IO check: one poll-compute-emit cycle per run()

Cycle:
1. enumerate fixed drives (fatal on failure)
2. shape check + exclusion filter
3. one batched snapshot query (fatal on failure)
4. per tracked device: baseline, or compute rates and emit
5. always store the new snapshot
6. commit the batch exactly once

Cycle-level failures raise CheckError subclasses and skip the commit.
Per-device rate failures are logged and the device is skipped this cycle.

Host entry points:
- configure(options, source=..., sink=...) -> IOCheck
- run(check) -> CycleResult
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from iostat_agent.collectors.base import CounterSnapshot, CounterSource, run_collector
from iostat_agent.config import CheckConfig
from iostat_agent.emit import MetricSink
from iostat_agent.filters import DevicePredicate, is_device_name, pattern_predicate, should_track
from iostat_agent.logging import emit_device_event, emit_event
from iostat_agent.rates import RateComputationError, compute_rates
from iostat_agent.state import SampleStore

DEVICE_TAG = "device"


class CheckError(Exception):
    """Cycle-level failure; the whole cycle is abandoned."""


class EnumerationError(CheckError):
    pass


class SnapshotQueryError(CheckError):
    pass


@dataclass(frozen=True)
class CycleResult:
    """
    Counters for one completed cycle (also logged as cycle_completed)
    """

    devices_seen: int
    devices_tracked: int
    devices_excluded: int
    devices_baselined: int
    devices_failed: int
    devices_missing: int
    metrics_emitted: int
    elapsed_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "devices_seen": self.devices_seen,
            "devices_tracked": self.devices_tracked,
            "devices_excluded": self.devices_excluded,
            "devices_baselined": self.devices_baselined,
            "devices_failed": self.devices_failed,
            "devices_missing": self.devices_missing,
            "metrics_emitted": self.metrics_emitted,
            "elapsed_ms": self.elapsed_ms,
        }


def device_tags(device_id: str) -> list[str]:
    return [f"{DEVICE_TAG}:{device_id}"]


class IOCheck:
    """
    Owns one SampleStore; run() is single-threaded and not re-entrant.
    """

    def __init__(
        self,
        config: CheckConfig,
        source: CounterSource,
        sink: MetricSink,
        *,
        agent_version: str,
        exclude: Optional[DevicePredicate] = None,
        store: Optional[SampleStore] = None,
    ) -> None:
        self.config = config
        self.source = source
        self.sink = sink
        self.agent_version = agent_version
        # Injected predicate wins over the configured regex
        self.exclude = exclude if exclude is not None else pattern_predicate(config.device_blacklist_re)
        self.store = store if store is not None else SampleStore()

    def _tracked_devices(self, candidates: list[str]) -> tuple[list[str], int]:
        tracked: list[str] = []
        excluded = 0
        max_len = self.source.max_device_name_length
        for device_id in candidates:
            if not is_device_name(device_id, max_len):
                continue
            if not should_track(device_id, self.exclude):
                excluded += 1
                continue
            if device_id not in tracked:
                tracked.append(device_id)
        return tracked, excluded

    def _process_device(self, snapshot: CounterSnapshot) -> tuple[str, int]:
        """
        Returns (outcome, metrics emitted); outcome in baselined|emitted|failed
        """
        device_id = snapshot.device_id
        previous = self.store.get(device_id)

        try:
            if previous is None:
                emit_device_event("device_baselined", device_id, agent_version=self.agent_version)
                return "baselined", 0

            try:
                metrics = compute_rates(
                    previous,
                    snapshot,
                    prefix=self.config.metric_prefix,
                    queue_mode=self.config.queue_length_mode,
                )
            except RateComputationError as e:
                emit_device_event(
                    "rate_computation_failed",
                    device_id,
                    agent_version=self.agent_version,
                    error=e,
                )
                return "failed", 0

            tags = device_tags(device_id)
            for name, value in metrics.items():
                self.sink.emit(name, value, tags)
            return "emitted", len(metrics)
        finally:
            self.store.put(device_id, snapshot)

    def run(self) -> CycleResult:
        start = time.monotonic()

        listed = run_collector("list_fixed_drives", self.source.list_fixed_drives)
        if not listed.ok:
            raise EnumerationError(f"device enumeration failed: {listed.error_message}") from listed.exception

        candidates = list(listed.value or [])
        tracked, excluded = self._tracked_devices(candidates)

        queried = run_collector("query_counter_snapshots", self.source.query_counter_snapshots)
        if not queried.ok:
            raise SnapshotQueryError(f"counter snapshot query failed: {queried.error_message}") from queried.exception

        by_device: dict[str, CounterSnapshot] = {}
        for snapshot in queried.value or []:
            if snapshot.device_id in tracked:
                by_device[snapshot.device_id] = snapshot

        baselined = 0
        failed = 0
        emitted = 0
        for device_id in tracked:
            snapshot = by_device.get(device_id)
            if snapshot is None:
                continue
            outcome, count = self._process_device(snapshot)
            if outcome == "baselined":
                baselined += 1
            elif outcome == "failed":
                failed += 1
            emitted += count

        self.sink.commit()

        result = CycleResult(
            devices_seen=len(candidates),
            devices_tracked=len(tracked),
            devices_excluded=excluded,
            devices_baselined=baselined,
            devices_failed=failed,
            devices_missing=len(tracked) - len(by_device),
            metrics_emitted=emitted,
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )
        emit_event(
            "cycle_completed",
            agent_version=self.agent_version,
            **result.to_dict(),
        )
        return result


def configure(
    options: Mapping[str, Any] | None,
    *,
    source: CounterSource,
    sink: MetricSink,
    agent_version: str,
    exclude: Optional[DevicePredicate] = None,
) -> IOCheck:
    """
    Build a check from instance options (raises ConfigError on bad options)
    """
    config = CheckConfig.from_options(options)
    check = IOCheck(config, source, sink, agent_version=agent_version, exclude=exclude)
    emit_event(
        "check_configured",
        agent_version=agent_version,
        **config.to_dict(),
    )
    return check


def run(check: IOCheck) -> CycleResult:
    return check.run()
