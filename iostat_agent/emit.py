"""
iostat_agent.emit

AUTHOR: carter-vin

Metric sink: batch per cycle, flush on commit

OUTPUT:
- JSON Lines spool file
- one JSON object (metric point) per line
- append-only, size-based rotation

Design goals:
- emit() never touches disk; it only appends to the batch
- commit() writes the whole batch, then clears it
- Explicit error surfaces (a failed write raises and keeps the batch)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Protocol

from iostat_agent.logging import utc_now_iso
from iostat_agent.model import SCHEMA_VERSION, Meta, MetricPoint, point_to_json, validate_point


DEFAULT_SPOOL_DIR = Path("spool")
DEFAULT_SPOOL_FILE = DEFAULT_SPOOL_DIR / "io_metrics.jsonl"


class MetricSink(Protocol):
    def emit(self, name: str, value: float, tags: Iterable[str]) -> None:
        ...

    def commit(self) -> Optional[int]:
        """Flush the batch; may return the number of points written."""
        ...


@dataclass(frozen=True)
class EmitTargets:
    """
    Emission destination configuration.
    """

    spool_path: Path = DEFAULT_SPOOL_FILE
    emit_stdout: bool = True
    spool_max_bytes: int | None = None
    spool_rotate_count: int = 3


def _rotation_path(spool_path: Path, index: int) -> Path:
    """
    Build rotation path with numeric suffix
    """
    return spool_path.with_name(f"{spool_path.stem}.{index}{spool_path.suffix}")


def maybe_rotate_spool(targets: EmitTargets) -> dict[str, Any] | None:
    """
    Rotate spool file when it exceeds max size

    Returns rotation info when a rotation happened, else None
    """
    if targets.spool_max_bytes is None or targets.spool_max_bytes <= 0:
        return None

    if targets.spool_rotate_count < 1:
        return None

    if not targets.spool_path.exists():
        return None

    prior_size = targets.spool_path.stat().st_size
    if prior_size < targets.spool_max_bytes:
        return None

    # Rotate oldest first to keep shifts deterministic
    for index in range(targets.spool_rotate_count, 1, -1):
        src = _rotation_path(targets.spool_path, index - 1)
        dst = _rotation_path(targets.spool_path, index)
        if dst.exists():
            dst.unlink()
        if src.exists():
            src.rename(dst)

    first = _rotation_path(targets.spool_path, 1)
    if first.exists():
        first.unlink()
    targets.spool_path.rename(first)

    return {
        "spool_path": str(targets.spool_path),
        "rotated_to": str(first),
        "prior_size_bytes": prior_size,
    }


def append_jsonl_lines(spool_path: Path, lines: list[str]) -> None:
    """
    Append JSON strings, one per line

    Failure semantics:
    - raises on IO errors; caller decides how to handle
    """
    spool_path.parent.mkdir(parents=True, exist_ok=True)

    with spool_path.open(mode="a", encoding="utf-8", newline="\n") as f:
        for line in lines:
            f.write(line)
            f.write("\n")
        f.flush()


class SpoolSink:
    """
    MetricSink writing committed batches to the JSONL spool

    on_spool_error: called with (exception, path) before the error propagates
    on_rotate: called with rotation info after a rotation
    """

    def __init__(
        self,
        targets: EmitTargets,
        *,
        agent_version: str,
        on_spool_error: Optional[Callable[[Exception, Path], None]] = None,
        on_rotate: Optional[Callable[[dict[str, Any]], None]] = None,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self.targets = targets
        self._meta = Meta(schema_version=SCHEMA_VERSION, agent_version=agent_version)
        self._on_spool_error = on_spool_error
        self._on_rotate = on_rotate
        self._clock = clock
        self._batch: list[MetricPoint] = []

    @property
    def pending(self) -> list[MetricPoint]:
        return list(self._batch)

    def emit(self, name: str, value: float, tags: Iterable[str]) -> None:
        point = MetricPoint(
            metric=name,
            value=float(value),
            tags=tuple(tags),
            emitted_at=self._clock(),
            meta=self._meta,
        )
        validate_point(point)
        self._batch.append(point)

    def commit(self) -> int:
        """
        Flush the batch; returns the number of points written

        An empty batch is a no-op (nothing rotated, nothing written).
        """
        if not self._batch:
            return 0

        lines = [point_to_json(point) for point in self._batch]

        try:
            rotation = maybe_rotate_spool(self.targets)
            append_jsonl_lines(self.targets.spool_path, lines)
        except Exception as e:
            if self._on_spool_error is not None:
                self._on_spool_error(e, self.targets.spool_path)
            raise

        # Echo only once the batch is durable; a kept batch is never echoed twice
        if self.targets.emit_stdout:
            for line in lines:
                print(line)

        if rotation is not None and self._on_rotate is not None:
            self._on_rotate(rotation)

        written = len(self._batch)
        self._batch.clear()
        return written
