"""
iostat_agent.model
AUTHOR: carter-vin

Metric point schema + deterministic serialization

Design goals:
- Versioned envelope ("schema_version" = "1")
- Explicit structure (no accidental serialization via __dict__)
- Stable key ordering on the wire
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any

SCHEMA_VERSION = "1"

METRIC_TYPE_GAUGE = "gauge"


@dataclass(frozen=True)
class Meta:
    schema_version: str
    agent_version: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "agent_version": self.agent_version,
        }


@dataclass(frozen=True)
class MetricPoint:
    """
    One emitted value
    - metric: full name, e.g. system.io.wkb_s
    - tags: e.g. ["device:sda"]; kept in emission order
    """

    metric: str
    value: float
    tags: tuple[str, ...]
    emitted_at: str
    meta: Meta
    type: str = METRIC_TYPE_GAUGE

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "value": self.value,
            "tags": list(self.tags),
            "type": self.type,
            "emitted_at": self.emitted_at,
            "meta": self.meta.to_dict(),
        }


def validate_point(point: MetricPoint) -> None:
    """
    Raises ValueError on invalid point
    """
    if not point.metric:
        raise ValueError("metric name is empty")
    if not math.isfinite(point.value):
        raise ValueError(f"metric {point.metric} value must be finite")
    if not point.emitted_at:
        raise ValueError("emitted_at is empty")
    if point.meta.schema_version != SCHEMA_VERSION:
        raise ValueError(f"meta.schema_version must be: '{SCHEMA_VERSION}'")
    if not point.meta.agent_version:
        raise ValueError("meta.agent_version must be non-empty")


def point_to_json(point: MetricPoint) -> str:
    """
    Serialize one point as a single JSON object string
    """
    return json.dumps(
        point.to_dict(),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
