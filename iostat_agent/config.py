"""
iostat_agent.config
AUTHOR: carter-vin

Check configuration

Option keys (instance config):
- device_blacklist_re: exclusion regex, matched anywhere in the device id
- metric_prefix: metric namespace (default "system")
- queue_length_mode: "rate" | "gauge"

Env var override:
- IOSTAT_AGENT_DEVICE_BLACKLIST_RE: exclusion regex when none is configured
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from iostat_agent.rates import DEFAULT_PREFIX, QUEUE_MODE_RATE, VALID_QUEUE_MODES

BLACKLIST_ENV = "IOSTAT_AGENT_DEVICE_BLACKLIST_RE"

_PREFIX_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*(\.[A-Za-z0-9_]+)*$")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class CheckConfig:
    device_blacklist_re: Optional[str] = None
    metric_prefix: str = DEFAULT_PREFIX
    queue_length_mode: str = QUEUE_MODE_RATE

    @staticmethod
    def from_options(options: Mapping[str, Any] | None = None, *, environ: Mapping[str, str] | None = None) -> "CheckConfig":
        """
        Build a validated config from an options mapping

        Raises ConfigError on bad values; unknown keys are rejected too
        so typos do not silently disable a blacklist.
        """
        options = dict(options or {})
        environ = os.environ if environ is None else environ

        unknown = set(options) - {"device_blacklist_re", "metric_prefix", "queue_length_mode"}
        if unknown:
            raise ConfigError(f"unknown option(s): {', '.join(sorted(unknown))}")

        blacklist = options.get("device_blacklist_re")
        if not blacklist:
            blacklist = environ.get(BLACKLIST_ENV) or None

        if blacklist is not None:
            if not isinstance(blacklist, str):
                raise ConfigError(f"device_blacklist_re must be a string, got {type(blacklist).__name__}")
            try:
                re.compile(blacklist)
            except re.error as e:
                raise ConfigError(f"device_blacklist_re is not a valid regex: {e}") from e

        prefix = str(options.get("metric_prefix") or DEFAULT_PREFIX).strip()
        if not _PREFIX_RE.match(prefix):
            raise ConfigError(f"metric_prefix is not a valid metric namespace: {prefix!r}")

        queue_mode = str(options.get("queue_length_mode") or QUEUE_MODE_RATE).strip().lower()
        if queue_mode not in VALID_QUEUE_MODES:
            raise ConfigError(f"queue_length_mode must be one of: {sorted(VALID_QUEUE_MODES)}")

        return CheckConfig(
            device_blacklist_re=blacklist,
            metric_prefix=prefix,
            queue_length_mode=queue_mode,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_blacklist_re": self.device_blacklist_re,
            "metric_prefix": self.metric_prefix,
            "queue_length_mode": self.queue_length_mode,
        }
