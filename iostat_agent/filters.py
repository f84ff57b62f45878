"""
iostat_agent.filters
AUTHOR: carter-vin

Device selection
- shape check: only short, well-formed device ids
- exclusion: injected predicate (regex adapter provided)
"""

from __future__ import annotations

import re
from typing import Callable, Optional, Union

DevicePredicate = Callable[[str], bool]


def pattern_predicate(pattern: Union[str, re.Pattern[str], None]) -> Optional[DevicePredicate]:
    """
    Adapt a regex into an exclusion predicate

    Matches anywhere in the device id (re.search). None/"" -> no predicate.
    """
    if pattern is None:
        return None
    if isinstance(pattern, str):
        if not pattern:
            return None
        pattern = re.compile(pattern)
    compiled = pattern

    def _excluded(device_id: str) -> bool:
        return compiled.search(device_id) is not None

    return _excluded


def should_track(device_id: str, exclude: Optional[DevicePredicate]) -> bool:
    return exclude is None or not exclude(device_id)


def is_device_name(device_id: str, max_length: int) -> bool:
    """
    Basic shape check for device ids

    Aggregate rows such as "_Total" or long volume names are not devices.
    """
    if not device_id or len(device_id) > max_length:
        return False
    return not any(ch.isspace() for ch in device_id)
