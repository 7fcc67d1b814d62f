"""Detect course sections that appeared since the previous snapshot."""

from __future__ import annotations

from typing import List, Mapping

from .models import Course


def added(previous: Mapping[str, Course], current: Mapping[str, Course]) -> List[Course]:
    """Return records whose key is in `current` but not `previous`, sorted by key.

    Known keys with changed fields are not reported.
    """
    return [current[key] for key in sorted(current) if key not in previous]


__all__ = ["added"]
