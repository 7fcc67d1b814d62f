"""Course section record shared by the scraper, store, diff and notifier."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping

EMPTY_KEY = "_"

# attribute name -> portal JSON key (also used in the snapshot file)
_STR_FIELDS = {
    "course_code": "kch",
    "course_name": "kcmc",
    "instructor": "skls",
    "remaining": "syrs",
    "class_id": "jx0404id",
    "plan_id": "jx02id",
    "schedule": "sksj",
    "department": "dwmc",
    "class_title": "ktmc",
    "location": "skdd",
}
_INT_FIELDS = {
    "enrolled": "xkrs",
    "capacity": "pkrs",
}


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _as_int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(float(str(value).strip()))
    except (ValueError, OverflowError):
        return 0


@dataclass
class Course:
    """One course section as returned by the portal's search endpoint."""

    course_code: str = ""
    course_name: str = ""
    instructor: str = ""
    remaining: str = ""
    class_id: str = ""
    plan_id: str = ""
    schedule: str = ""
    enrolled: int = 0
    capacity: int = 0
    department: str = ""
    class_title: str = ""
    location: str = ""

    @property
    def key(self) -> str:
        """Composite identity: ``{plan_id}_{class_id}``."""
        return self.plan_id.strip() + "_" + self.class_id.strip()

    @property
    def has_identity(self) -> bool:
        return self.key != EMPTY_KEY

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for attr, key in _STR_FIELDS.items():
            data[key] = getattr(self, attr)
        for attr, key in _INT_FIELDS.items():
            data[key] = getattr(self, attr)
        return data

    @classmethod
    def from_json(cls, raw: Mapping[str, Any]) -> "Course":
        kwargs: Dict[str, Any] = {}
        for attr, key in _STR_FIELDS.items():
            kwargs[attr] = _as_str(raw.get(key))
        for attr, key in _INT_FIELDS.items():
            kwargs[attr] = _as_int(raw.get(key))
        return cls(**kwargs)


Snapshot = Dict[str, Course]

__all__ = ["Course", "Snapshot", "EMPTY_KEY"]
