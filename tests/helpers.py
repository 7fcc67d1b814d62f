"""Shared fakes for the monitor tests."""

from __future__ import annotations

from typing import Dict, List

from course_monitor.models import Course


def course(plan_id: str, class_id: str, **fields) -> Course:
    defaults = {
        "course_code": "C" + plan_id,
        "course_name": "Course " + plan_id,
        "instructor": "Teacher",
        "schedule": "Mon 1-2",
        "location": "Room 101",
        "remaining": "10",
        "enrolled": 20,
        "capacity": 30,
        "department": "Math",
    }
    defaults.update(fields)
    return Course(plan_id=plan_id, class_id=class_id, **defaults)


def snapshot(*courses: Course) -> Dict[str, Course]:
    return {c.key: c for c in courses}


class FakeNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.messages: List[str] = []
        self.fail = fail

    def broadcast(self, message: str):
        self.messages.append(message)
        if self.fail:
            return {"1001": RuntimeError("group offline")}
        return {"1001": None}
