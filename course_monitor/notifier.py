"""OneBot group-message notifier.

Formats newly opened sections into a single text message and sends it to
every configured QQ group through a OneBot HTTP endpoint.  Recipients are
independent: one group failing does not stop delivery to the others.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

import requests

from .models import Course
from .utils import HTTPError, get_http_session, retryable_request

logger = logging.getLogger(__name__)

SEPARATOR = "━━━━━━━━━━━━━━━━"
UNKNOWN = "未知"


class NotifyError(Exception):
    """Raised when a message could not be delivered to a group."""


@retryable_request
def _post(session: requests.Session, url: str, **kwargs) -> requests.Response:
    return session.post(url, **kwargs)


def _non_empty(value: str, fallback: str = UNKNOWN) -> str:
    value = (value or "").strip()
    return value or fallback


def format_courses_message(courses: Iterable[Course]) -> str:
    courses = list(courses)
    if not courses:
        return "【选课监控】本轮没有新增课程。"

    lines: List[str] = ["【选课监控】发现新课程！"]
    for i, c in enumerate(courses):
        if i > 0:
            lines.append("")
        lines.append(SEPARATOR)
        lines.append(f"课程名称：{_non_empty(c.course_name)}")
        lines.append(f"课程号：{_non_empty(c.course_code)}")
        lines.append(f"授课教师：{_non_empty(c.instructor)}")
        lines.append(f"上课时间：{_non_empty(c.schedule)}")
        lines.append(f"上课地点：{_non_empty(c.location)}")
        lines.append(f"剩余人数：{_non_empty(c.remaining)}")
        lines.append(f"已选/排课：{c.enrolled}/{c.capacity}")
        lines.append(f"开课单位：{_non_empty(c.department)}")
    lines.append(SEPARATOR)
    return "\n".join(lines)


class Notifier:
    def __init__(
        self,
        url: str,
        token: str = "",
        groups: Optional[Iterable[str]] = None,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 10,
    ) -> None:
        self.url = (url or "").strip().rstrip("/")
        self.token = (token or "").strip()
        self.groups = list(groups or [])
        self.session = session or get_http_session()
        self.timeout = timeout

    def send_group_message(self, group_id: str, message: str) -> None:
        try:
            gid = int(str(group_id).strip())
        except ValueError as e:
            raise NotifyError(f"Invalid group id {group_id!r}") from e

        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            resp = _post(
                self.session,
                self.url + "/send_group_msg",
                json={"group_id": gid, "message": message},
                headers=headers,
                timeout=self.timeout,
            )
        except (requests.RequestException, HTTPError) as e:
            raise NotifyError(f"OneBot request failed: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise NotifyError(f"OneBot returned HTTP {resp.status_code}")

        try:
            result = resp.json()
        except ValueError:
            return
        if not isinstance(result, dict):
            return
        if result.get("retcode", 0) != 0 and result.get("status") != "ok":
            raise NotifyError(
                f"OneBot rejected message: retcode={result.get('retcode')}, message={result.get('message', '')}"
            )

    def broadcast(self, message: str) -> Dict[str, Optional[Exception]]:
        """Send `message` to every group; returns group -> error (None on success)."""
        results: Dict[str, Optional[Exception]] = {}
        for group_id in self.groups:
            try:
                self.send_group_message(group_id, message)
            except NotifyError as e:
                logger.error("Sending to group %s failed: %s", group_id, e)
                results[group_id] = e
            else:
                logger.info("Sent message to group %s", group_id)
                results[group_id] = None
        return results


__all__ = ["Notifier", "NotifyError", "format_courses_message"]
