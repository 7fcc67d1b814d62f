"""Course search against the jwxt selection endpoints.

Each keyword is searched in the five selection modules the portal exposes;
results are merged by composite key.  A redirect or a login page in place
of JSON means the session is gone and is reported as SessionExpiredError,
which callers treat differently from every other failure.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Dict, List, Optional
from urllib.parse import urlencode

import requests

from .config import PORTAL_BASE_URL, REQUEST_TIMEOUT
from .models import Course

logger = logging.getLogger(__name__)

SEARCH_PATH_PREFIX = "/jsxsd/xsxkkc/"

MODULE_TYPES = [
    "xsxkKnjxk",
    "xsxkBxqjhxk",
    "xsxkXxxk",
    "xsxkFawxk",
    "xsxkGgxxkxk",
]

# Pause between module requests to keep each round gentle on the portal.
MODULE_DELAY_SECONDS = 0.1

_REDIRECT_STATUSES = {301, 302, 307, 308}

_LOGIN_MARKERS = (
    "authserver/login",
    "统一身份认证",
    "教学一体化服务平台",
)


class SearchError(Exception):
    """Raised when a course search fails."""


class SessionExpiredError(SearchError):
    """The portal no longer accepts the session; a fresh login is required."""


def looks_like_login_html(body: str) -> bool:
    text = (body or "").strip().lower()
    if not text:
        return False
    if text.startswith("<!doctype html") or text.startswith("<html"):
        return True
    return any(marker in text for marker in _LOGIN_MARKERS)


def search_module(
    session: requests.Session,
    module_type: str,
    keyword: str,
    *,
    base_url: str = PORTAL_BASE_URL,
    timeout: float = REQUEST_TIMEOUT,
) -> List[Course]:
    """Search one selection module for `keyword` and return its rows."""
    module_type = (module_type or "").strip()
    if not module_type:
        raise SearchError("module_type must not be empty")

    query = urlencode(
        {
            "kcxx": (keyword or "").strip(),
            "skls": "",
            "sfym": "true",
            "sfct": "false",
            "sfxx": "false",
        }
    )
    module_url = base_url + SEARCH_PATH_PREFIX + module_type
    headers = {
        "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
        "X-Requested-With": "XMLHttpRequest",
        "Referer": module_url,
    }

    try:
        resp = session.post(
            f"{module_url}?{query}",
            data={"iDisplayStart": "0", "iDisplayLength": "10000"},
            headers=headers,
            timeout=timeout,
            allow_redirects=False,
        )
    except requests.RequestException as e:
        raise SearchError(f"Search request failed [{module_type}]: {e}") from e

    if resp.status_code in _REDIRECT_STATUSES:
        raise SessionExpiredError(f"Search endpoint redirected [{module_type}]")
    if resp.status_code != 200:
        raise SearchError(
            f"Search endpoint returned {resp.status_code} [{module_type}]: {resp.text[:1024]!r}"
        )

    body = resp.text
    if looks_like_login_html(body):
        raise SessionExpiredError(f"Search endpoint returned the login page [{module_type}]")

    try:
        payload = json.loads(body)
    except ValueError as e:
        raise SearchError(f"Failed to decode search response [{module_type}]: {e}") from e

    rows = payload.get("aaData") if isinstance(payload, dict) else None
    if not rows:
        return []
    return [Course.from_json(row) for row in rows if isinstance(row, dict)]


def search(
    session: requests.Session,
    keyword: str,
    stop_event: Optional[threading.Event] = None,
    *,
    base_url: str = PORTAL_BASE_URL,
    timeout: float = REQUEST_TIMEOUT,
) -> List[Course]:
    """Search every selection module for `keyword`, deduplicated by key."""
    uniq: Dict[str, Course] = {}
    for module_type in MODULE_TYPES:
        courses = search_module(session, module_type, keyword, base_url=base_url, timeout=timeout)
        for course in courses:
            uniq[course.key] = course
        logger.debug("Module %s matched %d rows for %r", module_type, len(courses), keyword)

        # Stopping mid-keyword returns a partial result; callers re-check the event.
        if stop_event is not None:
            if stop_event.wait(MODULE_DELAY_SECONDS):
                break
        else:
            time.sleep(MODULE_DELAY_SECONDS)
    return list(uniq.values())


__all__ = [
    "MODULE_TYPES",
    "SearchError",
    "SessionExpiredError",
    "looks_like_login_html",
    "search_module",
    "search",
]
