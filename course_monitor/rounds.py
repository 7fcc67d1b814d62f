"""Selection-round discovery and entry.

The round list page renders a table (#tbKxkc) whose rows end in a
"进入选课" link carrying the round id in its ``jx0502zbid`` parameter.
Searching only works after the round has been entered on the session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List
from urllib.parse import parse_qs, urlencode, urlsplit

import requests
from bs4 import BeautifulSoup

from .config import PORTAL_BASE_URL, REQUEST_TIMEOUT

logger = logging.getLogger(__name__)

ROUND_LIST_PATH = "/jsxsd/xsxk/xklc_list"
ROUND_VIEW_PATH = "/jsxsd/xsxk/xklc_view"
ROUND_INDEX_PATH = "/jsxsd/xsxk/xsxk_index"
ROUND_QUERY_PARAM = "jx0502zbid"
ENTER_LINK_TEXT = "进入选课"


class RoundError(Exception):
    """Raised when the selection round cannot be entered."""


class RoundNotFoundError(RoundError):
    """Raised when no enterable selection round is listed."""


@dataclass
class SelectionRound:
    id: str
    entry_path: str


def _normalize_space(text: str) -> str:
    return " ".join((text or "").split())


def extract_round_id(href: str) -> str:
    href = (href or "").strip()
    if not href or href.lower().startswith("javascript"):
        return ""
    values = parse_qs(urlsplit(href).query).get(ROUND_QUERY_PARAM)
    if not values:
        return ""
    return values[0].strip()


def parse_selection_rounds(html: str) -> List[SelectionRound]:
    """Extract enterable rounds from the round list page, in page order."""
    soup = BeautifulSoup(html, "html.parser")
    table = soup.select_one("#tbKxkc")
    if table is None:
        raise RoundNotFoundError("Round table #tbKxkc not found")

    rounds: List[SelectionRound] = []
    seen: set[str] = set()
    for tr in table.find_all("tr"):
        if tr.find("th") is not None:
            continue
        cells = tr.find_all("td")
        if not cells:
            continue

        for a in cells[-1].find_all("a"):
            if _normalize_space(a.get_text()) != ENTER_LINK_TEXT:
                continue
            href = a.get("href")
            round_id = extract_round_id(href or "")
            if not round_id:
                continue
            if round_id not in seen:
                seen.add(round_id)
                rounds.append(SelectionRound(id=round_id, entry_path=href.strip()))
            break

    if not rounds:
        raise RoundNotFoundError(f"No {ROUND_QUERY_PARAM} link found in #tbKxkc")
    return rounds


def get_selection_rounds(
    session: requests.Session,
    *,
    base_url: str = PORTAL_BASE_URL,
    timeout: float = REQUEST_TIMEOUT,
) -> List[SelectionRound]:
    try:
        resp = session.get(base_url + ROUND_LIST_PATH, timeout=timeout)
    except requests.RequestException as e:
        raise RoundError(f"Round list request failed: {e}") from e
    if resp.status_code != 200:
        raise RoundError(f"Round list returned {resp.status_code}: {resp.text[:1024]!r}")
    return parse_selection_rounds(resp.text)


def get_selection_round_id(
    session: requests.Session,
    *,
    base_url: str = PORTAL_BASE_URL,
    timeout: float = REQUEST_TIMEOUT,
) -> str:
    """Return the id of the first enterable round."""
    return get_selection_rounds(session, base_url=base_url, timeout=timeout)[0].id


def _round_url(base_url: str, path: str, round_id: str) -> str:
    return f"{base_url}{path}?{urlencode({ROUND_QUERY_PARAM: round_id})}"


def _get_ok(session: requests.Session, url: str, timeout: float) -> None:
    try:
        resp = session.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise RoundError(f"Round entry request failed: {e}") from e
    if resp.status_code != 200:
        raise RoundError(f"Round entry returned {resp.status_code}: {resp.text[:1024]!r}")


def enter_selection_round(
    session: requests.Session,
    round_id: str,
    *,
    base_url: str = PORTAL_BASE_URL,
    timeout: float = REQUEST_TIMEOUT,
) -> None:
    """Activate `round_id` on the session (view page first, then index)."""
    round_id = (round_id or "").strip()
    if not round_id:
        raise RoundError("round_id must not be empty")

    try:
        _get_ok(session, _round_url(base_url, ROUND_VIEW_PATH, round_id), timeout)
    except RoundError as e:
        logger.debug("Round view page not reachable, continuing: %s", e)

    _get_ok(session, _round_url(base_url, ROUND_INDEX_PATH, round_id), timeout)


__all__ = [
    "RoundError",
    "RoundNotFoundError",
    "SelectionRound",
    "extract_round_id",
    "parse_selection_rounds",
    "get_selection_rounds",
    "get_selection_round_id",
    "enter_selection_round",
]
