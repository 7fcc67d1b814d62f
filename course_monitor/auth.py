"""CAS single-sign-on login for the jwxt portal.

The login page carries a form with hidden inputs (``lt``, ``execution``,
``_eventId`` ...) that must be echoed back with the credentials.  A
successful login redirects through the service URL and leaves the portal
cookies on the session.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional
from urllib.parse import urljoin, urlsplit

import requests
from bs4 import BeautifulSoup

from .config import CAS_LOGIN_URL, PORTAL_BASE_URL, REQUEST_TIMEOUT
from .recovery import Cancelled
from .utils import get_http_session

logger = logging.getLogger(__name__)

SERVICE_PATH = "/sso.jsp"


class AuthError(Exception):
    """Raised when the CAS login does not produce a portal session."""


def _login_form_fields(html: str, page_url: str) -> tuple[str, Dict[str, str]]:
    """Return (action_url, hidden_fields) of the page's password form."""
    soup = BeautifulSoup(html, "html.parser")
    form = soup.select_one("form#casLoginForm") or soup.select_one("form#loginForm")
    if form is None:
        pw = soup.select_one("input[type=password]")
        form = pw.find_parent("form") if pw is not None else None
    if form is None:
        raise AuthError("Login form not found on CAS page")

    fields: Dict[str, str] = {}
    for inp in form.find_all("input"):
        name = inp.get("name")
        if not name or (inp.get("type") or "").lower() != "hidden":
            continue
        fields[name] = inp.get("value") or ""
    action = urljoin(page_url, form.get("action") or page_url)
    return action, fields


def _has_password_form(html: str) -> bool:
    return BeautifulSoup(html, "html.parser").select_one("input[type=password]") is not None


class CasClient:
    """Holds the authenticated portal session."""

    def __init__(
        self,
        timeout: float = REQUEST_TIMEOUT,
        *,
        login_url: str = CAS_LOGIN_URL,
        base_url: str = PORTAL_BASE_URL,
    ) -> None:
        self.timeout = timeout
        self.login_url = login_url
        self.base_url = base_url.rstrip("/")
        self._session: Optional[requests.Session] = None

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            raise AuthError("Not logged in")
        return self._session

    def login(
        self, username: str, password: str, stop_event: Optional[threading.Event] = None
    ) -> requests.Session:
        """Log in from a fresh session and return it.

        A set `stop_event` aborts with Cancelled before the credentials are posted.
        """
        session = get_http_session()
        service = self.base_url + SERVICE_PATH
        try:
            page = session.get(self.login_url, params={"service": service}, timeout=self.timeout)
            if page.status_code != 200:
                raise AuthError(f"CAS login page returned {page.status_code}")

            action, fields = _login_form_fields(page.text, page.url)
            fields.update({"username": username, "password": password})
            if stop_event is not None and stop_event.is_set():
                raise Cancelled("login cancelled")
            resp = session.post(action, data=fields, timeout=self.timeout)
        except requests.RequestException as e:
            session.close()
            raise AuthError(f"CAS request failed: {e}") from e
        except (AuthError, Cancelled):
            session.close()
            raise

        portal_host = urlsplit(self.base_url).netloc
        if resp.status_code != 200 or urlsplit(resp.url).netloc != portal_host or _has_password_form(resp.text):
            session.close()
            raise AuthError(f"CAS login rejected (status={resp.status_code}, url={resp.url})")

        if self._session is not None:
            self._session.close()
        self._session = session
        logger.debug("CAS login landed on %s", resp.url)
        return session


__all__ = ["AuthError", "CasClient"]
