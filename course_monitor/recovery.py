"""Session recovery after the portal drops the login.

One attempt is: CAS login, resolve the active selection round, enter it.
Attempts repeat forever with exponential back-off (2s, 4s, 8s ... capped at
60s); the only way out besides success is the stop event.  Credentials that
are simply wrong keep failing until the operator fixes them.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, Optional

import requests
from tenacity import RetryCallState, Retrying, retry_if_exception_type, wait_exponential

logger = logging.getLogger(__name__)

INITIAL_BACKOFF_SECONDS = 2.0
MAX_BACKOFF_SECONDS = 60.0


class Cancelled(Exception):
    """Raised when the stop event is set while recovering."""


class RecoveryAttemptError(Exception):
    """One login / round-entry attempt failed; the cause is chained."""


class RecoveryState(enum.Enum):
    ACTIVE = "active"
    RECOVERING = "recovering"


class SessionRecovery:
    def __init__(
        self,
        login: Callable[[str, str], requests.Session],
        resolve_round: Callable[[requests.Session], str],
        enter_round: Callable[[requests.Session, str], None],
        username: str,
        password: str,
        *,
        initial_backoff: float = INITIAL_BACKOFF_SECONDS,
        max_backoff: float = MAX_BACKOFF_SECONDS,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._login = login
        self._resolve_round = resolve_round
        self._enter_round = enter_round
        self._username = username
        self._password = password
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        # Replaces the stop-event wait between attempts (tests record delays with it).
        self._sleep = sleep
        self.state = RecoveryState.ACTIVE
        self.round_id: Optional[str] = None

    def _check(self, stop_event: Optional[threading.Event]) -> None:
        if stop_event is not None and stop_event.is_set():
            raise Cancelled("recovery cancelled")

    def attempt(self, stop_event: Optional[threading.Event] = None) -> requests.Session:
        """Run one login + round entry pass and return the new session.

        `stop_event` is checked before each step; a set event raises Cancelled.
        """
        self._check(stop_event)
        try:
            session = self._login(self._username, self._password)
        except Cancelled:
            raise
        except Exception as e:
            logger.error("Login failed: %s", e)
            raise RecoveryAttemptError(f"login failed: {e}") from e

        self._check(stop_event)
        try:
            round_id = self._resolve_round(session)
        except Exception as e:
            logger.error("Resolving selection round failed: %s", e)
            raise RecoveryAttemptError(f"resolving round failed: {e}") from e

        self._check(stop_event)
        try:
            self._enter_round(session, round_id)
        except Exception as e:
            logger.error("Entering selection round %s failed: %s", round_id, e)
            raise RecoveryAttemptError(f"entering round {round_id} failed: {e}") from e

        self.round_id = round_id
        return session

    def recover(self, stop_event: threading.Event) -> requests.Session:
        """Retry `attempt` until it succeeds; raises Cancelled once `stop_event` is set.

        After Cancelled the state stays RECOVERING: no session was re-established.
        """
        self.state = RecoveryState.RECOVERING

        def check_cancelled(retry_state: RetryCallState) -> None:
            if stop_event.is_set():
                raise Cancelled("recovery cancelled")
            logger.info("Session recovery attempt %d", retry_state.attempt_number)

        def wait(seconds: float) -> None:
            if self._sleep is not None:
                self._sleep(seconds)
            else:
                stop_event.wait(seconds)
            if stop_event.is_set():
                raise Cancelled("recovery cancelled")

        def log_backoff(retry_state: RetryCallState) -> None:
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.warning("Recovery attempt %d failed; retrying in %.0fs", retry_state.attempt_number, delay)

        retrying = Retrying(
            retry=retry_if_exception_type(RecoveryAttemptError),
            wait=wait_exponential(multiplier=self.initial_backoff, max=self.max_backoff),
            sleep=wait,
            before=check_cancelled,
            before_sleep=log_backoff,
            reraise=True,
        )
        session = retrying(self.attempt, stop_event)

        self.state = RecoveryState.ACTIVE
        logger.info("Session recovered, entered selection round %s", self.round_id)
        return session


__all__ = [
    "Cancelled",
    "RecoveryAttemptError",
    "RecoveryState",
    "SessionRecovery",
    "INITIAL_BACKOFF_SECONDS",
    "MAX_BACKOFF_SECONDS",
]
