"""Polling loop: query keywords, detect new sections, notify, persist."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

import requests

from . import diff
from .models import Course, Snapshot
from .notifier import Notifier, format_courses_message
from .recovery import Cancelled, SessionRecovery
from .scraper import SessionExpiredError
from .store import SnapshotCorruptError, SnapshotStore

logger = logging.getLogger(__name__)

SearchFn = Callable[[requests.Session, str, Optional[threading.Event]], List[Course]]


class CycleCancelled(Exception):
    """The stop event was set while keywords were being queried."""


@dataclass
class MonitorState:
    snapshot: Snapshot = field(default_factory=dict)
    has_baseline: bool = False
    session: Optional[requests.Session] = None


class Monitor:
    def __init__(
        self,
        search: SearchFn,
        recovery: SessionRecovery,
        notifier: Notifier,
        store: SnapshotStore,
        keywords: Sequence[str],
        interval: float,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.search = search
        self.recovery = recovery
        self.notifier = notifier
        self.store = store
        self.keywords = list(keywords)
        self.interval = interval
        self.state = MonitorState(session=session)
        self._load_baseline()

    def _load_baseline(self) -> None:
        try:
            snapshot = self.store.load()
        except (SnapshotCorruptError, OSError) as e:
            logger.warning("Could not load snapshot %s, starting in baseline mode: %s", self.store.path, e)
            return
        if snapshot is None:
            logger.info("No snapshot at %s; the first poll will establish a baseline", self.store.path)
            return
        self.state.snapshot = snapshot
        self.state.has_baseline = True
        logger.info("Loaded snapshot %s with %d sections", self.store.path, len(snapshot))

    def run(self, stop_event: threading.Event) -> None:
        """Poll until `stop_event` is set; the first cycle runs immediately."""
        logger.info("Monitor started: interval=%ss, keywords=%d", self.interval, len(self.keywords))
        while not stop_event.is_set():
            started = time.monotonic()
            try:
                self.run_cycle(stop_event)
            except Cancelled:
                break
            except Exception:
                logger.exception("Unexpected error during poll cycle")
            remaining = self.interval - (time.monotonic() - started)
            if remaining > 0:
                stop_event.wait(remaining)
        logger.info("Monitor stopped")

    def query_current(self, stop_event: threading.Event) -> Snapshot:
        """Search every keyword and merge by key; later keywords win on duplicates."""
        current: Dict[str, Course] = {}
        for keyword in self.keywords:
            if stop_event.is_set():
                raise CycleCancelled()
            courses = self.search(self.state.session, keyword, stop_event)
            for course in courses:
                if not course.has_identity:
                    continue
                current[course.key] = course
        if stop_event.is_set():
            raise CycleCancelled()
        return current

    def run_cycle(self, stop_event: threading.Event) -> None:
        """One poll: query, then baseline or diff/notify, then commit and persist."""
        if stop_event.is_set():
            return
        started = time.monotonic()

        try:
            current = self.query_current(stop_event)
        except CycleCancelled:
            return
        except SessionExpiredError as e:
            logger.warning("Session expired, re-authenticating: %s", e)
            self.state.session = self.recovery.recover(stop_event)
            return
        except Exception:
            logger.exception("Query failed, skipping this cycle")
            return

        if not self.state.has_baseline:
            self._commit(current)
            self.state.has_baseline = True
            logger.info(
                "Baseline established: %d sections (%.2fs)", len(current), time.monotonic() - started
            )
            return

        added = diff.added(self.state.snapshot, current)
        if added:
            message = format_courses_message(added)
            try:
                results = self.notifier.broadcast(message)
            except Exception:
                logger.exception("Broadcasting %d new sections failed", len(added))
            else:
                failed = [group for group, err in results.items() if err is not None]
                if failed:
                    logger.error("Notification failed for groups: %s", ", ".join(failed))
                else:
                    logger.info("Notified %d new sections", len(added))

        self._commit(current)
        logger.info(
            "Cycle finished: total=%d, added=%d (%.2fs)",
            len(current),
            len(added),
            time.monotonic() - started,
        )

    def _commit(self, snapshot: Snapshot) -> None:
        self.state.snapshot = snapshot
        try:
            self.store.save(snapshot)
        except OSError as e:
            logger.warning("Saving snapshot failed: %s", e)


__all__ = ["Monitor", "MonitorState", "CycleCancelled"]
