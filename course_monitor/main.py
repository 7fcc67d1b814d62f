from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from . import config, rounds, scraper
from .auth import CasClient
from .monitor import Monitor
from .notifier import Notifier
from .recovery import Cancelled, SessionRecovery
from .store import SnapshotStore


def setup_logging(level_name: str = config.LOG_LEVEL) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="course-monitor", description="Watch the course-selection portal for new sections")
    p.add_argument("-t", "--timeout", type=float, default=config.REQUEST_TIMEOUT, help="Per-request timeout in seconds")
    p.add_argument("--interval", type=int, default=config.POLL_INTERVAL, help="Seconds between polls")
    p.add_argument("--snapshot", type=str, default=config.SNAPSHOT_PATH, help="Snapshot JSON file")
    p.add_argument("--log-level", type=str, default=config.LOG_LEVEL, help="DEBUG, INFO, WARNING, ERROR")
    return p


def install_signal_handlers(stop_event: threading.Event) -> None:
    logger = logging.getLogger(__name__)

    def _handle(signum, _frame) -> None:
        logger.info("Received signal %s, shutting down…", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def main(argv: Optional[List[str]] = None) -> int:
    """Validate configuration, log in, and run the monitor until interrupted."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    try:
        config.validate()
    except config.ConfigError as e:
        logger.error("%s", e)
        return 1

    interval = args.interval if args.interval > 0 else config.DEFAULT_POLL_INTERVAL
    timeout = args.timeout if args.timeout > 0 else config.DEFAULT_REQUEST_TIMEOUT

    logger.info(
        "Starting: username=%s onebot=%s groups=%d courses=%d poll_interval=%ds",
        config.USERNAME,
        config.ONEBOT_URL,
        len(config.GROUP_LIST),
        len(config.COURSE_LIST),
        interval,
    )

    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    cas = CasClient(timeout=timeout)
    recovery = SessionRecovery(
        login=lambda u, p: cas.login(u, p, stop_event),
        resolve_round=lambda s: rounds.get_selection_round_id(s, timeout=timeout),
        enter_round=lambda s, rid: rounds.enter_selection_round(s, rid, timeout=timeout),
        username=config.USERNAME,
        password=config.PASSWORD,
    )

    logger.info("Logging in to the portal as %s", config.USERNAME)
    try:
        session = recovery.recover(stop_event)
    except Cancelled:
        logger.info("Interrupted before login completed")
        return 0

    notifier = Notifier(config.ONEBOT_URL, config.ONEBOT_TOKEN, config.GROUP_LIST)
    monitor = Monitor(
        search=lambda s, kw, ev: scraper.search(s, kw, ev, timeout=timeout),
        recovery=recovery,
        notifier=notifier,
        store=SnapshotStore(args.snapshot),
        keywords=config.COURSE_LIST,
        interval=interval,
        session=session,
    )
    monitor.run(stop_event)
    logger.info("Exited")
    return 0


if __name__ == "__main__":
    sys.exit(main())
