"""
Course-selection monitor package.

This package contains modules for logging in to the QFNU course-selection
portal, searching it for configured course keywords, persisting the last
seen result set, notifying QQ groups through OneBot and coordinating the
polling loop.  See README.md for details.
"""

__all__ = [
    "auth",
    "config",
    "diff",
    "main",
    "models",
    "monitor",
    "notifier",
    "recovery",
    "rounds",
    "scraper",
    "store",
    "utils",
]
