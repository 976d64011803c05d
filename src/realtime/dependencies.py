"""Dependencies for real-time routes."""

from collections.abc import Callable

from src.realtime.feed import ChangeFeed


# Feed getter function (set by main.py)
_change_feed_getter: Callable[[], ChangeFeed] | None = None


def set_change_feed_getter(getter: Callable[[], ChangeFeed]) -> None:
    """Set the change feed getter function."""
    global _change_feed_getter  # noqa: PLW0603 - Required for DI pattern
    _change_feed_getter = getter


def get_change_feed() -> ChangeFeed:
    """Get the process-wide ChangeFeed instance."""
    if _change_feed_getter is not None:
        return _change_feed_getter()

    msg = "ChangeFeed not configured"
    raise RuntimeError(msg)
