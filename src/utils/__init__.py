"""Utility modules."""

from src.utils.dates import ensure_utc_aware, utc_now


__all__ = ["ensure_utc_aware", "utc_now"]
