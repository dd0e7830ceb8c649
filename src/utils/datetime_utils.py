"""Datetime helpers shared by models and services."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Return the current UTC time as a naive datetime.

    Timestamps (lot receipt, item start/finish, pallet confirmation) are
    stored naive in UTC, which is what SQLite DateTime columns round-trip.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
