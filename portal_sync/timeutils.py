"""UTC time helpers shared by the checkpoint store and the orchestrator."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalize a datetime to aware UTC.

    Naive values (e.g. read back from SQLite) are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat_z(dt: datetime) -> str:
    """Serialize to ISO-8601 with a trailing 'Z', second precision."""
    return ensure_utc(dt).replace(microsecond=0).isoformat().replace("+00:00", "Z")
