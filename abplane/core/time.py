from datetime import datetime, timezone
from typing import Optional

UTC = timezone.utc


def to_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize to an aware UTC datetime. Naive values are taken to be UTC already."""
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)
