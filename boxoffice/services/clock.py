"""Time source for hold and order expiry.

Every expiry comparison goes through ``now()`` so that all server instances
agree on the current time. With ``use_database_clock`` enabled the database
server's clock is used; otherwise the process clock in UTC.
"""

from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from boxoffice.config import get_settings

settings = get_settings()


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def now(db: Session = None) -> datetime:
    """Return the current time as a naive UTC datetime."""
    if db is not None and settings.use_database_clock:
        value = db.scalar(select(func.current_timestamp()))
        if isinstance(value, datetime):
            return _naive_utc(value)
    return datetime.now(timezone.utc).replace(tzinfo=None)
