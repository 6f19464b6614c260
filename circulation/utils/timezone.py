from datetime import datetime
import pytz
from circulation.config import settings

LOCAL_TZ = pytz.timezone(settings.timezone)

def now_local() -> datetime:
    """Get current datetime in the configured timezone."""
    return datetime.now(LOCAL_TZ)

def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value.astimezone(pytz.utc)
