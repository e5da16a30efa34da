from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo
from ptscheduler.configuration.config import Config

def get_current_time() -> datetime:
    """
    Dependency that provides "now" as a UTC timezone-aware datetime.
    Routers inject it so that cutoff and expiry rules can be tested
    with a fixed instant.
    """
    return datetime.now(timezone.utc)

def get_schedule_timezone() -> ZoneInfo:
    """Timezone in which session dates and HHMM slots are interpreted"""
    return ZoneInfo(Config.TIMEZONE)

def local_today(now: datetime) -> date:
    """Calendar date of `now` in the schedule timezone"""
    return now.astimezone(get_schedule_timezone()).date()
