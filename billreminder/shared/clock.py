"""Injectable time sources and display formatting."""

from collections.abc import Callable
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(UTC)


def format_display_time(moment: datetime, timezone: str) -> str:
    """Render a timestamp the way reminder recipients read it.

    Matches the en-IN locale layout, e.g. ``19/10/2026, 04:50:00 pm``.

    Args:
        moment: Timezone-aware timestamp (naive values are taken as UTC)
        timezone: IANA time zone name, e.g. ``Asia/Kolkata``

    Returns:
        Formatted local time string
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    local = moment.astimezone(ZoneInfo(timezone))
    return local.strftime("%d/%m/%Y, %I:%M:%S ") + local.strftime("%p").lower()
