from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from config import get_settings


class InvalidRange(ValueError):
    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


@dataclass(frozen=True)
class Window:
    start: date
    end: date

    @property
    def length_days(self) -> int:
        """Number of calendar days covered, both ends included."""
        return (self.end - self.start).days + 1

    def preceding(self) -> "Window":
        previous_end = self.start - timedelta(days=1)
        previous_start = previous_end - (self.end - self.start)
        return Window(previous_start, previous_end)

    def days(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def _parse_bound(field: str, value: str) -> date:
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError as exc:
        raise InvalidRange(field, f"'{field}' is not a valid yyyy-MM-dd date") from exc


def resolve_window(
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
    default_days: Optional[int] = None,
) -> Window:
    if default_days is None:
        default_days = get_settings().default_window_days

    end_date = _parse_bound("to", end) if end else (today or local_today())
    if start:
        start_date = _parse_bound("from", start)
    else:
        try:
            start_date = end_date - timedelta(days=default_days)
        except OverflowError as exc:
            raise InvalidRange("to", "'to' is too early for a default window") from exc

    if start_date > end_date:
        raise InvalidRange("from", "'from' must not be after 'to'")

    window = Window(start_date, end_date)
    # the comparison period must fit in the calendar as well
    try:
        window.preceding()
    except OverflowError as exc:
        raise InvalidRange("from", "'from' is too early to compare periods") from exc
    return window
