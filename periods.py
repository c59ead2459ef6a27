import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

from errors import ValidationError

DateLike = Union[date, datetime, str]

END_OF_DAY = time(23, 59, 59, 999000)
MONTH_TOKEN_RE = re.compile(r"^\d{4}-\d{2}$")


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime

    @property
    def months(self) -> list[str]:
        return months_in_range(self.start, self.end)


def _as_datetime(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def month_token(value: Union[date, datetime]) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def parse_month_token(token: Optional[str]) -> tuple[int, int]:
    if not token or not MONTH_TOKEN_RE.match(token):
        raise ValidationError("Invalid month format. Use YYYY-MM.")
    year, month = int(token[:4]), int(token[5:])
    if not 1 <= month <= 12:
        raise ValidationError("Invalid month format. Use YYYY-MM.")
    return year, month


def _next_month(first: datetime) -> datetime:
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def months_in_range(
    start: Union[date, datetime], end: Union[date, datetime]
) -> list[str]:
    """Month tokens for every month whose first day falls in [start's month, end].

    Stepping starts at the first day of ``start``'s month, so the month that
    contains ``start`` is always included when ``start <= end``.
    """
    current = datetime(start.year, start.month, 1)
    end_dt = _as_datetime(end)
    months: list[str] = []
    while current <= end_dt:
        months.append(month_token(current))
        current = _next_month(current)
    return months


def month_bounds(value: Union[date, datetime]) -> tuple[datetime, datetime]:
    first = datetime(value.year, value.month, 1)
    last_day = _next_month(first).date() - date.resolution
    return first, datetime.combine(last_day, END_OF_DAY)


def parse_timestamp(value: DateLike) -> datetime:
    if isinstance(value, (date, datetime)):
        parsed = _as_datetime(value)
    else:
        text = str(value).strip()
        try:
            parsed = _as_datetime(date.fromisoformat(text))
        except ValueError:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError as exc:
                raise ValidationError(f"Invalid date: {value!r}") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def resolve_range(start: Optional[DateLike], end: Optional[DateLike]) -> DateRange:
    if not start or not end:
        raise ValidationError("Start date and end date are required.")
    start_date = parse_timestamp(start).date()
    end_date = parse_timestamp(end).date()
    if start_date > end_date:
        raise ValidationError("Start date must be before end date")
    return DateRange(
        start=datetime.combine(start_date, time.min),
        end=datetime.combine(end_date, END_OF_DAY),
    )


def current_month(tz_name: str, *, today: Optional[date] = None) -> str:
    today = today or datetime.now(ZoneInfo(tz_name)).date()
    return month_token(today)
