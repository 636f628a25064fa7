from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


ISO_DATE_FORMAT = "%Y-%m-%d"


@dataclass(frozen=True)
class DateRange:
    start: Optional[date]
    end: Optional[date]


def parse_iso_date(value: str) -> date:
    # strptime rejects the compact and week-date forms fromisoformat accepts
    return datetime.strptime(value, ISO_DATE_FORMAT).date()


def resolve_range(start: Optional[str], end: Optional[str]) -> DateRange:
    start_date = None
    end_date = None
    if start:
        try:
            start_date = parse_iso_date(start)
        except ValueError as exc:
            raise ValueError("'from' must use the YYYY-MM-DD format") from exc
    if end:
        try:
            end_date = parse_iso_date(end)
        except ValueError as exc:
            raise ValueError("'to' must use the YYYY-MM-DD format") from exc
    if start_date and end_date and start_date > end_date:
        raise ValueError("'from' must not be after 'to'")
    return DateRange(start_date, end_date)


def reporting_zone() -> ZoneInfo:
    return ZoneInfo(get_settings().timezone)


def local_now(zone: Optional[ZoneInfo] = None) -> datetime:
    return datetime.now(zone or reporting_zone())


def to_zone(moment: datetime, zone: ZoneInfo) -> datetime:
    """Convert ``moment`` to ``zone``; naive values are read as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(zone)


def to_utc_naive(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def same_month(first: datetime, second: datetime, zone: ZoneInfo) -> bool:
    a = to_zone(first, zone)
    b = to_zone(second, zone)
    return (a.year, a.month) == (b.year, b.month)
