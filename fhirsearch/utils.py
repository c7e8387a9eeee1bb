import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple

from yarl import URL

from fhirsearch.errors import InvalidParameterError

DATE_PATTERN = re.compile(
    r"^(?P<year>\d{4})"
    r"(-(?P<month>\d{2})"
    r"(-(?P<day>\d{2})"
    r"(T(?P<hour>\d{2}):(?P<minute>\d{2})(:(?P<second>\d{2})(\.\d+)?)?"
    r"(?P<tz>Z|[+-]\d{2}:\d{2})?)?)?)?$"
)
PREFIX_PATTERN = re.compile(r"^(eq|ne|gt|lt|ge|le|sa|eb|ap)(.*)$")


def get_id_part(reference: Optional[str]) -> Optional[str]:
    """Returns the logical id of a reference.

    Accepts a bare id ("abc"), a relative reference ("Patient/abc"), a versioned
    reference ("Patient/abc/_history/2") or an absolute URL.
    """
    if reference is None:
        return None
    reference = reference.strip()
    if not reference:
        return reference

    url = URL(reference)
    parts = [p for p in (url.parts if url.is_absolute() else reference.split("/")) if p and p != "/"]
    if "_history" in parts:
        parts = parts[: parts.index("_history")]
    return parts[-1] if parts else reference


def check_prefix(value: str) -> Tuple[Optional[str], str]:
    prefix = PREFIX_PATTERN.search(value)
    if prefix and prefix.group(2)[:1].isdigit():
        return prefix.group(1), prefix.group(2)
    return None, value


def _parse_tz(tz: Optional[str]) -> Optional[timezone]:
    if tz is None:
        return None
    if tz == "Z":
        return timezone.utc
    sign = -1 if tz[0] == "-" else 1
    hours, minutes = tz[1:].split(":")
    return timezone(sign * timedelta(hours=int(hours), minutes=int(minutes)))


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_fhir_date(value) -> Tuple[datetime, datetime]:
    """Returns the half-open interval [start, end) covered by a FHIR date value.

    The width of the interval follows the precision of the value: "2021" covers the
    whole year, "2021-03" the month, "2021-03-15" the day and so on. Times are
    normalized to naive UTC.
    """
    if isinstance(value, datetime):
        start = to_naive_utc(value)
        return start, start + timedelta(seconds=1)
    if isinstance(value, date):
        start = datetime(value.year, value.month, value.day)
        return start, start + timedelta(days=1)
    if not isinstance(value, str):
        raise InvalidParameterError(f"invalid date value: {value!r}")

    match = DATE_PATTERN.match(value.strip())
    if not match:
        raise InvalidParameterError(f"invalid date value: {value!r}")
    parts = match.groupdict()

    try:
        year = int(parts["year"])
        if parts["month"] is None:
            return datetime(year, 1, 1), datetime(year + 1, 1, 1)

        month = int(parts["month"])
        if parts["day"] is None:
            start = datetime(year, month, 1)
            end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
            return start, end

        day = int(parts["day"])
        if parts["hour"] is None:
            start = datetime(year, month, day)
            return start, start + timedelta(days=1)

        if parts["second"] is None:
            start = datetime(year, month, day, int(parts["hour"]), int(parts["minute"]))
            width = timedelta(minutes=1)
        else:
            start = datetime(
                year, month, day, int(parts["hour"]), int(parts["minute"]), int(parts["second"])
            )
            width = timedelta(seconds=1)
    except ValueError as e:
        raise InvalidParameterError(f"invalid date value: {value!r} ({e})")

    tz = _parse_tz(parts["tz"])
    if tz is not None:
        start = to_naive_utc(start.replace(tzinfo=tz))
    return start, start + width


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value):
    """Attaches UTC to naive datetimes read back from the store."""
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
