import datetime
from dataclasses import dataclass

from .errors import InvalidRangeError


def normalize_date(value) -> datetime.date:
    """Drops the time of day so that comparisons happen on calendar days."""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        # browsers send UTC timestamps ending in "Z"
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            return datetime.datetime.fromisoformat(text).date()
        except ValueError:
            raise InvalidRangeError(f"Invalid date: {value!r}")
    raise InvalidRangeError(f"Invalid date: {value!r}")


@dataclass(frozen=True)
class DateRange:
    """
    Half-open interval [start, end) of calendar days.

    A stay from June 1st to June 4th occupies the nights of the 1st, 2nd and
    3rd; another stay may start on the 4th.
    """
    start: datetime.date
    end: datetime.date

    def __post_init__(self):
        start = normalize_date(self.start)
        end = normalize_date(self.end)
        if start >= end:
            raise InvalidRangeError("Check-out date must be after check-in date")
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @property
    def nights(self) -> int:
        return (self.end - self.start).days

    def overlaps(self, other: "DateRange") -> bool:
        return self.start < other.end and other.start < self.end

    def __str__(self):
        return f"[{self.start.isoformat()}, {self.end.isoformat()})"
