"""
Time provider abstraction and financial-year helpers

Time is injectable so tests can pin "today" for bill dates, completion
dates and security-deposit maturity.

Fun fact: The Indian financial year runs from 1 April to 31 March, a
habit inherited from the British tax year, which itself moved to April
when the calendar reform of 1752 shifted quarter day by eleven days!
"""

from datetime import date, datetime, timedelta, timezone
from typing import Protocol

FINANCIAL_YEAR_START_MONTH = 4


class TimeProvider(Protocol):
    """Protocol for time providers - allows deterministic testing"""

    def now(self) -> datetime:
        """Return current UTC datetime"""
        ...


class RealTimeProvider:
    """Production time provider using system clock"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class TestTimeProvider:
    """
    Controllable time provider for deterministic tests

    Tests can freeze the clock, move it to a given instant, or advance it
    by whole days (bills and completion dates are day-granular).
    """

    __test__ = False  # not a pytest test class

    def __init__(self, initial_time: datetime | None = None) -> None:
        self._current_time = initial_time or datetime(2024, 4, 1, 10, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current_time

    def set_time(self, dt: datetime) -> None:
        self._current_time = dt

    def advance_seconds(self, seconds: int) -> None:
        self._current_time += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._current_time += timedelta(days=days)


def financial_year_of(day: date) -> str:
    """
    Label of the financial year containing ``day``

    >>> financial_year_of(date(2024, 3, 31))
    '2023-24'
    >>> financial_year_of(date(2024, 4, 1))
    '2024-25'
    """
    start = day.year if day.month >= FINANCIAL_YEAR_START_MONTH else day.year - 1
    return f"{start}-{str(start + 1)[-2:]}"


def financial_year_range(label: str) -> tuple[date, date]:
    """
    Inclusive first and last day of a financial year label such as "2024-25"

    Raises:
        ValueError: If the label is not of the form YYYY-YY with consecutive years
    """
    try:
        start_text, end_text = label.split("-")
        start = int(start_text)
        end_suffix = int(end_text)
    except ValueError as e:
        raise ValueError(f"Financial year must look like '2024-25', got {label!r}") from e

    if len(start_text) != 4 or len(end_text) != 2 or (start + 1) % 100 != end_suffix:
        raise ValueError(f"Financial year must look like '2024-25', got {label!r}")

    return (
        date(start, FINANCIAL_YEAR_START_MONTH, 1),
        date(start + 1, FINANCIAL_YEAR_START_MONTH, 1) - timedelta(days=1),
    )
