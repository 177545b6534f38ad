"""
Holiday Calendar for the compliance engine.

An immutable set of non-working dates for one jurisdiction, covering an
explicit set of years. Lookups outside the covered years fail fast: a
missing year would silently count holidays as working days and produce a
deadline that is too early.

Sources:
- builtin: national holiday tables shipped with the engine
- database: the holiday_calendar table in Supabase
"""
import logging
from datetime import date, datetime
from typing import Iterable, Optional

from app.core.exceptions import ConfigurationError, HolidayCalendarNotLoadedError


logger = logging.getLogger(__name__)


# Dutch national holidays (nationale feestdagen). King's Day moves to the
# 26th when the 27th is a Sunday.
DUTCH_PUBLIC_HOLIDAYS: dict[int, dict[date, str]] = {
    2024: {
        date(2024, 1, 1): "Nieuwjaarsdag",
        date(2024, 3, 29): "Goede Vrijdag",
        date(2024, 3, 31): "Eerste Paasdag",
        date(2024, 4, 1): "Tweede Paasdag",
        date(2024, 4, 27): "Koningsdag",
        date(2024, 5, 5): "Bevrijdingsdag",
        date(2024, 5, 9): "Hemelvaartsdag",
        date(2024, 5, 19): "Eerste Pinksterdag",
        date(2024, 5, 20): "Tweede Pinksterdag",
        date(2024, 12, 25): "Eerste Kerstdag",
        date(2024, 12, 26): "Tweede Kerstdag",
    },
    2025: {
        date(2025, 1, 1): "Nieuwjaarsdag",
        date(2025, 4, 18): "Goede Vrijdag",
        date(2025, 4, 20): "Eerste Paasdag",
        date(2025, 4, 21): "Tweede Paasdag",
        date(2025, 4, 26): "Koningsdag",
        date(2025, 5, 5): "Bevrijdingsdag",
        date(2025, 5, 29): "Hemelvaartsdag",
        date(2025, 6, 8): "Eerste Pinksterdag",
        date(2025, 6, 9): "Tweede Pinksterdag",
        date(2025, 12, 25): "Eerste Kerstdag",
        date(2025, 12, 26): "Tweede Kerstdag",
    },
    2026: {
        date(2026, 1, 1): "Nieuwjaarsdag",
        date(2026, 4, 3): "Goede Vrijdag",
        date(2026, 4, 5): "Eerste Paasdag",
        date(2026, 4, 6): "Tweede Paasdag",
        date(2026, 4, 27): "Koningsdag",
        date(2026, 5, 5): "Bevrijdingsdag",
        date(2026, 5, 14): "Hemelvaartsdag",
        date(2026, 5, 24): "Eerste Pinksterdag",
        date(2026, 5, 25): "Tweede Pinksterdag",
        date(2026, 12, 25): "Eerste Kerstdag",
        date(2026, 12, 26): "Tweede Kerstdag",
    },
    2027: {
        date(2027, 1, 1): "Nieuwjaarsdag",
        date(2027, 3, 26): "Goede Vrijdag",
        date(2027, 3, 28): "Eerste Paasdag",
        date(2027, 3, 29): "Tweede Paasdag",
        date(2027, 4, 27): "Koningsdag",
        date(2027, 5, 5): "Bevrijdingsdag",
        date(2027, 5, 6): "Hemelvaartsdag",
        date(2027, 5, 16): "Eerste Pinksterdag",
        date(2027, 5, 17): "Tweede Pinksterdag",
        date(2027, 12, 25): "Eerste Kerstdag",
        date(2027, 12, 26): "Tweede Kerstdag",
    },
}

BUILTIN_HOLIDAYS: dict[str, dict[int, dict[date, str]]] = {
    "NL": DUTCH_PUBLIC_HOLIDAYS,
}


def normalize_date(value: date | datetime) -> date:
    """Drop any time component; dates are compared as calendar days."""
    if isinstance(value, datetime):
        return value.date()
    return value


class HolidayCalendar:
    """
    Read-only holiday lookup for one jurisdiction.

    Safe to share between concurrent evaluations: nothing mutates after
    construction.
    """

    __slots__ = ("_jurisdiction", "_years", "_holidays")

    def __init__(
        self,
        jurisdiction: str,
        years: Iterable[int],
        holidays: dict[date, str]
    ):
        covered = frozenset(years)
        if not covered:
            raise ConfigurationError(
                f"Holiday calendar for {jurisdiction} covers no years",
                config_key="holiday_years"
            )

        normalized = {normalize_date(day): name for day, name in holidays.items()}
        stray = sorted(day for day in normalized if day.year not in covered)
        if stray:
            raise ConfigurationError(
                f"Holiday {stray[0].isoformat()} is outside the covered years",
                config_key="holiday_years",
                actual_value=stray[0].isoformat()
            )

        object.__setattr__(self, "_jurisdiction", jurisdiction)
        object.__setattr__(self, "_years", covered)
        object.__setattr__(self, "_holidays", dict(normalized))

    def __setattr__(self, name, value):
        raise AttributeError("HolidayCalendar is immutable")

    def __repr__(self) -> str:
        years = ",".join(str(year) for year in sorted(self._years))
        return f"HolidayCalendar({self._jurisdiction!r}, years=[{years}], holidays={len(self._holidays)})"

    @property
    def jurisdiction(self) -> str:
        return self._jurisdiction

    @property
    def covered_years(self) -> frozenset[int]:
        return self._years

    def covers(self, day: date | datetime) -> bool:
        return normalize_date(day).year in self._years

    def _require_covered(self, day: date) -> None:
        if day.year not in self._years:
            raise HolidayCalendarNotLoadedError(self._jurisdiction, day.year)

    def is_holiday(self, day: date | datetime) -> bool:
        """Exact calendar-day lookup."""
        day = normalize_date(day)
        self._require_covered(day)
        return day in self._holidays

    def holiday_name(self, day: date | datetime) -> Optional[str]:
        day = normalize_date(day)
        self._require_covered(day)
        return self._holidays.get(day)

    def holidays_between(self, start: date, end: date) -> list[tuple[date, str]]:
        """Holidays within [start, end], in date order."""
        for year in range(start.year, end.year + 1):
            if year not in self._years:
                raise HolidayCalendarNotLoadedError(self._jurisdiction, year)
        return sorted(
            (day, name) for day, name in self._holidays.items() if start <= day <= end
        )


def builtin_holiday_calendar(jurisdiction: str, years: Iterable[int]) -> HolidayCalendar:
    """Build a calendar from the tables shipped with the engine."""
    years = sorted(set(years))
    table = BUILTIN_HOLIDAYS.get(jurisdiction.upper())
    if table is None:
        raise ConfigurationError(
            f"No built-in holiday table for jurisdiction {jurisdiction}",
            config_key="jurisdiction_code",
            actual_value=jurisdiction
        )

    holidays: dict[date, str] = {}
    for year in years:
        if year not in table:
            raise HolidayCalendarNotLoadedError(jurisdiction, year)
        holidays.update(table[year])

    return HolidayCalendar(jurisdiction.upper(), years, holidays)


def database_holiday_calendar(db, jurisdiction: str, years: Iterable[int]) -> HolidayCalendar:
    """
    Build a calendar from the holiday_calendar table.

    Args:
        db: SupabaseClient wrapper (exposes .client)
        jurisdiction: Country code, rows with a NULL country apply everywhere
        years: Years that must each have at least one holiday row
    """
    years = sorted(set(years))
    if not years:
        raise ConfigurationError("No holiday years requested", config_key="holiday_years")

    response = db.client.table("holiday_calendar").select(
        "holiday_date, name, country_code"
    ).gte(
        "holiday_date", date(years[0], 1, 1).isoformat()
    ).lte(
        "holiday_date", date(years[-1], 12, 31).isoformat()
    ).execute()

    holidays: dict[date, str] = {}
    for row in (response.data or []):
        country = row.get("country_code")
        if country and country.upper() != jurisdiction.upper():
            continue
        day = date.fromisoformat(str(row["holiday_date"])[:10])
        if day.year in years:
            holidays[day] = row.get("name") or "Holiday"

    loaded_years = {day.year for day in holidays}
    for year in years:
        if year not in loaded_years:
            raise HolidayCalendarNotLoadedError(jurisdiction, year)

    logger.info(f"Loaded {len(holidays)} holidays for {jurisdiction} from database ({years[0]}-{years[-1]})")
    return HolidayCalendar(jurisdiction.upper(), years, holidays)


def load_holiday_calendar(
    jurisdiction: str,
    years: Iterable[int],
    source: str = "builtin",
    db=None
) -> HolidayCalendar:
    """
    Load the holiday calendar for a jurisdiction.

    Raises:
        ConfigurationError: unknown source, or a requested year has no data
    """
    if source == "builtin":
        calendar = builtin_holiday_calendar(jurisdiction, years)
    elif source == "database":
        if db is None:
            raise ConfigurationError(
                "Database holiday source requires a database client",
                config_key="holiday_source",
                actual_value=source
            )
        calendar = database_holiday_calendar(db, jurisdiction, years)
    else:
        raise ConfigurationError(
            f"Unknown holiday source: {source}",
            config_key="holiday_source",
            expected_type="builtin | database",
            actual_value=source
        )

    logger.info(f"Holiday calendar ready: {calendar!r}")
    return calendar
