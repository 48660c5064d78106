"""
Age Buckets - Inclusive Age Ranges Bound to Output Files

A person belongs to bucket [min_age, max_age] when their whole-year age today
lies in that range. Age is computed with calendar-year arithmetic on the
birth date, so someone born on 29 February turns a year older on 28 February
in non-leap years.
"""

import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional

from agescan.utils.config import Settings
from agescan.utils.schemas import CSV_HEADER
from agescan.utils.sinks import LockedSink, open_sink

logger = logging.getLogger(__name__)


def add_years(day: date, years: int) -> date:
    """Shift a date by whole calendar years, clamping 29 February to the 28th."""
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        return day.replace(year=day.year + years, day=28)


@dataclass
class AgeBucket:
    min_age: int
    max_age: int
    sink: LockedSink

    def contains(self, birth_date: date, today: Optional[date] = None) -> bool:
        today = today or date.today()
        try:
            lower = add_years(birth_date, self.min_age)
            upper = add_years(birth_date, self.max_age + 1)
        except (ValueError, OverflowError):
            # Shifted past date.max / date.min
            return False
        return lower <= today < upper

    @property
    def label(self) -> str:
        if self.min_age == self.max_age:
            return str(self.min_age)
        return f"{self.min_age}-{self.max_age}"


def build_age_buckets(settings: Settings, output_dir: str | Path) -> list[AgeBucket]:
    """
    Create the configured buckets with their CSV files.

    One bucket per child age (``<age>.csv``) and a single adults bucket
    (``adults.csv``). Every file starts with the CSV header.
    """
    out = Path(output_dir)
    buckets = [
        AgeBucket(age, age, open_sink(out / f"{age}.csv", header=CSV_HEADER))
        for age in range(settings.MIN_CHILD_AGE, settings.MAX_CHILD_AGE + 1)
    ]
    buckets.append(
        AgeBucket(
            settings.MIN_ADULT_AGE,
            settings.MAX_ADULT_AGE,
            open_sink(out / "adults.csv", header=CSV_HEADER),
        )
    )

    logger.info(
        "Age buckets ready",
        extra={"buckets": [bucket.label for bucket in buckets], "output_dir": str(out)},
    )
    return buckets
