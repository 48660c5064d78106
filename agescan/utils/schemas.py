"""
Pydantic Schemas - Profile Records

Defines the record written to the CSV outputs:
- ProfileRecord: a filtered, bucketed user profile

Usage:
    from agescan.utils.schemas import CSV_HEADER, ProfileRecord

    record = ProfileRecord(id=1, first_name="Ivan", last_name="Petrov",
                           birth_date=date(2005, 6, 15), city=104)
    sink.write_lines([record.to_csv_line()])
"""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field

CSV_HEADER = "Id;FirstName;LastName;BYear;BMonth;BDay;City"

_STRIPPED_CHARS = str.maketrans("", "", ",;\"")


def strip_csv(value: str) -> str:
    """Remove separators and quotes from a free-text field."""
    return value.translate(_STRIPPED_CHARS)


class ProfileRecord(BaseModel):
    """User profile that passed every filter.

    Names are kept as received; they are stripped of ``,``, ``;`` and ``"``
    only when rendered to CSV.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="User ID")
    first_name: str = Field(default="", description="First name")
    last_name: str = Field(default="", description="Last name")
    birth_date: date = Field(..., description="Birth date")
    city: int = Field(..., description="City ID")

    def to_csv_line(self) -> str:
        return ";".join(
            (
                str(self.id),
                strip_csv(self.first_name),
                strip_csv(self.last_name),
                str(self.birth_date.year),
                str(self.birth_date.month),
                str(self.birth_date.day),
                str(self.city),
            )
        )
