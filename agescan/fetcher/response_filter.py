"""
Response Filter - Decode and Select Profiles

Turns a ``users.get`` response body into ProfileRecords that pass the
geography, activity and age criteria.

A record that fails a criterion is skipped silently: that is a validation
skip, not a fetch failure, and its identifier is never retried. Only a body
that cannot be decoded at all raises (ResponseDecodeError), which fails the
whole batch.
"""

import logging
import time
from datetime import date
from typing import Any, Optional, Sequence

import orjson

from agescan.fetcher.buckets import AgeBucket
from agescan.utils.config import Settings
from agescan.utils.schemas import ProfileRecord

logger = logging.getLogger(__name__)


class ResponseDecodeError(ValueError):
    """Response body is not JSON or lacks the ``response`` array."""


def parse_bdate(value: Any) -> Optional[date]:
    """
    Parse a ``D.M.Y`` birth date.

    Returns None for partial dates (``D.M``), non-numeric parts and
    calendar-invalid or out-of-range dates such as ``31.2.2000``.
    """
    if not isinstance(value, str):
        return None
    parts = value.split(".")
    if len(parts) != 3:
        return None
    try:
        day, month, year = (int(part) for part in parts)
        return date(year, month, day)
    except (ValueError, OverflowError):
        return None


def _city_id(value: Any) -> Optional[int]:
    # Older API versions return a bare id, newer ones {"id": ..., "title": ...}
    if isinstance(value, dict):
        value = value.get("id")
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


class ResponseFilter:
    """Applies city, activity and age criteria to decoded users."""

    def __init__(
        self,
        settings: Settings,
        buckets: Sequence[AgeBucket],
        now: Optional[float] = None,
    ) -> None:
        """
        Args:
            settings: City range and inactivity offset
            buckets: Age buckets; a user must fall into at least one
            now: Reference unix time (defaults to the current time)
        """
        self.settings = settings
        self.buckets = list(buckets)
        self.now = time.time() if now is None else now
        self.today = date.fromtimestamp(self.now)
        self.active_since = self.now - settings.INACTIVE_OFFLINE.total_seconds()

    @staticmethod
    def decode(body: bytes | str) -> list[dict[str, Any]]:
        """
        Decode a response body into its list of user objects.

        Raises:
            ResponseDecodeError: If the body is not JSON or has no ``response`` array
        """
        try:
            payload = orjson.loads(body)
        except orjson.JSONDecodeError as e:
            raise ResponseDecodeError(f"Response is not valid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise ResponseDecodeError("Response is not a JSON object")

        users = payload.get("response")
        if not isinstance(users, list):
            error = payload.get("error")
            if error is not None:
                raise ResponseDecodeError(f"API returned an error: {error}")
            raise ResponseDecodeError("Response has no 'response' array")
        return users

    def in_target_area(self, city: int) -> bool:
        return (
            city == self.settings.TARGET_CITY_ID
            or self.settings.REGION_MIN_CITY_ID <= city <= self.settings.REGION_MAX_CITY_ID
        )

    def is_active(self, user: dict[str, Any]) -> bool:
        last_seen = user.get("last_seen")
        if not isinstance(last_seen, dict):
            return False
        seen_at = last_seen.get("time")
        if not isinstance(seen_at, (int, float)):
            return False
        return seen_at >= self.active_since

    def matches_any_bucket(self, birth_date: date) -> bool:
        return any(bucket.contains(birth_date, self.today) for bucket in self.buckets)

    def select(self, user: Any) -> Optional[ProfileRecord]:
        """Return a ProfileRecord for ``user`` or None if it is skipped."""
        if not isinstance(user, dict):
            return None

        city = _city_id(user.get("city"))
        if city is None or not self.in_target_area(city):
            return None

        if not self.is_active(user):
            return None

        birth_date = parse_bdate(user.get("bdate"))
        if birth_date is None or not self.matches_any_bucket(birth_date):
            return None

        user_id = user.get("uid", user.get("id"))
        if not isinstance(user_id, int):
            return None

        return ProfileRecord(
            id=user_id,
            first_name=str(user.get("first_name") or ""),
            last_name=str(user.get("last_name") or ""),
            birth_date=birth_date,
            city=city,
        )

    def filter(self, users: Sequence[Any]) -> list[ProfileRecord]:
        """Select the users passing every criterion, in response order."""
        records = []
        for user in users:
            record = self.select(user)
            if record is not None:
                records.append(record)
        return records

    def filter_body(self, body: bytes | str) -> list[ProfileRecord]:
        """Decode ``body`` and filter it in one step."""
        users = self.decode(body)
        records = self.filter(users)
        logger.debug("Filtered response", extra={"users": len(users), "selected": len(records)})
        return records
