"""Shared fixtures: settings, outputs and a fake users.get API."""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

import httpx
import pytest

from agescan.fetcher.buckets import AgeBucket
from agescan.utils.config import Settings
from agescan.utils.logging import ProgressLog
from agescan.utils.schemas import CSV_HEADER
from agescan.utils.sinks import open_sink

# 2024-06-01 12:00 local time; a user born 15.6.2005 is 18 on this day
NOW = datetime(2024, 6, 1, 12, 0, 0).timestamp()

API_URL = "https://api.test/method/users.get?fields=city,last_seen,bdate&user_ids="


def make_user(
    uid: int,
    city: Any = 104,
    last_seen: Optional[float] = NOW,
    bdate: Optional[str] = "15.6.2005",
    first_name: str = "Ivan",
    last_name: str = "Petrov",
) -> dict[str, Any]:
    user: dict[str, Any] = {"uid": uid, "first_name": first_name, "last_name": last_name}
    if city is not None:
        user["city"] = city
    if last_seen is not None:
        user["last_seen"] = {"time": int(last_seen), "platform": 7}
    if bdate is not None:
        user["bdate"] = bdate
    return user


def requested_ids(request: httpx.Request) -> list[int]:
    return [int(part) for part in request.url.params["user_ids"].split(",")]


def users_response(
    request: httpx.Request, user_factory: Callable[[int], dict[str, Any]] = make_user
) -> httpx.Response:
    users = [user_factory(uid) for uid in requested_ids(request)]
    return httpx.Response(200, json={"response": users}, request=request)


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "API_URL": API_URL,
        "MAX_USER_ID": 50,
        "TARGET_CONCURRENT_REQUESTS": 3,
        "MAX_URL_LENGTH": len(API_URL) + 15,
        "MAX_ATTEMPTS": 3,
        "PASS_RETRY_DELAY": 0,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(OUTPUT_DIR=str(tmp_path))


@pytest.fixture
def progress(caplog) -> ProgressLog:
    caplog.set_level(logging.INFO)
    return ProgressLog(logging.getLogger("agescan.tests.progress"))


@pytest.fixture
def buckets(tmp_path):
    children = AgeBucket(13, 18, open_sink(tmp_path / "children.csv", header=CSV_HEADER))
    adults = AgeBucket(28, 45, open_sink(tmp_path / "adults.csv", header=CSV_HEADER))
    yield [children, adults]
    children.sink.close()
    adults.sink.close()


@pytest.fixture
def combined_sink(tmp_path):
    sink = open_sink(tmp_path / "result.csv", header=CSV_HEADER)
    yield sink
    sink.close()


@pytest.fixture
def failed_sink(tmp_path):
    sink = open_sink(tmp_path / "failed_ids.txt")
    yield sink
    sink.close()


def read_lines(path) -> list[str]:
    with open(path, "r", encoding="utf-8") as f:
        return [line.rstrip("\n") for line in f]
