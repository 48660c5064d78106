import asyncio

import httpx
import pytest

from agescan.fetcher.buckets import AgeBucket
from agescan.fetcher.engine import FetcherState, UsersFetcher
from agescan.fetcher.id_source import ListIdSource, RangeIdSource
from agescan.utils.schemas import CSV_HEADER
from agescan.utils.sinks import open_sink
from tests.conftest import NOW, make_settings, make_user, read_lines, requested_ids, users_response


def make_fetcher(source, progress, combined_sink, failed_sink, buckets, handler, **settings_overrides):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    fetcher = UsersFetcher(
        source,
        progress,
        combined_sink,
        failed_sink,
        client,
        buckets,
        settings=make_settings(**settings_overrides),
        now=NOW,
    )
    return fetcher, client


def progress_messages(caplog) -> list[str]:
    return [r.getMessage() for r in caplog.records if r.name == "agescan.tests.progress"]


@pytest.mark.asyncio
async def test_pass_writes_selected_users_to_bucket_and_combined_outputs(
    tmp_path, progress, combined_sink, failed_sink, buckets, caplog
):
    fetcher, client = make_fetcher(
        RangeIdSource(50), progress, combined_sink, failed_sink, buckets, users_response
    )
    assert fetcher.state is FetcherState.IDLE

    async with client:
        stats = await fetcher.run()

    assert fetcher.state is FetcherState.FINISHED
    assert (stats.succeeded, stats.failed, stats.processed) == (50, 0, 50)

    children = read_lines(tmp_path / "children.csv")
    assert children[0] == CSV_HEADER
    assert sorted(int(line.split(";")[0]) for line in children[1:]) == list(range(1, 51))
    assert children[1].split(";")[1:] == ["Ivan", "Petrov", "2005", "6", "15", "104"]
    assert read_lines(tmp_path / "adults.csv") == [CSV_HEADER]
    assert len(read_lines(tmp_path / "result.csv")) == 51
    assert read_lines(tmp_path / "failed_ids.txt") == []

    messages = progress_messages(caplog)
    assert messages[0] == "Started"
    assert messages[-1] == "Finished"
    assert "100.00% processed (50 = 50 completed + 0 failed)" in messages
    assert any(m.startswith("Estimated finish: ") for m in messages)


@pytest.mark.asyncio
async def test_every_id_is_requested_once_within_url_limit(
    progress, combined_sink, failed_sink, buckets
):
    settings = make_settings()
    seen: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert len(str(request.url)) < settings.MAX_URL_LENGTH
        seen.extend(requested_ids(request))
        return users_response(request)

    fetcher, client = make_fetcher(
        RangeIdSource(200), progress, combined_sink, failed_sink, buckets, handler, MAX_USER_ID=200
    )
    async with client:
        await fetcher.run()

    assert sorted(seen) == list(range(1, 201))
    assert len(seen) == len(set(seen))


@pytest.mark.asyncio
async def test_concurrent_requests_never_exceed_target(progress, combined_sink, failed_sink, buckets):
    in_flight = 0
    peak = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return users_response(request)

    fetcher, client = make_fetcher(
        RangeIdSource(100),
        progress,
        combined_sink,
        failed_sink,
        buckets,
        handler,
        TARGET_CONCURRENT_REQUESTS=3,
    )
    async with client:
        stats = await fetcher.run()

    assert stats.succeeded == 100
    assert 2 <= peak <= 3


@pytest.mark.asyncio
async def test_transport_error_fails_the_whole_batch(
    tmp_path, progress, combined_sink, failed_sink, buckets, caplog
):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    fetcher, client = make_fetcher(
        ListIdSource([3, 1, 2]), progress, combined_sink, failed_sink, buckets, handler
    )
    async with client:
        stats = await fetcher.run()

    assert (stats.succeeded, stats.failed) == (0, 3)
    assert read_lines(tmp_path / "failed_ids.txt") == ["3", "1", "2"]
    assert read_lines(tmp_path / "result.csv") == [CSV_HEADER]

    messages = progress_messages(caplog)
    assert "100.00% processed (3 = 0 completed + 3 failed)" in messages
    assert not any(m.startswith("Estimated finish") for m in messages)
    assert any("ConnectError" in m for m in messages)


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="Internal Server Error"),
        httpx.Response(200, text="<html>oops</html>"),
        httpx.Response(200, json={"error": {"error_code": 10, "error_msg": "Internal server error"}}),
    ],
)
@pytest.mark.asyncio
async def test_bad_responses_fail_the_batch(
    tmp_path, progress, combined_sink, failed_sink, buckets, response
):
    def handler(request: httpx.Request) -> httpx.Response:
        return response

    fetcher, client = make_fetcher(
        ListIdSource([10, 11]), progress, combined_sink, failed_sink, buckets, handler
    )
    async with client:
        stats = await fetcher.run()

    assert stats.failed == 2
    assert read_lines(tmp_path / "failed_ids.txt") == ["10", "11"]


@pytest.mark.asyncio
async def test_only_failing_batches_are_recorded(
    tmp_path, progress, combined_sink, failed_sink, buckets
):
    def handler(request: httpx.Request) -> httpx.Response:
        ids = requested_ids(request)
        if 1 in ids:
            raise httpx.ReadTimeout("timed out", request=request)
        return users_response(request)

    fetcher, client = make_fetcher(
        RangeIdSource(30), progress, combined_sink, failed_sink, buckets, handler, MAX_USER_ID=30
    )
    async with client:
        stats = await fetcher.run()

    failed = [int(line) for line in read_lines(tmp_path / "failed_ids.txt")]
    assert failed[0] == 1
    assert failed == list(range(1, len(failed) + 1))
    assert stats.failed == len(failed)
    assert stats.succeeded == 30 - len(failed)


@pytest.mark.asyncio
async def test_filtered_out_users_count_as_succeeded(
    tmp_path, progress, combined_sink, failed_sink, buckets
):
    def handler(request: httpx.Request) -> httpx.Response:
        return users_response(request, lambda uid: make_user(uid, last_seen=None))

    fetcher, client = make_fetcher(
        RangeIdSource(20), progress, combined_sink, failed_sink, buckets, handler
    )
    async with client:
        stats = await fetcher.run()

    assert (stats.succeeded, stats.failed) == (20, 0)
    assert read_lines(tmp_path / "result.csv") == [CSV_HEADER]
    assert read_lines(tmp_path / "failed_ids.txt") == []


@pytest.mark.asyncio
async def test_overlapping_buckets_get_a_copy_each_and_combined_gets_one(
    tmp_path, progress, combined_sink, failed_sink
):
    teens = AgeBucket(13, 18, open_sink(tmp_path / "teens.csv", header=CSV_HEADER))
    eighteen = AgeBucket(18, 20, open_sink(tmp_path / "eighteen.csv", header=CSV_HEADER))

    def handler(request: httpx.Request) -> httpx.Response:
        return users_response(request)

    fetcher, client = make_fetcher(
        ListIdSource([7]), progress, combined_sink, failed_sink, [teens, eighteen], handler
    )
    async with client:
        await fetcher.run()
    teens.sink.close()
    eighteen.sink.close()

    assert len(read_lines(tmp_path / "teens.csv")) == 2
    assert len(read_lines(tmp_path / "eighteen.csv")) == 2
    assert read_lines(tmp_path / "result.csv") == [CSV_HEADER, "7;Ivan;Petrov;2005;6;15;104"]


@pytest.mark.asyncio
async def test_empty_source_finishes_without_requests(progress, combined_sink, failed_sink, buckets):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    fetcher, client = make_fetcher(
        ListIdSource([]), progress, combined_sink, failed_sink, buckets, handler
    )
    async with client:
        stats = await fetcher.run()

    assert stats.processed == 0
    assert fetcher.state is FetcherState.FINISHED


def test_report_status_without_success_has_no_estimate(progress, combined_sink, failed_sink, buckets, caplog):
    fetcher, _ = make_fetcher(
        RangeIdSource(4), progress, combined_sink, failed_sink, buckets, users_response
    )
    fetcher.stats.failed = 1

    fetcher.report_status()

    assert progress_messages(caplog) == ["25.00% processed (1 = 0 completed + 1 failed)"]
    assert fetcher.estimated_finish() is None


@pytest.mark.asyncio
async def test_out_of_range_birth_year_is_skipped_not_failed(
    tmp_path, progress, combined_sink, failed_sink, buckets
):
    def handler(request: httpx.Request) -> httpx.Response:
        return users_response(
            request, lambda uid: make_user(uid, bdate="1.1.99999999999" if uid == 2 else "15.6.2005")
        )

    fetcher, client = make_fetcher(
        ListIdSource([1, 2]), progress, combined_sink, failed_sink, buckets, handler
    )
    async with client:
        stats = await fetcher.run()

    assert (stats.succeeded, stats.failed) == (2, 0)
    assert read_lines(tmp_path / "failed_ids.txt") == []
    assert read_lines(tmp_path / "result.csv") == [CSV_HEADER, "1;Ivan;Petrov;2005;6;15;104"]


@pytest.mark.asyncio
async def test_batch_that_fails_while_routing_leaves_no_rows_behind(
    tmp_path, progress, combined_sink, failed_sink, buckets, monkeypatch
):
    children, adults = buckets

    def broken_contains(birth_date, today=None):
        raise RuntimeError("bucket unavailable")

    monkeypatch.setattr(adults, "contains", broken_contains)

    fetcher, client = make_fetcher(
        ListIdSource([4, 5]), progress, combined_sink, failed_sink, buckets, users_response
    )
    async with client:
        stats = await fetcher.run()

    assert (stats.succeeded, stats.failed) == (0, 2)
    assert read_lines(tmp_path / "children.csv") == [CSV_HEADER]
    assert read_lines(tmp_path / "result.csv") == [CSV_HEADER]
    assert read_lines(tmp_path / "failed_ids.txt") == ["4", "5"]
