"""
Fetch Engine - One Pass Over an ID Source

Runs bounded-concurrency ``users.get`` requests over the batches of one
IdSource, routes filtered profiles to their age bucket files and records
every identifier of a failed batch in the pass's failure list.

Concurrency:
- At most TARGET_CONCURRENT_REQUESTS requests are in flight; the dispatch
  loop waits for a free slot before starting another worker.
- Workers suspend only while awaiting the HTTP response. Filtering, writing
  and counting run without yielding to the event loop.
- The id source, the progress log and each output file have their own lock.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Sequence

import httpx

from agescan.fetcher.batcher import Batch, next_batch
from agescan.fetcher.buckets import AgeBucket
from agescan.fetcher.id_source import IdSource
from agescan.fetcher.response_filter import ResponseFilter
from agescan.utils.config import Settings, settings as default_settings
from agescan.utils.logging import ProgressLog
from agescan.utils.schemas import ProfileRecord
from agescan.utils.sinks import LockedSink

logger = logging.getLogger(__name__)


class FetcherState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    FINISHED = "finished"


@dataclass
class PassStats:
    """Counters of one pass."""

    attempt: int
    total_count: int
    succeeded: int = 0
    failed: int = 0
    failures_path: Optional[str] = None

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed


class UsersFetcher:
    """
    Fetches, filters and writes the users of one IdSource.

    A batch whose request or decoding fails is counted as failed and its
    identifiers are written to ``failed_sink``. Users skipped by the filter
    count as succeeded.
    """

    def __init__(
        self,
        source: IdSource,
        progress: ProgressLog,
        combined_sink: LockedSink,
        failed_sink: LockedSink,
        client: httpx.AsyncClient,
        buckets: Sequence[AgeBucket],
        settings: Settings = default_settings,
        attempt: int = 1,
        now: Optional[float] = None,
    ) -> None:
        self.source = source
        self.progress = progress
        self.combined_sink = combined_sink
        self.failed_sink = failed_sink
        self.client = client
        self.buckets = list(buckets)
        self.settings = settings
        self.base_url = settings.API_URL
        self.response_filter = ResponseFilter(settings, self.buckets, now=now)

        self.state = FetcherState.IDLE
        self.stats = PassStats(attempt=attempt, total_count=source.total_count)
        self._started_monotonic = 0.0
        self._started_at = datetime.now()

    async def run(self) -> PassStats:
        """Process the whole source and wait for every in-flight batch."""
        semaphore = asyncio.Semaphore(self.settings.TARGET_CONCURRENT_REQUESTS)
        in_flight: set[asyncio.Task] = set()

        self.state = FetcherState.RUNNING
        self._started_monotonic = time.monotonic()
        self._started_at = datetime.now()
        self.progress.write("Started")
        logger.info(
            "Pass started",
            extra={"attempt": self.stats.attempt, "total_count": self.stats.total_count},
        )

        while self.source.has_more():
            await semaphore.acquire()
            task = asyncio.create_task(self.process_one())
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)
            task.add_done_callback(lambda _task: semaphore.release())

        self.state = FetcherState.DRAINING
        if in_flight:
            await asyncio.gather(*in_flight)

        self.state = FetcherState.FINISHED
        self.progress.write("Finished")
        logger.info(
            "Pass finished",
            extra={
                "attempt": self.stats.attempt,
                "succeeded": self.stats.succeeded,
                "failed": self.stats.failed,
            },
        )
        return self.stats

    async def process_one(self) -> None:
        """Claim one batch, fetch it and route the outcome."""
        batch = next_batch(self.source, self.settings.MAX_URL_LENGTH, len(self.base_url))
        if batch is None:
            return

        try:
            response = await self.client.get(self.base_url + batch.key)
            response.raise_for_status()
            records = self.response_filter.filter_body(response.content)
            self.write_records(records)
        except Exception as e:
            self.record_failure(batch, e)
            return

        with self.progress.lock:
            self.stats.succeeded += len(batch)
            self.report_status()

    def write_records(self, records: Sequence[ProfileRecord]) -> None:
        """
        Write records to every bucket they fall into, then once to the combined file.

        All lines are rendered before the first write, so only file I/O can
        fail once writing has started. An I/O error part way through leaves
        earlier buckets written and the batch is retried, which can repeat
        those rows.
        """
        today = self.response_filter.today
        lines = [r.to_csv_line() for r in records]
        per_bucket = [
            (bucket, [line for line, r in zip(lines, records) if bucket.contains(r.birth_date, today)])
            for bucket in self.buckets
        ]
        for bucket, matching in per_bucket:
            bucket.sink.write_lines(matching)
        self.combined_sink.write_lines(lines)

    def record_failure(self, batch: Batch, exc: Exception) -> None:
        with self.progress.lock:
            self.stats.failed += len(batch)
            self.report_status()
            self.progress.exception(
                f"Batch of {len(batch)} ids starting at {batch.ids[0]} failed: {exc!r}", exc
            )
            self.failed_sink.write_lines(str(user_id) for user_id in batch.ids)

    def estimated_finish(self) -> Optional[datetime]:
        """Projected end of the pass, or None before the first success."""
        stats = self.stats
        if stats.succeeded == 0:
            return None
        elapsed = time.monotonic() - self._started_monotonic
        total_seconds = elapsed * stats.total_count / stats.processed
        return self._started_at + timedelta(seconds=total_seconds)

    def report_status(self) -> None:
        """Write progress lines; caller holds the progress lock."""
        stats = self.stats
        percent = stats.processed * 100.0 / stats.total_count if stats.total_count else 100.0
        lines = [
            f"{percent:.2f}% processed "
            f"({stats.processed} = {stats.succeeded} completed + {stats.failed} failed)"
        ]
        finish = self.estimated_finish()
        if finish is not None:
            lines.append(f"Estimated finish: {finish:%Y-%m-%d %H:%M:%S}")
        self.progress.write_unlocked(*lines)
