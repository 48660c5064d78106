"""
Retry Orchestrator - Multi-Pass Scan

Pass 1 covers the full id range. Every later pass replays the identifiers
listed in the previous pass's failure file. Passes stop once a failure file
is empty or MAX_ATTEMPTS passes have run; running out of attempts is not an
error, the last non-empty failure file records what was not covered.

Failure files are pass-numbered and never overwritten:
- failed_ids.txt (pass 1)
- failed_ids2.txt, failed_ids3.txt, ... (later passes)
"""

import logging
from pathlib import Path
from typing import Optional, Sequence

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt, wait_fixed

from agescan.fetcher.buckets import AgeBucket
from agescan.fetcher.engine import PassStats, UsersFetcher
from agescan.fetcher.id_source import IdSource, ListIdSource, RangeIdSource
from agescan.utils.config import Settings, settings as default_settings
from agescan.utils.logging import ProgressLog
from agescan.utils.sinks import LockedSink, open_sink

logger = logging.getLogger(__name__)


def failures_filename(attempt: int) -> str:
    return "failed_ids.txt" if attempt == 1 else f"failed_ids{attempt}.txt"


def has_failures(stats: PassStats) -> bool:
    """True if the pass left a non-empty failure file."""
    return stats.failures_path is not None and Path(stats.failures_path).stat().st_size > 0


def _last_pass(retry_state: RetryCallState) -> PassStats:
    # Attempts exhausted: hand back the final pass instead of raising RetryError
    return retry_state.outcome.result()


class RetryOrchestrator:
    """Runs passes until the failure list is empty or attempts run out."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        buckets: Sequence[AgeBucket],
        combined_sink: LockedSink,
        progress: ProgressLog,
        settings: Settings = default_settings,
        output_dir: Optional[str | Path] = None,
        now: Optional[float] = None,
    ) -> None:
        self.client = client
        self.buckets = list(buckets)
        self.combined_sink = combined_sink
        self.progress = progress
        self.settings = settings
        self.output_dir = Path(output_dir if output_dir is not None else settings.OUTPUT_DIR)
        self.now = now
        self.passes: list[PassStats] = []

    def failures_path(self, attempt: int) -> Path:
        return self.output_dir / failures_filename(attempt)

    def build_source(self, attempt: int) -> IdSource:
        if attempt == 1:
            return RangeIdSource(self.settings.MAX_USER_ID)
        return ListIdSource.from_file(self.failures_path(attempt - 1))

    async def run_pass(self) -> PassStats:
        """Run the next pass, writing its own failure file."""
        attempt = len(self.passes) + 1
        source = self.build_source(attempt)
        failures_path = self.failures_path(attempt)

        self.progress.write(f"Attempt {attempt}")
        logger.info(
            "Starting pass",
            extra={"attempt": attempt, "ids": source.total_count, "failures_path": str(failures_path)},
        )

        failed_sink = open_sink(failures_path)
        try:
            fetcher = UsersFetcher(
                source,
                self.progress,
                self.combined_sink,
                failed_sink,
                self.client,
                self.buckets,
                settings=self.settings,
                attempt=attempt,
                now=self.now,
            )
            stats = await fetcher.run()
        finally:
            failed_sink.close()

        stats.failures_path = str(failures_path)
        self.passes.append(stats)
        return stats

    async def run(self) -> list[PassStats]:
        """Run passes until done; returns the stats of every pass in order."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.MAX_ATTEMPTS),
            wait=wait_fixed(self.settings.PASS_RETRY_DELAY),
            retry=retry_if_result(has_failures),
            retry_error_callback=_last_pass,
        )
        last = await retrying(self.run_pass)

        if last.failed:
            logger.warning(
                "Retry attempts exhausted with failures remaining",
                extra={"attempts": len(self.passes), "failed": last.failed, "failures_path": last.failures_path},
            )
        else:
            logger.info("All ids resolved", extra={"attempts": len(self.passes)})
        return self.passes
