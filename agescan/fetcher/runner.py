"""
Scan Runner - Process Entry Point

Opens every output, builds the HTTP client and runs the retry orchestrator
to completion.

Outputs (under OUTPUT_DIR):
- <age>.csv per child age and adults.csv
- result.csv with every selected profile
- failed_ids.txt, failed_ids2.txt, ... per pass
- log.txt with timestamped progress

Usage:
    python -m agescan.fetcher

    # Small test scan
    MAX_USER_ID=10000 OUTPUT_DIR=/tmp/scan python -m agescan.fetcher
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import httpx

from agescan.fetcher.buckets import AgeBucket, build_age_buckets
from agescan.fetcher.engine import PassStats
from agescan.fetcher.orchestrator import RetryOrchestrator
from agescan.utils.config import Settings, settings as default_settings
from agescan.utils.logging import ProgressLog, setup_logging
from agescan.utils.schemas import CSV_HEADER
from agescan.utils.sinks import LockedSink, open_sink

logger = logging.getLogger(__name__)

COMBINED_FILENAME = "result.csv"


class ScanRunner:
    """
    Owns the outputs and HTTP client of one scan.

    Handles:
    - Output directory and file creation
    - HTTP client setup (Accept-Language header, timeout)
    - Running every pass and closing outputs afterwards
    """

    def __init__(self, settings: Settings = default_settings) -> None:
        self.settings = settings
        self.output_dir = Path(settings.OUTPUT_DIR)
        self.progress: Optional[ProgressLog] = None
        self.combined_sink: Optional[LockedSink] = None
        self.buckets: list[AgeBucket] = []

        logger.info(
            "ScanRunner initialized",
            extra={
                "output_dir": str(self.output_dir),
                "max_user_id": settings.MAX_USER_ID,
                "concurrency": settings.TARGET_CONCURRENT_REQUESTS,
            },
        )

    def open_outputs(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.progress = ProgressLog.to_file(self.output_dir / self.settings.LOG_FILE)
        self.combined_sink = open_sink(self.output_dir / COMBINED_FILENAME, header=CSV_HEADER)
        self.buckets = build_age_buckets(self.settings, self.output_dir)

    def close_outputs(self) -> None:
        for bucket in self.buckets:
            bucket.sink.close()
        if self.combined_sink:
            self.combined_sink.close()
        if self.progress:
            self.progress.close()

    def create_client(
        self, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={"Accept-Language": self.settings.ACCEPT_LANGUAGE},
            timeout=self.settings.HTTP_TIMEOUT,
            transport=transport,
        )

    async def start(
        self, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> list[PassStats]:
        """
        Run every pass and close outputs.

        Args:
            transport: Optional httpx transport (tests use MockTransport)

        Returns:
            Stats of every pass in order
        """
        self.open_outputs()
        try:
            async with self.create_client(transport) as client:
                orchestrator = RetryOrchestrator(
                    client,
                    self.buckets,
                    self.combined_sink,
                    self.progress,
                    settings=self.settings,
                    output_dir=self.output_dir,
                )
                passes = await orchestrator.run()
        finally:
            self.close_outputs()

        logger.info(
            "Scan completed",
            extra={
                "passes": len(passes),
                "remaining_failures": passes[-1].failed if passes else 0,
            },
        )
        return passes


async def main() -> None:
    """Main entry point for the scanner."""
    setup_logging(default_settings.LOG_LEVEL)

    runner = ScanRunner()

    try:
        await runner.start()
    except Exception as e:
        logger.error("Scan failed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)


def cli() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
