"""
Fetcher App - Concurrent Profile Scan

Responsibilities:
- Enumerate user ids (full range first, failed ids on later passes)
- Batch ids into users.get requests bounded by URL length
- Keep at most TARGET_CONCURRENT_REQUESTS requests in flight
- Filter users by city, recent activity and birth date
- Write each age bucket to its own CSV, plus a combined result.csv
- Retry failed batches over pass-numbered failure files

Output:
- <age>.csv, adults.csv, result.csv
- failed_ids.txt, failed_ids2.txt, ...
- log.txt
"""

from agescan.fetcher.batcher import Batch, next_batch
from agescan.fetcher.buckets import AgeBucket, build_age_buckets
from agescan.fetcher.engine import FetcherState, PassStats, UsersFetcher
from agescan.fetcher.id_source import IdSource, ListIdSource, RangeIdSource
from agescan.fetcher.orchestrator import RetryOrchestrator
from agescan.fetcher.response_filter import ResponseDecodeError, ResponseFilter

__all__ = [
    "AgeBucket",
    "Batch",
    "FetcherState",
    "IdSource",
    "ListIdSource",
    "PassStats",
    "RangeIdSource",
    "ResponseDecodeError",
    "ResponseFilter",
    "RetryOrchestrator",
    "UsersFetcher",
    "build_age_buckets",
    "next_batch",
]
