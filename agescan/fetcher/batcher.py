"""Grouping of identifiers into request batches bounded by URL length."""

from dataclasses import dataclass
from typing import Optional

from agescan.fetcher.id_source import IdSource

SEPARATOR = ","


@dataclass(frozen=True)
class Batch:
    """Comma-joined request key and the identifiers it covers."""

    key: str
    ids: tuple[int, ...]

    def __len__(self) -> int:
        return len(self.ids)


def next_batch(source: IdSource, max_length: int, prefix_length: int = 0) -> Optional[Batch]:
    """
    Claim the next batch of identifiers from ``source``.

    The whole claim happens under ``source.lock``, so each identifier lands
    in exactly one batch. The first identifier is always taken; further ones
    are appended while ``prefix_length + len(key)`` stays strictly below
    ``max_length``.

    Args:
        source: Shared id source
        max_length: Upper bound (exclusive) on prefix plus key length
        prefix_length: Length of the URL text preceding the key

    Returns:
        The claimed Batch, or None if the source is exhausted
    """
    with source.lock:
        if not source.has_more():
            return None

        first = source.peek()
        source.pop()
        parts = [str(first)]
        ids = [first]
        length = prefix_length + len(parts[0])

        while source.has_more():
            candidate = source.peek()
            text = str(candidate)
            if length + len(SEPARATOR) + len(text) >= max_length:
                break
            source.pop()
            parts.append(text)
            ids.append(candidate)
            length += len(SEPARATOR) + len(text)

        return Batch(key=SEPARATOR.join(parts), ids=tuple(ids))
