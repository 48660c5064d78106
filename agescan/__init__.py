"""agescan - concurrent age-bucketed profile scanner."""

__version__ = "0.1.0"
