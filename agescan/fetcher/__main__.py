"""
Fetcher Module Entry Point

Allows execution via: python -m agescan.fetcher

Delegates to the runner, which executes every pass and exits.
"""

import asyncio

from agescan.fetcher.runner import main

if __name__ == "__main__":
    asyncio.run(main())
