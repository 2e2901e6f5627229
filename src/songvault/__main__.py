"""Run one reconciliation pass: ``python -m songvault``.

Configuration comes from SONGVAULT_* environment variables (see songvault.config).
The pass summary is printed as JSON on stdout; the exit code is 1 if the pass failed
and 2 if another pass was already running against the same catalog.
"""

import asyncio
import json
import logging
import sys

from songvault.domain.exceptions import ScanInProgressException
from songvault.infrastructure.lifecycle import lifespan

logger = logging.getLogger("songvault")


async def run() -> int:
    async with lifespan() as worker:
        try:
            summary = await worker.run_scan()
        except ScanInProgressException as e:
            logger.error(str(e))
            return 2
        except Exception as e:
            logger.error(f"Scan failed: {e}")
            return 1
    print(json.dumps(summary, indent=2, default=str))
    return 0


def main() -> None:
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
