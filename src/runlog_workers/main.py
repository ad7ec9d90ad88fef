"""runlog-worker entry point: deferred renumbering passes from background_jobs."""

import asyncio
import logging

from .config import Config
from .logging import setup_logging
from .metrics import get_metrics
from .worker import Worker

# Importing the module registers the numbering.recalculate handler
from . import renumbering  # noqa: F401

logger = logging.getLogger(__name__)


async def _run(config: Config) -> None:
    try:
        await Worker(config).run()
    finally:
        logger.info("runlog worker stopped", extra={"runlog_metrics": get_metrics()})


def main() -> None:
    config = Config.from_env()
    setup_logging(config.log_format, config.log_level, service="runlog-worker")
    logger.info(
        "runlog worker starting (log_format=%s, max_retries=%d)",
        config.log_format,
        config.max_retries,
    )
    asyncio.run(_run(config))


if __name__ == "__main__":
    main()
