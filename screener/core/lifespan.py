import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from screener.core.candidate_store import get_candidate_store
from screener.core.submission_rate_limit import get_submission_limiter

logger = logging.getLogger(__name__)

RATE_LIMIT_PURGE_INTERVAL_S = 600


@asynccontextmanager
async def lifespan(app):
    get_candidate_store().init()
    limiter = get_submission_limiter()

    stop_event = asyncio.Event()

    async def periodic_purge() -> None:
        while not stop_event.is_set():
            try:
                evicted = limiter.purge_expired()
                if evicted:
                    logger.info("submission_rate_limit_purge evicted=%s", evicted)
            except Exception as exc:  # noqa: BLE001 - keep the purge loop alive
                logger.warning("submission_rate_limit_purge_failed: %s", exc)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=RATE_LIMIT_PURGE_INTERVAL_S)
            except asyncio.TimeoutError:
                continue

    purge_task = asyncio.create_task(periodic_purge())
    yield
    stop_event.set()
    if not purge_task.done():
        purge_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await purge_task
