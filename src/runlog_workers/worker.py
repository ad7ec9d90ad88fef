"""Background job worker for deferred renumbering passes.

Jobs live in ``background_jobs``. The worker wakes on ``NOTIFY runlog_jobs``
and also polls, claims pending rows with ``FOR UPDATE SKIP LOCKED`` so several
workers can share the table, and runs each handler together with the job's
completion in one transaction. Failures are rescheduled with exponential
backoff until ``max_retries``; after that, or for a failure the handler's
registration marks permanent, the job is dead-lettered.
"""

import asyncio
import logging
import signal
import time
from typing import Any

import psycopg
from psycopg.rows import dict_row

from .config import Config
from .metrics import record_job_completed, record_job_dead, record_job_failed
from .registry import get_registration, registered_types
from .renumbering import JOBS_CHANNEL

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 300
RECONNECT_DELAY_SECONDS = 5.0


def retry_delay_seconds(attempt: int) -> int:
    return min(2**attempt, MAX_BACKOFF_SECONDS)


class Worker:
    def __init__(self, config: Config) -> None:
        self.config = config
        self._shutdown = asyncio.Event()

    async def run(self) -> None:
        """Run the LISTEN and poll loops until SIGTERM/SIGINT."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.request_shutdown)

        logger.info(
            "Worker starting (poll_interval=%.1fs, batch_size=%d, job_types=%s)",
            self.config.poll_interval_seconds,
            self.config.batch_size,
            registered_types(),
        )
        if self.config.listen_database_url != self.config.database_url:
            logger.info("Worker LISTEN uses dedicated database URL")

        async with asyncio.TaskGroup() as tg:
            tg.create_task(self._listen_loop())
            tg.create_task(self._poll_loop())

    def request_shutdown(self) -> None:
        logger.info("Shutdown requested")
        self._shutdown.set()

    async def _listen_loop(self) -> None:
        while not self._shutdown.is_set():
            try:
                async with await psycopg.AsyncConnection.connect(
                    self.config.listen_database_url, autocommit=True
                ) as conn:
                    await conn.execute(f"LISTEN {JOBS_CHANNEL}")
                    logger.info("Listening on %s", JOBS_CHANNEL)

                    while not self._shutdown.is_set():
                        gen = conn.notifies(timeout=self.config.poll_interval_seconds)
                        async for notify in gen:
                            logger.debug(
                                "NOTIFY for owner=%s", notify.payload,
                                extra={"runlog_owner_id": notify.payload},
                            )
                            await self.process_batch()
                            if self._shutdown.is_set():
                                break
            except psycopg.OperationalError:
                if self._shutdown.is_set():
                    break
                logger.warning(
                    "LISTEN connection lost, reconnecting in %.0fs", RECONNECT_DELAY_SECONDS
                )
                await asyncio.sleep(RECONNECT_DELAY_SECONDS)

        logger.info("Listen loop stopped")

    async def _poll_loop(self) -> None:
        """Catch jobs whose NOTIFY was missed and retries whose backoff expired."""
        while not self._shutdown.is_set():
            try:
                await asyncio.wait_for(
                    self._shutdown.wait(),
                    timeout=self.config.poll_interval_seconds,
                )
                break
            except TimeoutError:
                pass

            await self.process_batch()

        logger.info("Poll loop stopped")

    async def process_batch(self) -> int:
        """Claim and run up to ``batch_size`` due jobs. Returns how many were claimed."""
        try:
            async with await psycopg.AsyncConnection.connect(
                self.config.database_url
            ) as conn:
                jobs = await self._claim_jobs(conn)
                await conn.commit()  # claims survive a crash mid-batch

                for job in jobs:
                    await self.process_job(conn, job)
                return len(jobs)
        except Exception:
            logger.exception("Error in process_batch")
            return 0

    async def _claim_jobs(
        self, conn: psycopg.AsyncConnection[Any]
    ) -> list[dict[str, Any]]:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                UPDATE background_jobs
                SET status = 'processing', started_at = NOW(), attempt = attempt + 1
                WHERE id IN (
                    SELECT id FROM background_jobs
                    WHERE status = 'pending'
                      AND scheduled_for <= NOW()
                      AND job_type = ANY(%s)
                    ORDER BY scheduled_for, id
                    LIMIT %s
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING id, user_id, job_type, payload, attempt, max_retries
                """,
                (registered_types(), self.config.batch_size),
            )
            return await cur.fetchall()

    async def process_job(
        self, conn: psycopg.AsyncConnection[Any], job: dict[str, Any]
    ) -> None:
        job_id = job["id"]
        job_type = job["job_type"]
        context = {"runlog_job_id": job_id, "runlog_job_type": job_type}

        registration = get_registration(job_type)
        if registration is None:
            logger.warning("No handler for job_type=%s (job_id=%s)", job_type, job_id, extra=context)
            await self._mark_dead(conn, job_id, f"No handler for job_type={job_type}")
            return

        started = time.monotonic()
        try:
            async with conn.transaction():
                await registration.handler(conn, job["payload"] or {})
                await conn.execute(
                    """
                    UPDATE background_jobs
                    SET status = 'completed', completed_at = NOW()
                    WHERE id = %s
                    """,
                    (job_id,),
                )
        except Exception as exc:
            # conn.transaction() already rolled back the handler's writes
            logger.exception("Job %s failed (type=%s)", job_id, job_type, extra=context)
            if registration.is_permanent(exc) or job["attempt"] >= job["max_retries"]:
                await self._mark_dead(conn, job_id, str(exc))
            else:
                await self._reschedule(conn, job_id, job["attempt"], str(exc))
            return

        record_job_completed()
        logger.info(
            "Job %s completed (type=%s)", job_id, job_type,
            extra={**context, "runlog_duration_ms": round((time.monotonic() - started) * 1000)},
        )

    async def _mark_dead(
        self, conn: psycopg.AsyncConnection[Any], job_id: int, error: str
    ) -> None:
        record_job_dead()
        logger.error("Job %s is dead: %s", job_id, error, extra={"runlog_job_id": job_id})
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE background_jobs
                SET status = 'dead', error_message = %s, completed_at = NOW()
                WHERE id = %s
                """,
                (error, job_id),
            )
        await conn.commit()

    async def _reschedule(
        self,
        conn: psycopg.AsyncConnection[Any],
        job_id: int,
        attempt: int,
        error: str,
    ) -> None:
        record_job_failed()
        delay = retry_delay_seconds(attempt)
        logger.info(
            "Job %s retrying in %ds (attempt=%d)", job_id, delay, attempt,
            extra={"runlog_job_id": job_id},
        )
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE background_jobs
                SET status = 'pending',
                    error_message = %s,
                    scheduled_for = NOW() + make_interval(secs => %s)
                WHERE id = %s
                """,
                (error, float(delay), job_id),
            )
        await conn.commit()
