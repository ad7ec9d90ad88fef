"""In-process counters for renumbering passes and background jobs.

The worker is a single asyncio loop, so plain dicts need no locking.
"""

import time

_start_time = time.monotonic()

_metrics: dict = {
    "jobs_processed": 0,
    "jobs_failed": 0,
    "jobs_dead": 0,
    "renumber_passes": 0,
    "renumber_updates_applied": 0,
    "renumber_write_conflicts": 0,
}


def record_renumber_pass(updates_applied: int) -> None:
    _metrics["renumber_passes"] += 1
    _metrics["renumber_updates_applied"] += updates_applied


def record_write_conflict() -> None:
    _metrics["renumber_write_conflicts"] += 1


def record_job_completed() -> None:
    _metrics["jobs_processed"] += 1


def record_job_failed() -> None:
    _metrics["jobs_failed"] += 1


def record_job_dead() -> None:
    _metrics["jobs_dead"] += 1


def get_metrics() -> dict:
    """Return a snapshot of current metrics."""
    return {
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        **{key: value for key, value in _metrics.items()},
    }


def reset_metrics() -> None:
    for key in _metrics:
        _metrics[key] = 0
