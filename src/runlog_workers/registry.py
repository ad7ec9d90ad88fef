"""Background job handler registry.

Each job_type has exactly one handler. A registration may also name the
exception types that make a job permanently failed: the worker dead-letters
those on the first attempt instead of scheduling a retry.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import psycopg

logger = logging.getLogger(__name__)

# Handler signature: async def handler(conn: AsyncConnection, payload: dict) -> None
HandlerFn = Callable[[psycopg.AsyncConnection[Any], dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class JobRegistration:
    job_type: str
    handler: HandlerFn
    permanent_errors: tuple[type[BaseException], ...] = ()

    def is_permanent(self, error: BaseException) -> bool:
        return isinstance(error, self.permanent_errors)


_registry: dict[str, JobRegistration] = {}


def register(
    job_type: str,
    *,
    permanent_errors: tuple[type[BaseException], ...] = (),
) -> Callable[[HandlerFn], HandlerFn]:
    """Register the handler for a background job_type (e.g. 'numbering.recalculate')."""

    def decorator(fn: HandlerFn) -> HandlerFn:
        if job_type in _registry:
            raise ValueError(f"Duplicate handler for job_type={job_type!r}")
        _registry[job_type] = JobRegistration(
            job_type=job_type,
            handler=fn,
            permanent_errors=tuple(permanent_errors),
        )
        logger.debug("Registered handler %s for job_type=%s", fn.__name__, job_type)
        return fn

    return decorator


def get_registration(job_type: str) -> JobRegistration | None:
    return _registry.get(job_type)


def get_handler(job_type: str) -> HandlerFn | None:
    registration = _registry.get(job_type)
    return registration.handler if registration else None


def registered_types() -> list[str]:
    return sorted(_registry)
