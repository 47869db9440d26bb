"""
Background job registry and asyncio polling loops.

Jobs are async callables taking no arguments, registered under a name with an
interval getter (read at each tick so settings overrides apply):

    @register_job("sla_sweep", lambda: settings.sla_sweep_interval_seconds)
    async def sla_sweep():
        ...

A job that raises is logged and retried on its next tick; the loop only stops on
cancellation or when the stop event is set.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

JobFn = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class RegisteredJob:
    name: str
    fn: JobFn
    interval: Callable[[], float]


_job_registry: dict[str, RegisteredJob] = {}


def register_job(name: str, interval: Callable[[], float]):
    """Decorator to register a periodic job."""
    def decorator(fn: JobFn) -> JobFn:
        _job_registry[name] = RegisteredJob(name=name, fn=fn, interval=interval)
        return fn
    return decorator


def get_registered_jobs() -> dict[str, RegisteredJob]:
    return dict(_job_registry)


async def run_job_once(job: RegisteredJob) -> bool:
    """Run one tick of a job. Returns False if it raised."""
    try:
        result = await job.fn()
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("Job %s failed", job.name)
        return False
    logger.debug("Job %s finished: %s", job.name, result)
    return True


async def run_periodic(job: RegisteredJob, stop: Optional[asyncio.Event] = None) -> None:
    stop = stop or asyncio.Event()
    logger.info("Job %s started (every %ss)", job.name, job.interval())
    try:
        while not stop.is_set():
            await run_job_once(job)
            try:
                await asyncio.wait_for(stop.wait(), timeout=job.interval())
            except asyncio.TimeoutError:
                pass
    finally:
        logger.info("Job %s stopped", job.name)


async def run_all(stop: Optional[asyncio.Event] = None, jobs: Optional[dict[str, RegisteredJob]] = None) -> None:
    stop = stop or asyncio.Event()
    jobs = jobs if jobs is not None else get_registered_jobs()
    if not jobs:
        logger.warning("No background jobs registered")
        return
    await asyncio.gather(*(run_periodic(job, stop) for job in jobs.values()))
