"""Background worker process.

RUN:  python -m courseflow.worker

Same image as the API, different command:
  api:    uvicorn courseflow.main:app --host 0.0.0.0 --port 8000
  worker: python -m courseflow.worker

The loop polls every registered queue round-robin, dequeues one task at
a time and dispatches it to its handler.  A failed task is logged and
dropped.  Independently of the queues, the worker sweeps pending
certificates on start and then every RECONCILE_INTERVAL_SECONDS, so an
enrollment whose retry task was never enqueued is still issued.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any

from courseflow.core.config import SETTINGS
from courseflow.core.logging import setup_logging
from courseflow.db import engine
from courseflow.repos.registry import memory_repos, pg_repos
from courseflow.services import certificate_issuer
from courseflow.services.task_queue import task_queue

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("worker")

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


@register_handler(certificate_issuer.RECONCILIATION_QUEUE)
async def handle_certificate_reconciliation(payload: dict) -> None:
    """Sweep completed, certifiable enrollments that still lack a certificate.

    The payload (an enrollment id after a failed render, or the admin who
    asked) is only logged; the sweep always covers every pending
    enrollment up to the batch size.
    """
    logger.info("Certificate reconciliation  trigger=%s", payload)
    issued = await sweep_certificates()
    logger.info("Certificate reconciliation done  issued=%d", issued)


async def sweep_certificates() -> int:
    """Run one reconciliation batch against the configured storage."""
    if engine.async_session_factory is None:
        return await certificate_issuer.reconcile(memory_repos())
    async with engine.session_scope() as session:
        return await certificate_issuer.reconcile(pg_repos(session))


async def process_one(queue_name: str, timeout: int = 1) -> bool:
    """Dequeue and run at most one task.  True when a task was handled."""
    task = await task_queue.dequeue(queue_name, timeout=timeout)
    if task is None:
        return False

    handler = HANDLERS[queue_name]
    try:
        await handler(task.payload)
        logger.info("Task %s on [%s] completed", task.id, queue_name)
    except Exception:
        logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return True


async def run_iteration(last_sweep: float | None, now: float) -> tuple[bool, float | None]:
    """One pass of the loop: at most one task per queue, then the timed
    certificate sweep if RECONCILE_INTERVAL_SECONDS have passed since
    ``last_sweep`` (None means never).

    Returns (whether a task was handled, the updated last sweep time).
    """
    handled = False
    for queue_name in HANDLERS:
        handled = await process_one(queue_name) or handled

    if last_sweep is None or now - last_sweep >= SETTINGS.reconcile_interval_seconds:
        try:
            issued = await sweep_certificates()
            logger.info("Timed certificate sweep  issued=%d", issued)
        except Exception:
            logger.exception("Timed certificate sweep failed")
        last_sweep = now
    return handled, last_sweep


async def run_worker() -> None:
    """Poll all registered queues, dispatch tasks to handlers and sweep
    pending certificates on a timer."""
    logger.info(
        "Worker started, listening on queues: %s  sweep_every=%ds",
        list(HANDLERS.keys()),
        SETTINGS.reconcile_interval_seconds,
    )

    last_sweep: float | None = None
    while True:
        handled, last_sweep = await run_iteration(last_sweep, time.monotonic())
        if not handled:
            # The in-memory queue returns immediately when empty.
            await asyncio.sleep(1)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
