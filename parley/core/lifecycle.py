"""Background tasks shared by the user and admin listeners.

Both listeners run in one process, so these loops are started once by the
server entry point rather than by either app.
"""

import asyncio
from typing import TYPE_CHECKING

from parley.core.logging import get_logger
from parley.services.sessions import cleanup_expired_sessions

if TYPE_CHECKING:
    from parley.state import AppState

_logger = get_logger("lifecycle")


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        _logger.error(f"Background task {task.get_name()} failed: {exc}")


async def session_cleanup_loop(state: "AppState") -> None:
    """Periodically remove expired sessions."""
    while True:
        await asyncio.sleep(state.config.snapshot().session_cleanup_interval_seconds)
        try:
            async with state.db() as db:
                removed = await cleanup_expired_sessions(db)
            if removed > 0:
                _logger.info(f"Cleaned up {removed} expired sessions")
        except Exception:
            _logger.exception("Error cleaning up expired sessions")


async def rate_limit_cleanup_loop(state: "AppState") -> None:
    """Drop rate limit buckets idle longer than the configured window."""
    while True:
        await asyncio.sleep(state.config.snapshot().rate_limit_cleanup_interval_seconds)
        try:
            removed = await state.rate_limiter.cleanup_inactive_buckets()
            if removed > 0:
                _logger.debug(f"Dropped {removed} idle rate limit buckets")
        except Exception:
            _logger.exception("Error sweeping rate limit buckets")


async def metrics_log_loop(state: "AppState") -> None:
    """Emit a one-line traffic summary at a fixed interval."""
    while True:
        await asyncio.sleep(state.config.snapshot().metrics_log_interval_seconds)
        snap = state.metrics.snapshot()
        _logger.info(
            f"requests={snap['total_requests']} active={snap['active_connections']} "
            f"errors={snap['errors']} rate_limited={snap['rate_limited']} "
            f"ip_blocked={snap['ip_blocked']} p95_ms={snap['latency_p95_ms']}"
        )


def start_background_tasks(state: "AppState") -> list[asyncio.Task]:
    """Start the sweeps; the returned tasks go to ``stop_background_tasks``."""
    coroutines = {
        "session-cleanup": session_cleanup_loop(state),
        "rate-limit-cleanup": rate_limit_cleanup_loop(state),
        "metrics-log": metrics_log_loop(state),
    }

    tasks: list[asyncio.Task] = []
    for name, coro in coroutines.items():
        task = asyncio.create_task(coro, name=name)
        task.add_done_callback(task_done_callback)
        tasks.append(task)
    return tasks


async def stop_background_tasks(tasks: list[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
