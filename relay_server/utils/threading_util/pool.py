"""Shared thread pool for background work (notification fan-out).

Configuration:
- ``config.NOTIFICATION_WORKER_THREADS`` controls max_workers when the executor
  is first created.

API:
- get_executor(max_workers=None) -> ThreadPoolExecutor
- submit_task(fn, *args, **kwargs) -> concurrent.futures.Future
- shutdown_executor(wait=False)
"""
import logging
import threading
from atexit import register as _atexit_register
from concurrent.futures import ThreadPoolExecutor

from config import config

logger = logging.getLogger(__name__)

_executor = None
_executor_lock = threading.Lock()


def _create_executor(max_workers=None):
    if max_workers is None:
        max_workers = max(1, config.NOTIFICATION_WORKER_THREADS)
    return ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='relay-bg')


def get_executor(max_workers=None):
    """Return a singleton ThreadPoolExecutor (create lazily)."""
    global _executor
    if _executor is None:
        with _executor_lock:
            if _executor is None:
                _executor = _create_executor(max_workers=max_workers)
                _atexit_register(shutdown_executor)
    return _executor


def _log_failure(future):
    exc = future.exception()
    if exc is not None:
        logger.error('Background task failed: %s', exc, exc_info=exc)


def submit_task(fn, *args, **kwargs):
    """Submit a callable to the shared executor and return a Future.

    Failures inside ``fn`` are logged when the future completes; callers may
    ignore the Future for fire-and-forget semantics.
    """
    future = get_executor().submit(fn, *args, **kwargs)
    future.add_done_callback(_log_failure)
    return future


def shutdown_executor(wait=False):
    """Shutdown the shared executor if created."""
    global _executor
    with _executor_lock:
        exec_local = _executor
        _executor = None
    if exec_local is not None:
        exec_local.shutdown(wait=wait)
