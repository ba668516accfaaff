"""Bounded waits on blocking external calls.

Every external call a stage makes (source fetch, toolchain, compute host)
goes through ``bounded_call``. A non-mutating call that exceeds its wait is
abandoned and reported as a timeout. A mutating call (code update, publish,
alias write) is never abandoned: once the wait expires the caller still
blocks until the call settles, so the system is never left with a write in
flight, and only then is the timeout reported.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExternalCallTimeout(RuntimeError):
    """Raised when an external call exceeds its bounded wait.

    ``settled`` is set for mutating calls and describes how the call
    eventually finished (``"completed"`` or ``"raised: ..."``).
    """

    def __init__(self, message: str, *, operation: str = "", settled: str = "") -> None:
        super().__init__(message)
        self.operation = operation
        self.settled = settled


def bounded_call(
    fn: Callable[..., T],
    *args: Any,
    timeout: float | None,
    operation: str = "",
    mutating: bool = False,
    **kwargs: Any,
) -> T:
    """Call ``fn(*args, **kwargs)`` waiting at most *timeout* seconds.

    ``timeout=None`` or a non-positive timeout waits indefinitely.
    Exceptions raised by *fn* propagate unchanged.
    """
    if timeout is None or timeout <= 0:
        return fn(*args, **kwargs)

    name = operation or getattr(fn, "__name__", "external call")
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"cutover-{name}")
    future: Future[T] = pool.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        if not mutating:
            logger.error("%s exceeded %.1fs; abandoning the call", name, timeout)
            raise ExternalCallTimeout(
                f"{name} did not return within {timeout:.1f}s", operation=name
            ) from None

        logger.warning(
            "%s exceeded %.1fs; waiting for the in-flight mutation to settle",
            name,
            timeout,
        )
        exc = future.exception()
        settled = "completed" if exc is None else f"raised: {exc}"
        logger.error("%s settled after timeout (%s)", name, settled)
        raise ExternalCallTimeout(
            f"{name} did not return within {timeout:.1f}s (settled: {settled})",
            operation=name,
            settled=settled,
        ) from None
    finally:
        pool.shutdown(wait=False)
