"""Thread pool fan-out, run deadlines and bounded retries."""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout, as_completed
from typing import Callable, Iterable, Optional, Sequence, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class Deadline:
    """Wall-clock budget shared by every stage of a run."""

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0


def run_bounded(
    fn: Callable[[T], R],
    items: Iterable[T],
    max_workers: int,
    deadline: Optional[Deadline] = None,
    label: str = "task",
) -> list[R]:
    """Apply ``fn`` to ``items`` on at most ``max_workers`` threads.

    Results come back in input order. Items whose call raised are logged and
    left out. When ``deadline`` runs out, pending futures are cancelled and
    calls still in flight are abandoned; their results are ignored.
    """
    items = list(items)
    if not items:
        return []
    if deadline is not None and deadline.expired:
        logger.warning("%s: deadline already reached, skipping %d item(s)", label, len(items))
        return []

    executor = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(items))))
    futures = {executor.submit(fn, item): index for index, item in enumerate(items)}
    results: dict[int, R] = {}
    try:
        timeout = deadline.remaining() if deadline is not None else None
        for future in as_completed(futures, timeout=timeout):
            index = futures[future]
            try:
                results[index] = future.result()
            except Exception as exc:
                logger.warning("%s failed for %r: %s", label, items[index], exc)
    except FuturesTimeout:
        unfinished = sum(1 for future in futures if not future.done())
        logger.warning("%s: deadline reached with %d of %d unfinished", label, unfinished, len(items))
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    return [results[index] for index in sorted(results)]


def retry_call(
    fn: Callable[[], R],
    *,
    attempts: int = 2,
    backoff: float = 0.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    label: str = "call",
    sleep: Callable[[float], None] = time.sleep,
) -> R:
    """Call ``fn`` up to ``attempts`` times with exponential backoff.

    The delay before retry ``n`` (zero based) is ``backoff * 2 ** n``. The last
    exception is re-raised once every attempt has failed.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    for attempt in range(attempts):
        try:
            return fn()
        except exceptions as exc:
            if attempt < attempts - 1:
                delay = backoff * (2 ** attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s. Retrying in %.1fs",
                    label, attempt + 1, attempts, exc, delay,
                )
                if delay > 0:
                    sleep(delay)
                continue
            logger.warning("%s failed after %d attempts: %s", label, attempts, exc)
            raise
    raise AssertionError("unreachable")


def chunked(items: Sequence[T], size: int) -> list[Sequence[T]]:
    return [items[i:i + size] for i in range(0, len(items), size)]
