"""
Status sources: last-known value + loading/error flags for one backend concern.

A StatusSource only holds and broadcasts snapshots. PolledSource adds the
cache/retry layer on top of an injected coroutine (`fetcher`); how that
coroutine reaches the backend is not this module's concern.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional

from readiness.observability.logging import log
from readiness.settings import settings


class FetchError(Exception):
    """Raised by fetchers; status_code lets the cache tell 404 from outages."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class SourceError:
    message: str = ""
    statusCode: Optional[int] = None


@dataclass
class SourceSnapshot:
    data: Any = None
    isLoading: bool = True
    isError: bool = False
    error: Optional[SourceError] = None


Listener = Callable[[SourceSnapshot], None]


class StatusSource:
    def __init__(self, name: str, initial: Optional[SourceSnapshot] = None):
        self.name = name
        self._snapshot = initial or SourceSnapshot()
        self._listeners: List[Listener] = []

    @property
    def snapshot(self) -> SourceSnapshot:
        return self._snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def reset(self) -> None:
        """Back to the initial loading snapshot without notifying anyone."""
        self._snapshot = SourceSnapshot()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def publish(self, snapshot: SourceSnapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                # One broken subscriber must not starve the others.
                log(event="status_listener_error", source=self.name, errorType=type(e).__name__, error=str(e)[:300])


def calc_backoff_ms(attempt: int) -> int:
    """Exponential backoff: base * 2**attempt, capped."""
    base = int(getattr(settings, "STATUS_RETRY_BASE_DELAY_MS", 1000) or 1000)
    max_delay = int(getattr(settings, "STATUS_RETRY_MAX_DELAY_MS", 30000) or 30000)
    return min(max_delay, base * (2 ** attempt))


class PolledSource(StatusSource):
    def __init__(
        self,
        name: str,
        fetcher: Callable[[], Awaitable[Any]],
        interval: Optional[float] = None,
        retries: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        super().__init__(name)
        self._fetcher = fetcher
        self._interval = interval
        self._retries = int(settings.STATUS_RETRY_ATTEMPTS if retries is None else retries)
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    async def refresh(self) -> SourceSnapshot:
        """One fetch cycle with retry. Failure keeps the last data and flags the error."""
        last_exc: Optional[Exception] = None
        for attempt in range(self._retries + 1):
            try:
                data = await self._fetcher()
            except Exception as e:
                last_exc = e
                if attempt < self._retries:
                    delay_ms = calc_backoff_ms(attempt)
                    log(event="status_fetch_retry", source=self.name, attempt=attempt + 1, backoffMs=delay_ms)
                    await self._sleep(delay_ms / 1000.0)
                continue
            snap = SourceSnapshot(data=data, isLoading=False, isError=False)
            self.publish(snap)
            return snap

        err = SourceError(
            message=str(getattr(last_exc, "message", None) or last_exc or ""),
            statusCode=getattr(last_exc, "status_code", None),
        )
        log(event="status_fetch_failed", source=self.name, statusCode=err.statusCode, error=err.message[:300])
        snap = SourceSnapshot(data=self._snapshot.data, isLoading=False, isError=True, error=err)
        self.publish(snap)
        return snap

    async def _poll_loop(self) -> None:
        while True:
            await self.refresh()
            if not self._interval:
                return
            await self._sleep(self._interval)

    def start(self) -> asyncio.Task:
        """Begin polling on the running loop (call from async context)."""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._poll_loop())
        return self._task

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
