"""
Proximity change detector
-------------------------
Ingests push-based location samples and turns them into "significant move"
events. Each event triggers one payment-suggestion lookup.

Rules:
- A sample is significant when nothing was emitted yet, or it is more than
  `threshold_m` meters (haversine) from the last emitted coordinate.
- At most one lookup is in flight. Samples arriving meanwhile overwrite a
  single pending slot, which is processed when the lookup finishes.
- Lookup failures are logged and swallowed. No retry; the next qualifying
  sample simply triggers a new lookup.

The location watcher and the lookup are collaborators:
    watcher.watch(callback) -> unsubscribe
    await lookup(latitude, longitude) -> list of suggestions
"""
import asyncio
import json
import time
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional

import readiness.observability.metrics as metrics
from readiness.observability.logging import log
from readiness.proximity.geo import LocationSample, MoveEvent, distance_between, is_valid_coordinate
from readiness.settings import settings
from readiness.store.redis_conn import get_redis

LAST_SUGGESTIONS_KEY = "proximity:{namespace}:last_suggestions"

_STOP = object()

Lookup = Callable[[float, float], Awaitable[List[Any]]]
SuggestionsCallback = Callable[[List[Any], MoveEvent], None]


def coerce_sample(raw) -> Optional[LocationSample]:
    """
    Accept a LocationSample, a flat dict, or the OS shape
    {"coords": {"latitude", "longitude"}, "timestamp"}.
    Returns None when the coordinates are unusable.
    """
    if isinstance(raw, LocationSample):
        lat, lon, ts = raw.latitude, raw.longitude, raw.timestamp
    elif isinstance(raw, dict):
        src = raw.get("coords") if isinstance(raw.get("coords"), dict) else raw
        lat, lon, ts = src.get("latitude"), src.get("longitude"), raw.get("timestamp")
    else:
        lat = getattr(raw, "latitude", None)
        lon = getattr(raw, "longitude", None)
        ts = getattr(raw, "timestamp", None)

    if not is_valid_coordinate(lat, lon):
        return None
    try:
        ts = int(ts) if ts is not None else None
    except (TypeError, ValueError):
        ts = None
    return LocationSample(latitude=float(lat), longitude=float(lon), timestamp=ts)


def last_suggestions_key(namespace: str) -> str:
    return LAST_SUGGESTIONS_KEY.format(namespace=namespace)


def read_last_suggestions(namespace: str, redis_client=None) -> Optional[dict]:
    r = redis_client or get_redis()
    raw = r.get(last_suggestions_key(namespace))
    if not raw:
        return None
    return json.loads(raw)


class ProximityChangeDetector:
    def __init__(
        self,
        watcher,
        lookup: Lookup,
        threshold_m: Optional[float] = None,
        on_suggestions: Optional[SuggestionsCallback] = None,
        namespace: str = "default",
        redis_client=None,
    ):
        self.watcher = watcher
        self.lookup = lookup
        self.threshold_m = float(settings.PROXIMITY_THRESHOLD_M if threshold_m is None else threshold_m)
        self.on_suggestions = on_suggestions
        self.namespace = namespace
        self._redis = redis_client

        self.last_emitted: Optional[LocationSample] = None
        self._pending: Optional[LocationSample] = None
        self._in_flight: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        # Created by events(); moves are only buffered for a claimed stream
        self._queue: Optional[asyncio.Queue] = None
        self._events_claimed = False
        self._stopped = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._stopped:
            raise RuntimeError("detector already stopped")
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self.watcher.watch(self.ingest)
        log(event="proximity_watch_started", namespace=self.namespace, thresholdM=self.threshold_m)

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._pending = None
        if self._in_flight is not None and not self._in_flight.done():
            self._in_flight.cancel()
        self._in_flight = None
        if self._queue is not None:
            self._queue.put_nowait(_STOP)
        log(event="proximity_watch_stopped", namespace=self.namespace)

    @property
    def lookup_in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    @property
    def pending(self) -> Optional[LocationSample]:
        return self._pending

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------
    def events(self) -> AsyncIterator[MoveEvent]:
        """
        Single-consumer stream of MoveEvents; ends after stop(). Only moves
        detected after this call are delivered.
        """
        if self._events_claimed:
            raise RuntimeError("events() can only be consumed once")
        self._events_claimed = True
        self._queue = asyncio.Queue()
        if self._stopped:
            self._queue.put_nowait(_STOP)
        return self._stream()

    async def _stream(self) -> AsyncIterator[MoveEvent]:
        while True:
            item = await self._queue.get()
            if item is _STOP:
                return
            yield item

    # ------------------------------------------------------------------
    # Sample handling (call from the event loop)
    # ------------------------------------------------------------------
    def ingest(self, raw) -> Optional[MoveEvent]:
        if self._stopped:
            return None
        sample = coerce_sample(raw)
        if sample is None:
            log(event="proximity_sample_invalid", namespace=self.namespace)
            return None

        if self.lookup_in_flight:
            if self._pending is not None:
                metrics.safe(metrics.increment_sample_coalesced)
            self._pending = sample
            return None
        return self._process(sample)

    def _process(self, sample: LocationSample) -> Optional[MoveEvent]:
        distance = None
        if self.last_emitted is not None:
            distance = distance_between(self.last_emitted.coordinate, sample.coordinate)
            if distance <= self.threshold_m:
                return None

        self.last_emitted = sample
        event = MoveEvent(coordinate=sample.coordinate, distance_m=distance, timestamp=sample.timestamp)
        if self._queue is not None:
            self._queue.put_nowait(event)
        metrics.safe(metrics.increment_significant_move)
        log(
            event="proximity_significant_move",
            namespace=self.namespace,
            latitude=sample.latitude,
            longitude=sample.longitude,
            distanceM=round(distance, 1) if distance is not None else None,
        )
        self._in_flight = asyncio.get_running_loop().create_task(self._run_lookup(event))
        return event

    async def _run_lookup(self, event: MoveEvent) -> None:
        started = time.monotonic()
        coord = event.coordinate
        try:
            suggestions = await self.lookup(coord.latitude, coord.longitude)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            metrics.safe(metrics.increment_lookup_failure)
            log(
                event="proximity_lookup_failed",
                namespace=self.namespace,
                errorType=type(e).__name__,
                error=str(e)[:300],
            )
        else:
            suggestions = list(suggestions or [])
            metrics.safe(metrics.record_lookup_latency, int((time.monotonic() - started) * 1000))
            log(event="proximity_lookup_done", namespace=self.namespace, suggestionCount=len(suggestions))
            self._store_last(event, suggestions)
            if self.on_suggestions is not None:
                try:
                    self.on_suggestions(suggestions, event)
                except Exception as e:
                    log(event="proximity_callback_failed", namespace=self.namespace, errorType=type(e).__name__)
        finally:
            if not self._stopped:
                self._in_flight = None
                self._drain_pending()

    def _drain_pending(self) -> None:
        sample, self._pending = self._pending, None
        if sample is not None:
            self._process(sample)

    def _store_last(self, event: MoveEvent, suggestions: List[Any]) -> None:
        if not settings.STORE_LAST_SUGGESTIONS:
            return
        payload = {
            "latitude": event.coordinate.latitude,
            "longitude": event.coordinate.longitude,
            "timestamp": event.timestamp,
            "suggestions": suggestions,
            "storedAt": int(time.time()),
        }
        try:
            r = self._redis or get_redis()
            r.set(last_suggestions_key(self.namespace), json.dumps(payload, default=str))
        except Exception as e:
            log(event="proximity_store_failed", namespace=self.namespace, errorType=type(e).__name__)
