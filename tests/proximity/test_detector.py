import asyncio
import json

import pytest

from readiness.observability import metrics
from readiness.proximity.detector import ProximityChangeDetector, coerce_sample, read_last_suggestions
from readiness.proximity.geo import LocationSample

LAT, LON = 6.5244, 3.3792
TEN_M = 0.00009    # degrees of latitude
SIXTY_M = 0.00054


class FakeWatcher:
    def __init__(self):
        self.callback = None
        self.unsubscribed = False

    def watch(self, callback):
        self.callback = callback

        def unsubscribe():
            self.unsubscribed = True

        return unsubscribe

    def emit(self, lat, lon, ts=None):
        return self.callback(LocationSample(lat, lon, ts))


async def settle(rounds=5):
    for _ in range(rounds):
        await asyncio.sleep(0)


async def collect(det, stream):
    det.stop()
    return [e async for e in stream]


def test_ten_meters_does_not_emit_sixty_meters_does():
    calls = []

    async def lookup(lat, lon):
        calls.append((lat, lon))
        return []

    async def run():
        watcher = FakeWatcher()
        det = ProximityChangeDetector(watcher, lookup, threshold_m=50, namespace="t")
        det.start()
        stream = det.events()

        first = watcher.emit(LAT, LON)
        await settle()
        near = watcher.emit(LAT + TEN_M, LON)
        await settle()
        far = watcher.emit(LAT + SIXTY_M, LON)
        await settle()
        return first, near, far, await collect(det, stream)

    first, near, far, events = asyncio.run(run())
    assert first is not None and first.distance_m is None
    assert near is None
    assert far is not None and 59.5 < far.distance_m < 60.5
    assert events == [first, far]
    assert len(calls) == 2


def test_distance_is_measured_from_last_emission():
    async def lookup(lat, lon):
        return []

    async def run():
        watcher = FakeWatcher()
        det = ProximityChangeDetector(watcher, lookup, threshold_m=50)
        det.start()
        watcher.emit(LAT, LON)
        await settle()
        # Creeping 30 m at a time: only the step that crosses 50 m from the anchor emits
        results = []
        for step in (1, 2, 3):
            results.append(watcher.emit(LAT + step * TEN_M * 3, LON))
            await settle()
        det.stop()
        return results

    results = asyncio.run(run())
    assert results[0] is None
    assert results[1] is not None
    assert results[2] is None


def test_samples_during_lookup_coalesce_into_one(fake_redis):
    calls = []

    async def run():
        release = asyncio.Event()

        async def lookup(lat, lon):
            calls.append((lat, lon))
            await release.wait()
            return ["merchant-1"]

        watcher = FakeWatcher()
        det = ProximityChangeDetector(watcher, lookup, threshold_m=50)
        det.start()
        stream = det.events()

        watcher.emit(LAT, LON)
        await settle()
        assert det.lookup_in_flight is True

        watcher.emit(LAT + SIXTY_M, LON)
        watcher.emit(LAT + 2 * SIXTY_M, LON)
        assert det.pending.latitude == pytest.approx(LAT + 2 * SIXTY_M)
        assert len(calls) == 1

        release.set()
        await settle(10)
        assert det.pending is None
        return await collect(det, stream)

    events = asyncio.run(run())
    assert len(calls) == 2
    assert calls[1][0] == pytest.approx(LAT + 2 * SIXTY_M)
    assert len(events) == 2
    fake_redis.incr.assert_any_call(metrics.K_COALESCED, 1)


def test_coalesced_sample_still_needs_to_be_significant():
    calls = []

    async def run():
        release = asyncio.Event()

        async def lookup(lat, lon):
            calls.append((lat, lon))
            await release.wait()
            return []

        watcher = FakeWatcher()
        det = ProximityChangeDetector(watcher, lookup, threshold_m=50)
        det.start()
        stream = det.events()
        watcher.emit(LAT, LON)
        await settle()
        watcher.emit(LAT + TEN_M, LON)
        release.set()
        await settle(10)
        return await collect(det, stream)

    events = asyncio.run(run())
    assert len(events) == 1
    assert len(calls) == 1


def test_lookup_failure_is_swallowed_and_watching_continues(fake_redis):
    attempts = []

    async def lookup(lat, lon):
        attempts.append((lat, lon))
        if len(attempts) == 1:
            raise ConnectionError("suggestion service down")
        return ["merchant-2"]

    received = []

    async def run():
        watcher = FakeWatcher()
        det = ProximityChangeDetector(
            watcher, lookup, threshold_m=50,
            on_suggestions=lambda suggestions, event: received.append(suggestions),
        )
        det.start()
        watcher.emit(LAT, LON)
        await settle()
        assert det.lookup_in_flight is False
        assert watcher.unsubscribed is False
        watcher.emit(LAT + SIXTY_M, LON)
        await settle()
        det.stop()

    asyncio.run(run())
    # No retry of the failed lookup: one call per qualifying sample
    assert len(attempts) == 2
    assert received == [["merchant-2"]]
    fake_redis.incr.assert_any_call(metrics.K_LOOKUP_FAIL, 1)


def test_last_suggestions_are_stored(fake_redis):
    async def lookup(lat, lon):
        return [{"merchant": "Mama Put", "accountNumber": "0123456789"}]

    async def run():
        watcher = FakeWatcher()
        det = ProximityChangeDetector(watcher, lookup, namespace="device-3")
        det.start()
        watcher.emit(LAT, LON, ts=1700000000000)
        await settle()
        det.stop()

    asyncio.run(run())
    key, raw = fake_redis.set.call_args.args
    assert key == "proximity:device-3:last_suggestions"
    payload = json.loads(raw)
    assert payload["suggestions"][0]["merchant"] == "Mama Put"
    assert payload["timestamp"] == 1700000000000

    fake_redis.get.return_value = raw
    assert read_last_suggestions("device-3")["latitude"] == LAT


def test_events_is_not_restartable():
    async def lookup(lat, lon):
        return []

    async def run():
        det = ProximityChangeDetector(FakeWatcher(), lookup)
        det.events()
        with pytest.raises(RuntimeError):
            det.events()
        det.stop()

    asyncio.run(run())


def test_moves_are_not_retained_without_an_events_consumer():
    received = []

    async def lookup(lat, lon):
        return []

    async def run():
        watcher = FakeWatcher()
        det = ProximityChangeDetector(
            watcher, lookup, threshold_m=50,
            on_suggestions=lambda suggestions, event: received.append(event),
        )
        det.start()
        for i in range(2000):
            watcher.emit(LAT + i * 0.001, LON)    # ~111 m per step
            await settle()
        det.stop()
        return det

    det = asyncio.run(run())
    assert len(received) == 2000
    assert det._queue is None


def test_detector_built_outside_the_loop_streams_inside_it():
    async def lookup(lat, lon):
        return []

    watcher = FakeWatcher()
    det = ProximityChangeDetector(watcher, lookup, threshold_m=50)

    async def run():
        det.start()
        stream = det.events()
        watcher.emit(LAT, LON)
        await settle()
        watcher.emit(LAT + SIXTY_M, LON)
        await settle()
        return await collect(det, stream)

    assert len(asyncio.run(run())) == 2


def test_stop_unsubscribes_and_ignores_late_samples():
    async def lookup(lat, lon):
        return []

    async def run():
        watcher = FakeWatcher()
        det = ProximityChangeDetector(watcher, lookup)
        det.start()
        det.stop()
        late = watcher.emit(LAT, LON)
        with pytest.raises(RuntimeError):
            det.start()
        return watcher, late, await collect(det, det.events())

    watcher, late, events = asyncio.run(run())
    assert watcher.unsubscribed is True
    assert late is None
    assert events == []


def test_invalid_samples_are_dropped():
    calls = []

    async def lookup(lat, lon):
        calls.append((lat, lon))
        return []

    async def run():
        det = ProximityChangeDetector(FakeWatcher(), lookup)
        stream = det.events()
        assert det.ingest({"latitude": 123.0, "longitude": 0.0}) is None
        assert det.ingest({"latitude": float("inf"), "longitude": 0.0}) is None
        assert det.ingest({}) is None
        await settle()
        return await collect(det, stream)

    assert asyncio.run(run()) == []
    assert calls == []


def test_coerce_sample_shapes():
    os_shape = {"coords": {"latitude": LAT, "longitude": LON}, "timestamp": 1700000000000}
    s = coerce_sample(os_shape)
    assert s == LocationSample(LAT, LON, 1700000000000)
    assert coerce_sample({"latitude": "6.5", "longitude": "3.3"}) == LocationSample(6.5, 3.3, None)
    assert coerce_sample(object()) is None
