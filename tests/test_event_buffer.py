"""Tests for the in-progress batch buffer and its flush trigger."""

import threading

import pytest
from loguru import logger

from webhook_relay.batcher import EventBuffer, FlushTrigger
from webhook_relay.core.events import Event


def _buffer(timers, threshold=3, fired=None):
    trigger = FlushTrigger(
        threshold=threshold,
        interval_seconds=60.0,
        on_interval_elapsed=(fired.append if fired is not None else lambda _generation: None),
        timer_factory=timers,
    )
    return EventBuffer(trigger)


def test_no_flush_below_threshold(timers):
    """Adds below the threshold never report a full batch."""
    logger.info("Testing adds below threshold...")
    buffer = _buffer(timers, threshold=5)

    results = [buffer.add(Event(payload={"n": i})) for i in range(4)]

    assert results == [False, False, False, False], "No add below the threshold should report ready"
    assert buffer.size() == 4


def test_threshold_add_reports_ready_once(timers):
    buffer = _buffer(timers, threshold=3)

    results = [buffer.add(Event(payload={"n": i})) for i in range(4)]

    assert results == [False, False, True, False], "Only the add that reaches the threshold is ready"


def test_take_and_reset_preserves_arrival_order(timers):
    buffer = _buffer(timers, threshold=3)
    for i in range(3):
        buffer.add(Event(payload={"n": i}))

    batch = buffer.take_and_reset()

    assert batch is not None
    assert [e.payload["n"] for e in batch.events] == [0, 1, 2]
    assert buffer.size() == 0, "A fresh empty batch replaces the taken one"
    assert buffer.age_seconds() is None


def test_take_on_empty_buffer_is_noop(timers):
    buffer = _buffer(timers)

    assert buffer.take_and_reset() is None
    assert buffer.take_and_reset() is None


def test_batch_created_at_is_first_event_arrival(timers):
    buffer = _buffer(timers)
    first = Event(payload="a")
    buffer.add(first)
    buffer.add(Event(payload="b"))

    batch = buffer.take_and_reset()

    assert batch.created_at == first.received_at


def test_first_event_arms_timer_and_take_cancels_it(timers):
    buffer = _buffer(timers)

    buffer.add(Event(payload="a"))
    buffer.add(Event(payload="b"))
    assert len(timers.timers) == 1, "Only the first event of a batch arms a timer"
    assert timers.pending == timers.timers

    buffer.take_and_reset()
    assert timers.pending == [], "Taking the batch invalidates its timer"

    buffer.add(Event(payload="c"))
    assert len(timers.timers) == 2, "The next batch arms its own timer"
    assert len(timers.pending) == 1


def test_stale_generation_does_not_take_new_batch(timers):
    buffer = _buffer(timers)
    buffer.add(Event(payload="a"))
    old_generation = buffer.generation
    buffer.take_and_reset()

    buffer.add(Event(payload="b"))

    assert buffer.take_and_reset(generation=old_generation) is None
    assert buffer.size() == 1
    batch = buffer.take_and_reset(generation=buffer.generation)
    assert [e.payload for e in batch.events] == ["b"]


def test_min_size_guard(timers):
    buffer = _buffer(timers, threshold=3)
    buffer.add(Event(payload="a"))

    assert buffer.take_and_reset(min_size=3) is None
    assert buffer.size() == 1


def test_timer_fire_reports_generation(timers):
    fired = []
    buffer = _buffer(timers, fired=fired)
    buffer.add(Event(payload="a"))

    timers.fire_pending()

    assert fired == [buffer.generation]


def test_concurrent_adds_and_takes_lose_nothing(timers):
    """Parallel writers racing a taker never lose or duplicate events."""
    logger.info("Testing concurrent adds...")
    buffer = _buffer(timers, threshold=1000)
    writers, per_writer = 8, 500
    taken = []
    done = threading.Event()

    def write(writer_id):
        for i in range(per_writer):
            buffer.add(Event(payload=(writer_id, i)))

    def take():
        while not done.is_set():
            batch = buffer.take_and_reset()
            if batch is not None:
                taken.append(batch)

    taker = threading.Thread(target=take)
    taker.start()
    threads = [threading.Thread(target=write, args=(w,)) for w in range(writers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    done.set()
    taker.join()

    final = buffer.take_and_reset()
    if final is not None:
        taken.append(final)

    payloads = [e.payload for batch in taken for e in batch.events]
    assert len(payloads) == writers * per_writer, "Every event lands in exactly one batch"
    assert len(set(payloads)) == len(payloads), "No event appears twice"

    for batch in taken:
        for writer_id in range(writers):
            seq = [i for w, i in (e.payload for e in batch.events) if w == writer_id]
            assert seq == sorted(seq), "Arrival order is preserved within a batch"


def test_trigger_rejects_invalid_settings():
    with pytest.raises(ValueError):
        FlushTrigger(threshold=0, interval_seconds=1.0, on_interval_elapsed=lambda _g: None)
    with pytest.raises(ValueError):
        FlushTrigger(threshold=1, interval_seconds=0, on_interval_elapsed=lambda _g: None)


def test_trigger_shutdown_stops_arming(timers):
    trigger = FlushTrigger(threshold=2, interval_seconds=1.0, on_interval_elapsed=lambda _g: None, timer_factory=timers)
    trigger.arm(1)
    trigger.shutdown()

    assert timers.timers[0].cancelled
    trigger.arm(2)
    assert len(timers.timers) == 1, "No timer is armed after shutdown"
    assert trigger.armed_generation is None


def test_real_timer_fires_after_interval():
    fired = threading.Event()
    generations = []

    def on_elapsed(generation):
        generations.append(generation)
        fired.set()

    trigger = FlushTrigger(threshold=10, interval_seconds=0.05, on_interval_elapsed=on_elapsed)
    trigger.arm(7)

    assert fired.wait(2.0), "Interval timer should fire"
    assert generations == [7]
