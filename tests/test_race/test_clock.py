"""
Race clock tests
"""

import asyncio

import pytest

from bullrace.race.clock import RaceClock
from bullrace.race.errors import InvalidTransition

# pylint: disable=W0212


def test_elapsed_from_origin(fake_time):
    """
    Elapsed time is derived from the origin instant
    """
    clock = RaceClock(tick_interval_ms=10, time_source=fake_time)
    assert clock.elapsed_ms == 0
    assert not clock.started

    clock.start()
    fake_time.advance(1500)

    assert clock.running
    assert clock.elapsed_ms == 1500
    assert clock.remaining_ms is None


def test_start_twice(fake_time):
    """
    A clock can only be started once
    """
    clock = RaceClock(tick_interval_ms=10, time_source=fake_time)
    clock.start()

    with pytest.raises(InvalidTransition):
        clock.start()


def test_tick_notifies_observers(fake_time):
    """
    Each tick reports the sampled value
    """
    seen: list[int] = []
    clock = RaceClock(1000, tick_interval_ms=10, time_source=fake_time)
    clock.subscribe(seen.append)
    clock.start()

    fake_time.advance(250)
    assert clock.tick() == 250
    fake_time.advance(250)
    assert clock.tick() == 500

    clock.unsubscribe(seen.append)
    fake_time.advance(100)
    clock.tick()

    assert seen == [250, 500]


def test_ceiling_freezes_clock(fake_time):
    """
    Reaching the ceiling freezes the clock at exactly the ceiling and
    fires the limit callback once
    """
    limits: list[int] = []
    clock = RaceClock(1000, tick_interval_ms=10, time_source=fake_time)
    clock.on_time_limit = limits.append
    clock.start()

    fake_time.advance(1234)
    assert clock.tick() == 1000
    assert clock.limit_reached
    assert not clock.running

    fake_time.advance(5000)
    assert clock.tick() == 1000
    assert clock.elapsed_ms == 1000
    assert clock.remaining_ms == 0
    assert limits == [1000]


def test_elapsed_clamped_before_tick(fake_time):
    """
    The reported elapsed time never exceeds the ceiling
    """
    clock = RaceClock(1000, tick_interval_ms=10, time_source=fake_time)
    clock.start()
    fake_time.advance(4000)

    assert clock.elapsed_ms == 1000


def test_record_split(fake_time):
    """
    Splits report lap and cumulative times
    """
    clock = RaceClock(tick_interval_ms=10, time_source=fake_time)
    clock.start()

    fake_time.advance(60000)
    first = clock.record_split()
    fake_time.advance(70000)
    second = clock.record_split()

    assert (first.lap_elapsed_ms, first.cumulative_elapsed_ms) == (60000, 60000)
    assert (second.lap_elapsed_ms, second.cumulative_elapsed_ms) == (70000, 130000)
    assert clock.last_split_ms == 130000


def test_record_split_at_ceiling(fake_time):
    """
    A split taken once the time has run out is rejected
    """
    limits: list[int] = []
    clock = RaceClock(1000, tick_interval_ms=10, time_source=fake_time)
    clock.on_time_limit = limits.append
    clock.start()
    fake_time.advance(1000)

    with pytest.raises(InvalidTransition):
        clock.record_split()

    assert limits == [1000]

    with pytest.raises(InvalidTransition):
        clock.record_split()


def test_terminate_before_start(fake_time):
    """
    A clock that never started can not be stopped
    """
    clock = RaceClock(tick_interval_ms=10, time_source=fake_time)

    with pytest.raises(InvalidTransition):
        clock.terminate()


def test_terminate_under_ceiling(fake_time):
    """
    Stopping below the ceiling freezes the clock at the current time
    """
    clock = RaceClock(1000, tick_interval_ms=10, time_source=fake_time)
    clock.start()
    fake_time.advance(400)

    stop = clock.terminate()
    assert stop.elapsed_ms == 400
    assert not stop.forced

    fake_time.advance(400)
    assert clock.elapsed_ms == 400
    assert clock.terminate() == stop


def test_terminate_at_ceiling(fake_time):
    """
    Stopping once the ceiling is reached is a forced stop and does not
    fire the limit callback
    """
    limits: list[int] = []
    clock = RaceClock(1000, tick_interval_ms=10, time_source=fake_time)
    clock.on_time_limit = limits.append
    clock.start()
    fake_time.advance(1500)

    stop = clock.terminate()
    assert stop.elapsed_ms == 1000
    assert stop.forced
    assert clock.limit_reached
    assert not limits


def test_terminate_not_before_last_split(fake_time):
    """
    The stop time can not fall before the last recorded split
    """
    clock = RaceClock(tick_interval_ms=10, time_source=fake_time)
    clock.start()
    fake_time.advance(5000)
    clock.record_split()

    stop = clock.terminate(elapsed_at_call=4000)
    assert stop.elapsed_ms == 5000


def test_resume(fake_time):
    """
    A resumed clock counts from the persisted start time
    """
    clock = RaceClock.resume(
        fake_time.now - 5000,
        10000,
        last_split_ms=3000,
        tick_interval_ms=10,
        time_source=fake_time,
    )

    assert clock.running
    assert clock.elapsed_ms == 5000
    assert clock.last_split_ms == 3000

    fake_time.advance(1000)
    assert clock.record_split().lap_elapsed_ms == 3000


@pytest.mark.asyncio
async def test_ticks_on_event_loop(fake_time):
    """
    A started clock samples itself on the event loop until it stops
    """
    seen: list[int] = []
    clock = RaceClock(100, tick_interval_ms=5, time_source=fake_time)
    clock.subscribe(seen.append)
    clock.start()

    fake_time.advance(50)
    async with asyncio.timeout(2):
        while not seen:
            await asyncio.sleep(0.005)

    assert seen[0] == 50

    fake_time.advance(100)
    async with asyncio.timeout(2):
        while not clock.limit_reached:
            await asyncio.sleep(0.005)

    assert seen[-1] == 100
    assert clock._handle is None


def test_terminate_observed_time(fake_time):
    """
    An observed stop time can not run ahead of the clock, and the
    ceiling wins over an observed time taken before it
    """
    clock = RaceClock(1000, tick_interval_ms=10, time_source=fake_time)
    clock.start()
    fake_time.advance(400)

    assert clock.terminate(elapsed_at_call=900).elapsed_ms == 400

    late = RaceClock(1000, tick_interval_ms=10, time_source=fake_time)
    late.start()
    fake_time.advance(1200)

    stop = late.terminate(elapsed_at_call=950)
    assert stop.forced
    assert stop.elapsed_ms == 1000
