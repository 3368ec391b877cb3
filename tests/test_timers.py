from mineduel.core.timers import RepeatingTimer, TimerGroup


def test_repeating_timer_ticks_until_stopped(scheduler):
    ticks = []
    timer = RepeatingTimer(1.0, lambda: ticks.append(scheduler.now), scheduler)
    timer.start()
    scheduler.advance(3.5)
    assert ticks == [1.0, 2.0, 3.0]

    timer.stop()
    scheduler.advance(5)
    assert len(ticks) == 3
    assert not timer.is_running


def test_repeating_timer_stops_when_callback_returns_false(scheduler):
    remaining = [3]

    def tick():
        remaining[0] -= 1
        return remaining[0] > 0

    timer = RepeatingTimer(0.1, tick, scheduler)
    timer.start()
    scheduler.advance(1)
    assert remaining[0] == 0
    assert not timer.is_running
    assert scheduler.pending == []


def test_repeating_timer_restart_drops_stale_tick(scheduler):
    ticks = []
    timer = RepeatingTimer(1.0, lambda: ticks.append(scheduler.now), scheduler)
    timer.start()
    scheduler.advance(0.5)
    timer.start()
    scheduler.advance(1.0)
    assert ticks == [1.5]


def test_repeating_timer_survives_callback_error(scheduler):
    def boom():
        raise RuntimeError('tick failed')

    timer = RepeatingTimer(1.0, boom, scheduler)
    timer.start()
    scheduler.advance(2)
    assert not timer.is_running


def test_timer_group_call_later_and_cancel(scheduler):
    fired = []
    group = TimerGroup(scheduler)
    first = group.call_later(1.0, fired.append, 'a')
    group.call_later(2.0, fired.append, 'b')
    group.cancel(first)
    assert group.pending == 1

    scheduler.advance(3)
    assert fired == ['b']
    assert group.pending == 0


def test_timer_group_close_refuses_new_timers(scheduler):
    fired = []
    group = TimerGroup(scheduler)
    group.call_later(1.0, fired.append, 'a')
    group.close()
    assert group.call_later(1.0, fired.append, 'b') is None

    scheduler.advance(5)
    assert fired == []


def test_timer_group_cancel_all_keeps_group_usable(scheduler):
    fired = []
    group = TimerGroup(scheduler)
    group.call_later(1.0, fired.append, 'a')
    group.cancel_all()
    group.call_later(1.0, fired.append, 'b')
    scheduler.advance(2)
    assert fired == ['b']
