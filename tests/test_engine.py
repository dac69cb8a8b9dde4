"""Tests for the TimerEngine.

Covers: start/pause/reset/skip transitions, tick saturation, completion and
auto-advance, long-break cadence, configuration changes, restore, and the
single tick-task guarantee.
"""

import pytest

from romatimer.configuration import UserConfiguration
from romatimer.errors import AlreadyRunning, InvalidDuration, NotRunning, OutOfRange
from romatimer.timer.engine import TimerEngine
from romatimer.timer.session import DEFAULT_DURATIONS, TimerSession, TimerType

from helpers import SignalCollector, complete_session


# ═══════════════════════════════════════════════════════════════════════════
#  STATE TRANSITIONS
# ═══════════════════════════════════════════════════════════════════════════


class TestStateTransitions:

    def test_initial_state(self, engine):
        state = engine.get_state()
        assert state.kind == TimerType.WORK
        assert state.duration == DEFAULT_DURATIONS[TimerType.WORK]
        assert state.elapsed == 0
        assert not state.running
        assert engine.work_sessions_completed == 0

    def test_start(self, engine):
        snap = engine.start()
        assert snap.running
        assert engine.is_running

    def test_start_twice_raises(self, engine):
        engine.start()
        with pytest.raises(AlreadyRunning):
            engine.start()
        assert engine.is_running

    def test_pause_fresh_raises(self, engine):
        with pytest.raises(NotRunning):
            engine.pause()

    def test_pause(self, engine):
        engine.start()
        snap = engine.pause()
        assert not snap.running

    def test_reset_keeps_kind_and_counter(self, engine):
        engine.skip()                    # -> ShortBreak, counter 1
        engine.start()
        engine.tick(30)
        snap = engine.reset()
        assert snap.kind == TimerType.SHORT_BREAK
        assert snap.elapsed == 0
        assert not snap.running
        assert engine.work_sessions_completed == 1

    def test_reset_cycle(self, engine):
        engine.skip()
        engine.skip()
        snap = engine.reset_cycle()
        assert snap.kind == TimerType.WORK
        assert snap.elapsed == 0
        assert engine.work_sessions_completed == 0

    def test_skip_while_running_stops(self, engine):
        engine.start()
        snap = engine.skip()
        assert not snap.running
        assert snap.kind == TimerType.SHORT_BREAK
        assert snap.duration == DEFAULT_DURATIONS[TimerType.SHORT_BREAK]

    def test_skip_keeps_session_id(self, engine):
        before = engine.get_state().id
        assert engine.skip().id == before

    def test_state_changed_fires_on_every_mutation(self, engine):
        c = SignalCollector()
        engine.state_changed.connect(c)
        engine.start()
        engine.pause()
        engine.reset()
        engine.skip()
        assert len(c) == 4
        assert c.last.kind == TimerType.SHORT_BREAK

    def test_failed_operation_emits_nothing(self, engine):
        c = SignalCollector()
        engine.state_changed.connect(c)
        with pytest.raises(NotRunning):
            engine.pause()
        assert len(c) == 0

    def test_frequency_below_two_rejected(self, qapp, clock):
        with pytest.raises(OutOfRange):
            TimerEngine(clock=clock, long_break_frequency=1)


# ═══════════════════════════════════════════════════════════════════════════
#  TICK / COUNTDOWN
# ═══════════════════════════════════════════════════════════════════════════


class TestCountdown:

    def test_tick_while_paused_is_noop(self, engine):
        assert engine.tick(10) is False
        assert engine.get_state().elapsed == 0

    def test_tick_advances(self, engine):
        engine.start()
        engine.tick(1)
        engine.tick(4)
        assert engine.get_state().elapsed == 5

    @pytest.mark.parametrize("delta", [1500, 1501, 10**9])
    def test_tick_saturates(self, engine, delta):
        c = SignalCollector()
        engine.ticked.connect(c)
        engine.start()
        assert engine.tick(delta) is True
        assert c.last.elapsed == c.last.duration == 1500

    def test_ticked_signal(self, engine):
        c = SignalCollector()
        engine.ticked.connect(c)
        engine.start()
        engine.tick(3)
        assert len(c) == 1
        assert c.last.elapsed == 3
        assert c.last.running

    def test_on_tick_measures_clock_delta(self, engine, clock):
        engine.start()
        clock.advance(seconds=3)
        engine._on_tick()
        assert engine.get_state().elapsed == 3

    def test_on_tick_without_time_passing(self, engine):
        engine.start()
        engine._on_tick()
        assert engine.get_state().elapsed == 0

    def test_manual_tick_is_not_counted_twice(self, engine, clock):
        engine.start()
        clock.advance(seconds=10)
        engine.tick(10)
        engine._on_tick()
        assert engine.get_state().elapsed == 10
        clock.advance(seconds=2)
        engine._on_tick()
        assert engine.get_state().elapsed == 12

    def test_on_tick_stops_when_paused(self, engine, clock):
        engine.start()
        engine.pause()
        clock.advance(seconds=5)
        engine._on_tick()
        assert engine.get_state().elapsed == 0
        assert not engine.tick_active


# ═══════════════════════════════════════════════════════════════════════════
#  COMPLETION
# ═══════════════════════════════════════════════════════════════════════════


class TestCompletion:

    def test_completion_advances_to_break(self, engine):
        assert complete_session(engine) is True
        state = engine.get_state()
        assert state.kind == TimerType.SHORT_BREAK
        assert state.elapsed == 0
        assert not state.running
        assert engine.work_sessions_completed == 1

    def test_completion_signal_payload(self, engine, clock):
        c = SignalCollector()
        engine.session_completed.connect(c)
        session_id = engine.get_state().id
        complete_session(engine)
        data = c.last
        assert data["session_id"] == session_id
        assert data["kind"] == TimerType.WORK
        assert data["duration"] == 1500
        assert data["completed_at"] == clock.now_timestamp()
        assert data["work_sessions_completed"] == 1

    def test_signal_order(self, engine):
        order = []
        engine.ticked.connect(lambda s: order.append("ticked"))
        engine.session_completed.connect(lambda d: order.append("completed"))
        engine.state_changed.connect(lambda s: order.append("state"))
        engine.start()
        order.clear()
        engine.tick(10_000)
        assert order == ["ticked", "completed", "state"]

    def test_break_completion_goes_to_work(self, engine):
        complete_session(engine)
        complete_session(engine)
        assert engine.session_type == TimerType.WORK
        assert engine.work_sessions_completed == 1

    def test_completion_stops_tick_task(self, engine):
        engine.start()
        assert engine.tick_active
        engine.tick(10_000)
        assert not engine.tick_active


# ═══════════════════════════════════════════════════════════════════════════
#  LONG BREAK CADENCE
# ═══════════════════════════════════════════════════════════════════════════


class TestLongBreakCadence:

    def test_fourth_work_skip_is_long_break(self, engine):
        kinds = []
        for _ in range(4):
            kinds.append(engine.skip().kind)   # leave Work
            engine.skip()                      # leave the break
        assert kinds == [
            TimerType.SHORT_BREAK, TimerType.SHORT_BREAK,
            TimerType.SHORT_BREAK, TimerType.LONG_BREAK,
        ]

    def test_fourth_completion_is_long_break(self, engine):
        kinds = []
        for _ in range(4):
            complete_session(engine)
            kinds.append(engine.session_type)
            complete_session(engine)
        assert kinds[-1] == TimerType.LONG_BREAK
        assert kinds[:3] == [TimerType.SHORT_BREAK] * 3
        assert engine.work_sessions_completed == 4

    def test_skipping_a_break_does_not_count(self, engine):
        engine.skip()
        engine.skip()
        assert engine.work_sessions_completed == 1

    def test_custom_frequency(self, qapp, clock):
        eng = TimerEngine(clock=clock, long_break_frequency=2)
        assert eng.skip().kind == TimerType.SHORT_BREAK
        eng.skip()
        assert eng.skip().kind == TimerType.LONG_BREAK


# ═══════════════════════════════════════════════════════════════════════════
#  CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════


class TestConfiguration:

    def _config(self, **kw):
        return UserConfiguration(**kw)

    def test_idle_session_adopts_new_duration(self, engine):
        engine.apply_configuration(self._config(work_duration=1800))
        assert engine.get_state().duration == 1800

    def test_new_sessions_use_configured_durations(self, engine):
        engine.apply_configuration(self._config(short_break_duration=120, long_break_frequency=2))
        assert engine.skip().duration == 120
        engine.skip()
        assert engine.skip().kind == TimerType.LONG_BREAK
        assert engine.long_break_frequency == 2

    def test_in_progress_session_keeps_longer_duration(self, engine):
        engine.start()
        engine.tick(100)
        engine.apply_configuration(self._config(work_duration=3000))
        state = engine.get_state()
        assert state.duration == 1500
        assert state.elapsed == 100

    def test_shorter_duration_clamps_elapsed(self, engine):
        engine.start()
        engine.tick(1000)
        engine.apply_configuration(self._config(work_duration=600))
        state = engine.get_state()
        assert state.duration == 600
        assert state.elapsed == 600

    def test_apply_emits_state_changed(self, engine):
        c = SignalCollector()
        engine.state_changed.connect(c)
        engine.apply_configuration(self._config(work_duration=1200))
        assert c.last.duration == 1200


# ═══════════════════════════════════════════════════════════════════════════
#  RESTORE
# ═══════════════════════════════════════════════════════════════════════════


class TestRestore:

    def test_restore_is_paused(self, engine, clock):
        now = clock.now_timestamp()
        session = TimerSession(
            duration=300, kind=TimerType.SHORT_BREAK, elapsed=30,
            running=True, created_at=now - 60, updated_at=now,
        )
        snap = engine.restore(session, work_sessions_completed=3)
        assert not snap.running
        assert snap.kind == TimerType.SHORT_BREAK
        assert snap.elapsed == 30
        assert engine.work_sessions_completed == 3

    def test_invalid_restore_leaves_engine_untouched(self, engine):
        before = engine.get_state()
        with pytest.raises(InvalidDuration):
            engine.restore(TimerSession(duration=0))
        assert engine.get_state() == before


# ═══════════════════════════════════════════════════════════════════════════
#  TICK TASK
# ═══════════════════════════════════════════════════════════════════════════


class TestTickTask:

    def test_start_arms_timer(self, engine):
        assert not engine.tick_active
        engine.start()
        assert engine.tick_active

    @pytest.mark.parametrize("op", ["pause", "reset", "skip", "reset_cycle"])
    def test_stopping_operations_disarm_timer(self, engine, op):
        engine.start()
        getattr(engine, op)()
        assert not engine.tick_active

    def test_rejected_second_start_keeps_single_timer(self, engine):
        engine.start()
        with pytest.raises(AlreadyRunning):
            engine.start()
        assert engine.tick_active
        engine.pause()
        assert not engine.tick_active
