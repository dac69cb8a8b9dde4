"""Tests for the pure TimerSession model and the next-kind rule."""

import pytest

from romatimer.errors import (
    AlreadyRunning, InvalidDuration, InvalidElapsed, InvalidTimestamps, NotRunning,
)
from romatimer.timer.session import (
    DEFAULT_DURATIONS, MAX_SESSION_DURATION, TimerSession, TimerSnapshot, TimerType,
    next_kind,
)


NOW = 1_736_244_000  # 2025-01-07 10:00:00 UTC


def _session(duration=1500, elapsed=0, **kw):
    return TimerSession(duration=duration, elapsed=elapsed, created_at=NOW, updated_at=NOW, **kw)


# ═══════════════════════════════════════════════════════════════════════════
#  TIMER TYPE
# ═══════════════════════════════════════════════════════════════════════════


class TestTimerType:

    def test_wire_values(self):
        assert [t.value for t in TimerType] == ["Work", "ShortBreak", "LongBreak"]

    def test_default_durations(self):
        assert TimerType.WORK.default_duration == 1500
        assert TimerType.SHORT_BREAK.default_duration == 300
        assert TimerType.LONG_BREAK.default_duration == 900

    def test_display_names(self):
        assert TimerType.WORK.display_name == "Work Session"
        assert TimerType.SHORT_BREAK.display_name == "Short Break"
        assert TimerType.LONG_BREAK.display_name == "Long Break"


# ═══════════════════════════════════════════════════════════════════════════
#  NEXT KIND
# ═══════════════════════════════════════════════════════════════════════════


class TestNextKind:

    def test_work_goes_to_short_break_off_cycle(self):
        assert next_kind(TimerType.WORK, 1, 4) == TimerType.SHORT_BREAK
        assert next_kind(TimerType.WORK, 3, 4) == TimerType.SHORT_BREAK

    def test_work_goes_to_long_break_on_cycle(self):
        assert next_kind(TimerType.WORK, 4, 4) == TimerType.LONG_BREAK
        assert next_kind(TimerType.WORK, 8, 4) == TimerType.LONG_BREAK

    def test_breaks_go_to_work(self):
        assert next_kind(TimerType.SHORT_BREAK, 4, 4) == TimerType.WORK
        assert next_kind(TimerType.LONG_BREAK, 4, 4) == TimerType.WORK

    @pytest.mark.parametrize("frequency", [2, 3, 4, 7, 10])
    def test_only_nth_work_completion_is_long(self, frequency):
        kinds = [next_kind(TimerType.WORK, n, frequency) for n in range(1, frequency + 1)]
        assert kinds[:-1] == [TimerType.SHORT_BREAK] * (frequency - 1)
        assert kinds[-1] == TimerType.LONG_BREAK


# ═══════════════════════════════════════════════════════════════════════════
#  TRANSITIONS
# ═══════════════════════════════════════════════════════════════════════════


class TestTransitions:

    def test_create_uses_default_duration(self):
        s = TimerSession.create(TimerType.SHORT_BREAK, NOW)
        assert s.duration == 300
        assert s.elapsed == 0
        assert not s.running
        assert s.created_at == s.updated_at == NOW

    def test_create_ids_are_unique(self):
        assert TimerSession.create(TimerType.WORK, NOW).id != TimerSession.create(TimerType.WORK, NOW).id

    def test_start_twice_raises(self):
        s = _session()
        s.start(NOW)
        with pytest.raises(AlreadyRunning):
            s.start(NOW + 1)
        assert s.running

    def test_pause_fresh_session_raises(self):
        with pytest.raises(NotRunning):
            _session().pause(NOW)

    def test_start_refreshes_updated_at(self):
        s = _session()
        s.start(NOW + 5)
        assert s.updated_at == NOW + 5

    def test_updated_at_never_behind_created_at(self):
        s = _session()
        s.start(NOW - 100)
        assert s.updated_at == NOW

    def test_reset_keeps_kind_and_duration(self):
        s = _session(duration=300, elapsed=120, kind=TimerType.SHORT_BREAK, running=True)
        s.reset(NOW + 1)
        assert s.elapsed == 0
        assert not s.running
        assert s.kind == TimerType.SHORT_BREAK
        assert s.duration == 300

    def test_add_elapsed_saturates(self):
        s = _session(duration=60)
        assert s.add_elapsed(10_000, NOW) is True
        assert s.elapsed == 60
        assert s.remaining == 0

    def test_add_elapsed_partial(self):
        s = _session(duration=60)
        assert s.add_elapsed(20, NOW) is False
        assert s.elapsed == 20
        assert s.remaining == 40

    def test_skip_to_next_keeps_id(self):
        s = _session(elapsed=100, running=True)
        original_id = s.id
        new_kind = s.skip_to_next(1, 4, NOW + 1)
        assert new_kind == TimerType.SHORT_BREAK
        assert s.id == original_id
        assert s.duration == DEFAULT_DURATIONS[TimerType.SHORT_BREAK]
        assert s.elapsed == 0
        assert not s.running

    def test_skip_to_next_uses_given_durations(self):
        s = _session()
        durations = {TimerType.WORK: 1800, TimerType.SHORT_BREAK: 120, TimerType.LONG_BREAK: 600}
        s.skip_to_next(4, 4, NOW, durations)
        assert s.kind == TimerType.LONG_BREAK
        assert s.duration == 600

    def test_progress(self):
        s = _session(duration=200, elapsed=50)
        assert s.progress == 0.25

    def test_progress_zero_duration(self):
        assert _session(duration=0).progress == 0.0


# ═══════════════════════════════════════════════════════════════════════════
#  VALIDATION
# ═══════════════════════════════════════════════════════════════════════════


class TestValidation:

    @pytest.mark.parametrize("duration, elapsed", [
        (1, 0), (1, 1), (1500, 0), (1500, 750), (MAX_SESSION_DURATION, MAX_SESSION_DURATION),
    ])
    def test_valid(self, duration, elapsed):
        _session(duration=duration, elapsed=elapsed).validate()

    @pytest.mark.parametrize("duration", [0, MAX_SESSION_DURATION + 1])
    def test_invalid_duration(self, duration):
        with pytest.raises(InvalidDuration):
            _session(duration=duration).validate()

    def test_elapsed_beyond_duration(self):
        with pytest.raises(InvalidElapsed):
            _session(duration=60, elapsed=61).validate()

    def test_updated_before_created(self):
        s = _session()
        s.updated_at = NOW - 1
        with pytest.raises(InvalidTimestamps):
            s.validate()

    def test_validation_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            _session(duration=0).validate()

    def test_repeated_skips_stay_valid(self):
        s = _session()
        completed = 0
        for i in range(50):
            if s.kind == TimerType.WORK:
                completed += 1
            s.skip_to_next(completed, 4, NOW + i)
            s.validate()


# ═══════════════════════════════════════════════════════════════════════════
#  SNAPSHOT
# ═══════════════════════════════════════════════════════════════════════════


class TestSnapshot:

    def test_snapshot_is_a_copy(self):
        s = _session(elapsed=10)
        snap = TimerSnapshot.of(s, work_sessions_completed=2)
        s.elapsed = 20
        assert snap.elapsed == 10
        assert snap.work_sessions_completed == 2

    def test_snapshot_is_frozen(self):
        snap = TimerSnapshot.of(_session())
        with pytest.raises(Exception):
            snap.elapsed = 5

    def test_to_dict(self):
        s = _session(duration=200, elapsed=50, kind=TimerType.SHORT_BREAK)
        data = TimerSnapshot.of(s, work_sessions_completed=3).to_dict()
        assert data["id"] == s.id
        assert data["timer_type"] == "ShortBreak"
        assert data["is_running"] is False
        assert data["remaining_seconds"] == 150
        assert data["progress_percentage"] == 25.0
        assert data["work_sessions_completed"] == 3
        assert "session_count" not in data
