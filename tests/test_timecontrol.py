import pytest

from fastchess.timecontrol import Limits, TimeControl


def test_initial_time_is_fixed_time_when_set():
    limits = Limits(fixed_time=250, time=5000, increment=50)
    tc = TimeControl(limits)
    assert tc.time_left == limits.fixed_time
    assert tc.fixed_time == limits.fixed_time


def test_initial_time_includes_increment():
    limits = Limits(time=5000, increment=50, moves=40)
    tc = TimeControl(limits)
    assert tc.time_left == limits.time + limits.increment
    assert tc.moves_left == limits.moves


def test_default_limits_are_empty():
    tc = TimeControl()
    assert tc.limits == Limits()
    assert tc.time_left == 0
    assert tc.moves_left == 0


def test_limits_are_copied():
    limits = Limits(time=1000)
    tc = TimeControl(limits)
    limits.time = 7
    assert tc.limits.time == 1000


def test_no_limits_never_loses_on_time():
    tc = TimeControl(Limits())
    assert tc.update_time(1_000_000) is True
    assert tc.time_left == 0


def test_loses_when_exceeding_margin():
    tc = TimeControl(Limits(time=100, timemargin=10))
    assert tc.update_time(200) is False


def test_within_margin_clamps_and_adds_increment():
    limits = Limits(time=100, increment=20, timemargin=50)
    tc = TimeControl(limits)
    # overshoot by less than the margin
    assert tc.update_time(limits.time + limits.increment + 30) is True
    assert tc.time_left == limits.increment


def test_fixed_time_resets_after_move():
    limits = Limits(fixed_time=300)
    tc = TimeControl(limits)
    assert tc.update_time(120) is True
    assert tc.time_left == limits.fixed_time


def test_fixed_time_overrun_loses():
    tc = TimeControl(Limits(fixed_time=300))
    assert tc.update_time(301) is False


def test_moves_period_refills_clock():
    limits = Limits(moves=2, time=1000)
    tc = TimeControl(limits)
    assert tc.update_time(100) is True
    assert tc.moves_left == 1
    before = tc.time_left
    assert tc.update_time(100) is True
    assert tc.moves_left == limits.moves
    assert tc.time_left == before + limits.time - 100


def test_time_decreases_monotonically_without_increment():
    tc = TimeControl(Limits(time=10_000))
    previous = tc.time_left
    for _ in range(5):
        assert tc.update_time(50)
        assert tc.time_left < previous
        previous = tc.time_left


def test_timeout_threshold():
    limits = Limits(time=1000, timemargin=30)
    tc = TimeControl(limits)
    assert tc.timeout_threshold() == tc.time_left + limits.timemargin + TimeControl.MARGIN


def test_predicates():
    tc = TimeControl(Limits(time=1, moves=2))
    assert tc.is_timed()
    assert tc.is_moves()
    assert not tc.is_increment()
    assert not tc.is_fixed_time()
    other = TimeControl(Limits(fixed_time=5, increment=1))
    assert other.is_fixed_time()
    assert other.is_increment()
    assert not other.is_timed()


def test_str_fixed_time():
    assert str(TimeControl(Limits(fixed_time=100))) == "0.1/move"


def test_str_empty_is_dash():
    assert str(TimeControl(Limits())) == "-"


def test_str_moves_time_increment():
    assert str(TimeControl(Limits(moves=40, time=10_000, increment=100))) == "40/10+0.1"


def test_dict_round_trip():
    tc = TimeControl(Limits(time=9000, increment=100, moves=40, timemargin=5))
    tc.update_time(321)
    data = tc.to_dict()
    assert set(data) == {"limits_", "time_left_", "moves_left_"}
    restored = TimeControl.from_dict(data)
    assert restored == tc


def test_limits_dict_round_trip():
    limits = Limits(increment=1, fixed_time=2, time=3, moves=4, timemargin=5)
    assert Limits.from_dict(limits.to_dict()) == limits


def test_equality_tracks_state():
    a = TimeControl(Limits(time=1000))
    b = TimeControl(Limits(time=1000))
    assert a == b
    a.update_time(10)
    assert not a == b


@pytest.mark.parametrize("elapsed", [0, 1, 499])
def test_never_negative_after_successful_update(elapsed):
    tc = TimeControl(Limits(time=500))
    assert tc.update_time(elapsed)
    assert tc.time_left >= 0