from __future__ import annotations

import threading
import time

from supervisor import TimeoutSupervisor


class FakeTimer:
    """Manually fired stand-in for threading.Timer."""

    created: list["FakeTimer"] = []

    def __init__(self, interval, function, args=()) -> None:  # noqa: ANN001
        self.interval = interval
        self.function = function
        self.args = args
        self.started = False
        self.cancelled = False
        self.daemon = False
        FakeTimer.created.append(self)

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.function(*self.args)


def _supervisor() -> TimeoutSupervisor:
    FakeTimer.created = []
    return TimeoutSupervisor("test", timer_factory=FakeTimer)


def test_arm_schedules_timer_in_seconds() -> None:
    supervisor = _supervisor()
    supervisor.arm(lambda: None, 1500)

    assert len(FakeTimer.created) == 1
    timer = FakeTimer.created[0]
    assert timer.interval == 1.5
    assert timer.started is True
    assert timer.daemon is True
    assert supervisor.armed is True


def test_fires_once_per_arm_cycle() -> None:
    supervisor = _supervisor()
    fired: list[int] = []
    supervisor.arm(lambda: fired.append(1), 100)

    timer = FakeTimer.created[0]
    timer.fire()
    timer.fire()

    assert fired == [1]
    assert supervisor.armed is False


def test_feed_activity_reschedules_and_invalidates_old_timer() -> None:
    supervisor = _supervisor()
    fired: list[int] = []
    supervisor.arm(lambda: fired.append(1), 100)
    first = FakeTimer.created[0]

    supervisor.feed_activity()

    assert first.cancelled is True
    assert len(FakeTimer.created) == 2
    first.fire()  # raced past cancel
    assert fired == []
    FakeTimer.created[1].fire()
    assert fired == [1]


def test_feed_activity_when_disarmed_is_noop() -> None:
    supervisor = _supervisor()
    supervisor.feed_activity()
    assert FakeTimer.created == []


def test_disarm_prevents_firing() -> None:
    supervisor = _supervisor()
    fired: list[int] = []
    supervisor.arm(lambda: fired.append(1), 100)
    supervisor.disarm()

    FakeTimer.created[0].fire()

    assert fired == []
    assert supervisor.armed is False


def test_rearm_replaces_callback() -> None:
    supervisor = _supervisor()
    fired: list[str] = []
    supervisor.arm(lambda: fired.append("first"), 100)
    supervisor.arm(lambda: fired.append("second"), 100)

    FakeTimer.created[0].fire()
    FakeTimer.created[1].fire()

    assert fired == ["second"]


def test_real_timer_fires() -> None:
    supervisor = TimeoutSupervisor("real")
    done = threading.Event()
    supervisor.arm(done.set, 20)
    assert done.wait(timeout=2.0)


def test_real_timer_reset_by_activity() -> None:
    supervisor = TimeoutSupervisor("real")
    done = threading.Event()
    supervisor.arm(done.set, 150)
    for _ in range(3):
        time.sleep(0.05)
        supervisor.feed_activity()
    assert not done.is_set()
    supervisor.disarm()
