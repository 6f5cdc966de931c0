"""Tests for periodic tasks and the scheduler."""

import threading

import pytest

from ecoplane.core.scheduler import PeriodicTask, Scheduler


def test_run_once_counts_runs():
    calls = []
    task = PeriodicTask("t", 1.0, lambda: calls.append(1))

    assert task.run_once()
    assert task.run_once()

    assert calls == [1, 1]
    assert task.runs == 2
    assert task.failures == 0


def test_failing_run_is_isolated(caplog):
    def boom():
        raise RuntimeError("kaput")

    task = PeriodicTask("boom", 1.0, boom)

    with caplog.at_level("ERROR", logger="ecoplane"):
        assert not task.run_once()

    assert task.failures == 1
    assert "Scheduled task 'boom' failed" in caplog.text


def test_interval_callable_and_floor():
    period = [2.5]
    task = PeriodicTask("t", lambda: period[0], lambda: None)
    assert task.interval == 2.5

    period[0] = 0
    assert task.interval == pytest.approx(0.001)


def test_background_loop_runs_until_cancelled():
    ran = threading.Event()
    task = PeriodicTask("fast", 0.01, ran.set)

    task.start()
    try:
        assert ran.wait(2.0)
        assert task.running
    finally:
        task.cancel(timeout=2.0)

    assert not task.running


def test_loop_survives_failures():
    attempts = []
    done = threading.Event()

    def flaky():
        attempts.append(1)
        if len(attempts) >= 3:
            done.set()
        raise ValueError("again")

    task = PeriodicTask("flaky", 0.01, flaky)
    task.start()
    try:
        assert done.wait(2.0)
    finally:
        task.cancel(timeout=2.0)

    assert task.failures >= 3


class TestScheduler:
    def test_add_and_names(self):
        scheduler = Scheduler()
        scheduler.add("a", 1.0, lambda: None)
        scheduler.add("b", 1.0, lambda: None)

        assert scheduler.names == ["a", "b"]
        assert isinstance(scheduler.get("a"), PeriodicTask)

    def test_duplicate_name_rejected(self):
        scheduler = Scheduler()
        scheduler.add("a", 1.0, lambda: None)
        with pytest.raises(ValueError, match="already registered"):
            scheduler.add("a", 1.0, lambda: None)

    def test_remove(self):
        scheduler = Scheduler()
        scheduler.add("a", 1.0, lambda: None)
        scheduler.remove("a")
        scheduler.remove("missing")
        assert scheduler.names == []

    def test_run_once_by_name(self):
        calls = []
        scheduler = Scheduler()
        scheduler.add("a", 1.0, lambda: calls.append("a"))

        assert scheduler.run_once("a")
        assert calls == ["a"]
        with pytest.raises(KeyError):
            scheduler.run_once("nope")

    def test_one_failing_task_does_not_stop_others(self):
        ok = threading.Event()

        def broken():
            raise RuntimeError("x")

        scheduler = Scheduler()
        scheduler.add("broken", 0.01, broken)
        scheduler.add("ok", 0.01, ok.set)
        scheduler.start()
        try:
            assert ok.wait(2.0)
        finally:
            scheduler.stop(timeout=2.0)

        assert not scheduler.running
        assert not scheduler.get("ok").running

    def test_task_added_while_running_starts(self):
        ran = threading.Event()
        scheduler = Scheduler()
        scheduler.start()
        try:
            task = scheduler.add("late", 0.01, ran.set)
            assert ran.wait(2.0)
            assert task.running
        finally:
            scheduler.stop(timeout=2.0)
