"""Tests for the scheduler and its adaptive poll loop.

Most tests use the fake clock and timer from conftest and drive the loop
by calling ``_tick``/``_process`` directly, then ``join()`` to let the
dispatched executions finalize.
"""

import asyncio
import logging
from datetime import timedelta

import pytest

from cadence.config.models import CadenceConfig
from cadence.scheduling.scheduler import Scheduler
from cadence.scheduling.store import JsonlTaskStore
from cadence.scheduling.types import RunState

from tests.conftest import T0, EventRecorder, FailingStore, RecordingStore


class Gate:
    """Async work function that blocks until released and tracks concurrency."""

    def __init__(self):
        self.release = asyncio.Event()
        self.active = 0
        self.peak = 0
        self.calls = 0

    async def __call__(self, payload):
        self.calls += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await self.release.wait()
        finally:
            self.active -= 1
        return payload


async def echo(payload):
    return payload


async def broken(payload):
    raise ValueError(f"bad payload {payload}")


# =============================================================================
# Poll Decisions
# =============================================================================


class TestTick:
    def test_empty_queue_waits_poll_interval(self, scheduler):
        assert scheduler._tick() == 1.0

    def test_head_not_due_waits_until_due(self, scheduler):
        scheduler.define("echo", echo)
        scheduler.create("echo").interval(10).skip_immediate().save()

        assert scheduler._tick() == 10.0
        assert len(scheduler.queue) == 1

    def test_wait_capped(self, scheduler):
        scheduler.define("echo", echo)
        scheduler.create("echo").interval(3600).skip_immediate().save()

        assert scheduler._tick() == 30.0

    async def test_due_head_dispatched(self, scheduler):
        scheduler.define("echo", echo)
        task = scheduler.now("echo", "hi")

        assert scheduler._tick() == 0.0
        assert scheduler.running == 1
        assert task.run_state == RunState.RUNNING
        assert task.started_at == T0
        assert not scheduler.is_queued(task.id)

        await scheduler.join()
        assert scheduler.running == 0
        assert task.run_state == RunState.IDLE
        assert task.finished_at == T0

    async def test_overdue_head_dispatched(self, scheduler, clock):
        scheduler.define("echo", echo)
        scheduler.create("echo").interval(5).skip_immediate().save()
        clock.advance(60)

        assert scheduler._tick() == 0.0
        assert scheduler.running == 1
        await scheduler.join()

    async def test_concurrency_cap(self, scheduler):
        """Never more than max_concurrency executions in flight."""
        gate = Gate()
        scheduler.define("gate", gate)
        for i in range(5):
            scheduler.now("gate", i)

        delays = [scheduler._tick() for _ in range(5)]

        assert delays == [0.0, 0.0, 0.0, 1.0, 1.0]
        assert scheduler.running == 3
        assert len(scheduler.queue) == 2

        await asyncio.sleep(0)
        gate.release.set()
        await scheduler.join()
        assert scheduler.running == 0

        assert [scheduler._tick() for _ in range(3)] == [0.0, 0.0, 1.0]
        await scheduler.join()
        assert gate.calls == 5
        assert gate.peak <= 3


# =============================================================================
# Lifecycle Events and Outcomes
# =============================================================================


class TestOutcomes:
    async def test_success_event_order(self, scheduler):
        scheduler.define("echo", echo)
        recorder = EventRecorder(scheduler, "echo")
        task = scheduler.now("echo", {"n": 1})

        scheduler._tick()
        await scheduler.join()

        assert recorder.names == [
            "start",
            "start:echo",
            "success",
            "success:echo",
            "complete",
            "complete:echo",
        ]
        assert recorder.events[2][1] == (task, {"n": 1})
        assert task.history == []

    async def test_failure_recorded(self, scheduler):
        scheduler.define("broken", broken)
        recorder = EventRecorder(scheduler, "broken")
        task = scheduler.now("broken", 7, retries=1)

        scheduler._tick()
        await scheduler.join()

        assert recorder.names == [
            "start",
            "start:broken",
            "fail",
            "fail:broken",
            "complete",
            "complete:broken",
        ]
        _, (failed_task, error) = recorder.events[2]
        assert failed_task is task
        assert str(error) == "bad payload 7"
        assert isinstance(error.__cause__, ValueError)

        assert len(task.history) == 1
        record = task.history[0]
        assert record.error == "bad payload 7"
        assert record.error_type == "ExecutionError"
        assert record.timestamp == T0
        assert task.run_state == RunState.IDLE

    async def test_timeout_recorded(self, scheduler):
        async def slow(payload):
            await asyncio.sleep(1)

        scheduler.define("slow", slow)
        recorder = EventRecorder(scheduler)
        task = scheduler.now("slow", timeout=0.02)

        scheduler._tick()
        await scheduler.join()

        assert recorder.names == ["start", "fail", "complete"]
        assert task.history[0].error_type == "TaskTimeoutError"

    async def test_complete_sees_released_slot(self, scheduler):
        scheduler.define("echo", echo)
        seen = []
        scheduler.on("complete", lambda task: seen.append(scheduler.running))
        scheduler.now("echo")

        scheduler._tick()
        await scheduler.join()

        assert seen == [0]

    async def test_failing_handler_does_not_break_dispatch(self, scheduler):
        scheduler.define("echo", echo)

        def handler(task):
            raise RuntimeError("handler bug")

        scheduler.on("start", handler)
        task = scheduler.now("echo")

        assert scheduler._tick() == 0.0
        await scheduler.join()
        assert task.run_state == RunState.IDLE
        assert task.history == []


# =============================================================================
# Rescheduling
# =============================================================================


class TestRescheduling:
    async def test_repeat_rescheduled_from_dispatch(self, scheduler, clock):
        scheduler.define("echo", echo)
        task = scheduler.every(10, "echo")
        clock.advance(2)

        scheduler._tick()

        assert task.next_run_at == T0 + timedelta(seconds=12)
        assert scheduler.is_queued(task.id)
        await scheduler.join()
        assert scheduler.is_queued(task.id)

    async def test_calendar_repeat(self, scheduler, clock):
        scheduler.define("echo", echo)
        task = scheduler.schedule("*/15 * * * *", "echo")
        assert task.next_run_at == T0 + timedelta(minutes=15)

        clock.advance(15 * 60)
        scheduler._tick()

        assert task.next_run_at == T0 + timedelta(minutes=30)
        assert scheduler.is_queued(task.id)
        await scheduler.join()

    async def test_reschedule_failure_drops_task_from_queue(
        self, config, clock, timer, caplog
    ):
        class OneShotEvaluator:
            def validate(self, expression):
                return True

            def next(self, expression, after):
                raise RuntimeError("calendar backend unavailable")

        scheduler = Scheduler(
            config, clock=clock, timer=timer, evaluator=OneShotEvaluator()
        )
        scheduler.define("echo", echo)
        task = scheduler.create("echo").interval("@hourly").repeat().save()

        with caplog.at_level(logging.ERROR, logger="cadence.scheduling.scheduler"):
            scheduler._tick()
        await scheduler.join()

        assert not scheduler.is_queued(task.id)
        assert any(r.getMessage() == "task_reschedule_failed" for r in caplog.records)

    async def test_non_repeat_leaves_queue(self, scheduler):
        scheduler.define("echo", echo)
        task = scheduler.now("echo")

        scheduler._tick()
        await scheduler.join()

        assert not scheduler.is_queued(task.id)
        assert task.next_run_at == T0
        assert scheduler.get(task.id) is task

    async def test_overlapping_runs(self, scheduler, clock):
        """A repeating task can be dispatched again while still running."""
        gate = Gate()
        scheduler.define("gate", gate)
        task = scheduler.every(1, "gate")

        scheduler._tick()
        clock.advance(1)
        scheduler._tick()

        assert task.in_flight == 2
        assert scheduler.running == 2
        assert task.run_state == RunState.RUNNING

        gate.release.set()
        await scheduler.join()
        assert task.in_flight == 0
        assert task.run_state == RunState.IDLE


# =============================================================================
# Start / Stop
# =============================================================================


class TestLifecycle:
    async def test_start_arms_immediately(self, scheduler, timer):
        scheduler.start()
        scheduler.start()

        assert scheduler.is_started
        assert timer.arms == [0]

    async def test_process_rearms(self, scheduler, timer):
        scheduler.start()
        timer.fire()

        assert timer.arms == [0, 1.0]
        assert timer.armed

    async def test_save_while_started_wakes_loop(self, scheduler, timer):
        scheduler.define("echo", echo)
        scheduler.start()
        timer.fire()

        scheduler.now("echo")

        assert timer.arms == [0, 1.0, 0]
        timer.fire()
        assert scheduler.running == 1
        await scheduler.join()

    def test_save_before_start_does_not_arm(self, scheduler, timer):
        scheduler.define("echo", echo)
        scheduler.now("echo")
        assert timer.arms == []

    async def test_stop_keeps_in_flight(self, scheduler, timer):
        gate = Gate()
        scheduler.define("gate", gate)
        scheduler.start()
        task = scheduler.now("gate")
        timer.fire()
        assert scheduler.running == 1

        scheduler.stop()
        assert not scheduler.is_started
        assert not timer.armed

        gate.release.set()
        await scheduler.join()
        assert task.run_state == RunState.IDLE
        assert scheduler.running == 0

    async def test_process_after_stop_does_not_rearm(self, scheduler, timer):
        scheduler.start()
        scheduler.stop()
        scheduler._process()
        assert timer.arms == [0]

    async def test_process_error_rearms(self, scheduler, timer, caplog, monkeypatch):
        scheduler.start()

        def explode():
            raise RuntimeError("queue corrupted")

        monkeypatch.setattr(scheduler, "_tick", explode)
        with caplog.at_level(logging.ERROR, logger="cadence.scheduling.scheduler"):
            scheduler._process()

        assert timer.arms[-1] == 1.0
        assert any(r.getMessage() == "scheduler_process_error" for r in caplog.records)

    async def test_shutdown_waits(self, scheduler, timer):
        gate = Gate()
        scheduler.define("gate", gate)
        scheduler.start()
        task = scheduler.now("gate")
        timer.fire()

        asyncio.get_running_loop().call_later(0.01, gate.release.set)
        await scheduler.shutdown()

        assert not scheduler.is_started
        assert task.run_state == RunState.IDLE


# =============================================================================
# Task Table and Store
# =============================================================================


class TestTaskTable:
    def test_remove(self, scheduler):
        scheduler.define("echo", echo)
        task = scheduler.every(10, "echo")

        assert scheduler.remove(task.id) is True
        assert scheduler.remove(task.id) is False
        assert not scheduler.is_queued(task.id)
        assert scheduler.get(task.id) is None

    async def test_removed_repeat_not_rescheduled(self, scheduler):
        gate = Gate()
        scheduler.define("gate", gate)
        task = scheduler.every(1, "gate")
        scheduler._tick()

        scheduler.remove(task.id)
        gate.release.set()
        await scheduler.join()

        assert not scheduler.is_queued(task.id)
        assert scheduler._tick() == 1.0

    def test_stats(self, scheduler):
        scheduler.define("echo", echo)
        scheduler.every(10, "echo")
        assert scheduler.stats() == {
            "tasks": 1,
            "queued": 1,
            "running": 0,
            "max_concurrency": 3,
            "started": False,
        }

    async def test_store_sync(self, config, clock, timer):
        store = RecordingStore()
        scheduler = Scheduler(config, clock=clock, timer=timer, store=store)
        scheduler.define("echo", echo)
        task = scheduler.now("echo", {"n": 1})

        scheduler._tick()
        await scheduler.join()

        assert store.upserts == [
            (task.id, "idle"),
            (task.id, "running"),
            (task.id, "idle"),
        ]
        document = store.documents[task.id]
        assert document["payload"] == {"n": 1}
        assert document["options"]["interval"] == 0.0

        scheduler.remove(task.id)
        assert store.documents == {}

    async def test_failing_store_tolerated(self, config, clock, timer, caplog):
        scheduler = Scheduler(config, clock=clock, timer=timer, store=FailingStore())
        scheduler.define("echo", echo)

        with caplog.at_level(logging.WARNING, logger="cadence.scheduling.scheduler"):
            task = scheduler.now("echo")
            scheduler._tick()
            await scheduler.join()
            assert scheduler.remove(task.id) is True

        assert task.run_state == RunState.IDLE
        assert any(r.getMessage() == "task_sync_failed" for r in caplog.records)

    def test_store_from_config(self, tmp_path):
        scheduler = Scheduler(CadenceConfig(store_path=tmp_path / "tasks.jsonl"))
        assert isinstance(scheduler.store, JsonlTaskStore)
        assert scheduler.store.path == tmp_path / "tasks.jsonl"


# =============================================================================
# Real Event Loop
# =============================================================================


class TestRealLoop:
    async def test_runs_due_and_repeating_tasks(self):
        scheduler = Scheduler(
            CadenceConfig(poll_interval=0.05, poll_interval_cap=0.05)
        )
        seen: list[str] = []
        done = asyncio.Event()

        async def record(payload):
            seen.append(payload)
            if seen.count("tick") >= 3:
                done.set()

        scheduler.define("record", record)
        scheduler.start()
        scheduler.now("record", "once")
        scheduler.every(0.02, "record", "tick")

        await asyncio.wait_for(done.wait(), timeout=2)
        await scheduler.shutdown()

        assert seen.count("once") == 1
        assert seen.count("tick") >= 3
        assert scheduler.running == 0

    @pytest.mark.parametrize("max_concurrency", [1, 2])
    async def test_cap_holds_on_real_loop(self, max_concurrency):
        scheduler = Scheduler(
            CadenceConfig(
                max_concurrency=max_concurrency,
                poll_interval=0.01,
                poll_interval_cap=0.01,
            )
        )
        gate = Gate()
        scheduler.define("gate", gate)
        scheduler.start()
        for i in range(4):
            scheduler.now("gate", i)

        await asyncio.sleep(0.1)
        assert scheduler.running == max_concurrency

        gate.release.set()
        while gate.calls < 4 or scheduler.running:
            await asyncio.sleep(0.01)
        await scheduler.shutdown()

        assert gate.peak <= max_concurrency
