"""
Tests of the Runner -- ordering, aggregation policies, status stream and kill_all
"""

import asyncio
import time

import pytest

from fanout import AggregationPolicy, Runner, RunnerConfig, Task, TaskState
from fanout.errors import AggregationError, ExecutionError, TaskKilledError, TaskTimeoutError


def _failing():
    def fail(d):
        raise ValueError("intentional")

    return fail


def test_results_in_submission_order():
    runner = Runner()
    for name, delay in [("A", 0.6), ("B", 0.9), ("C", 0.1)]:
        runner.add_task(Task(name, {"name": name, "delay": delay}, lambda v: time.sleep(v["delay"]) or v["name"]))
    terminal: list[str] = []
    runner.subscribe(lambda s: terminal.append(s.id) if s.status.is_terminal() else None)

    assert asyncio.run(runner.run_all()) == ["A", "B", "C"]
    # statuses arrive as tasks complete
    assert terminal == ["C", "A", "B"]


def test_collect_partial():
    runner = Runner()
    runner.add_task(Task("t1", {"x": 1}, lambda d: d["x"]))
    runner.add_task(Task("t2", {"x": 2}, _failing()))
    failed = []
    runner.subscribe(lambda s: failed.append(s) if s.status == TaskState.failed else None)

    assert asyncio.run(runner.run_all()) == [1]
    assert len(failed) == 1
    assert failed[0].id == "t2"
    assert isinstance(failed[0].error, ExecutionError)
    assert "t2" in str(failed[0].error)


def test_fail_fast():
    runner = Runner(RunnerConfig(policy=AggregationPolicy.fail_fast))
    runner.add_task(Task("t1", {"x": 1}, lambda d: d["x"]))
    runner.add_task(Task("t2", {"x": 2}, _failing()))

    with pytest.raises(AggregationError) as e:
        asyncio.run(runner.run_all())
    assert len(e.value.failures) == 1
    assert e.value.failures[0][0] == "t2"
    assert isinstance(e.value.failures[0][1], ExecutionError)
    assert "t2" in str(e.value)


def test_fail_fast_all_succeed():
    runner = Runner(RunnerConfig(policy="fail_fast"))
    for i in range(3):
        runner.add_task(Task(f"t{i}", i, lambda x: x + 1))
    assert asyncio.run(runner.run_all()) == [1, 2, 3]


def test_partial_count():
    runner = Runner()
    for i in range(5):
        if i in (1, 3):
            runner.add_task(Task(f"t{i}", i, _failing()))
        else:
            runner.add_task(Task(f"t{i}", i, lambda x: x * 10))
    assert asyncio.run(runner.run_all()) == [0, 20, 40]
    assert [s.status for s in runner.statuses] == [
        TaskState.completed,
        TaskState.failed,
        TaskState.completed,
        TaskState.failed,
        TaskState.completed,
    ]


def test_status_stream():
    runner = Runner()
    runner.add_task(Task("t1", 1, lambda x: x))
    runner.add_task(Task("t2", 2, _failing()))
    seen: dict[str, list] = {}
    runner.subscribe(lambda s: seen.setdefault(s.id, []).append(s))

    asyncio.run(runner.run_all())
    assert set(seen.keys()) == {"t1", "t2"}
    for statuses in seen.values():
        assert len(statuses) == 2
        running, terminal = statuses
        assert running.status == TaskState.running
        assert running.start_time is not None
        assert terminal.status.is_terminal()
        assert terminal.end_time >= terminal.start_time
    assert seen["t1"][1].result == 1
    assert seen["t2"][1].error is not None


def test_empty_run():
    runner = Runner()
    assert asyncio.run(runner.run_all()) == []
    assert runner.statuses == []


def test_unsubscribe():
    runner = Runner()
    runner.add_task(Task("t1", 1, lambda x: x))
    seen = []
    unsubscribe = runner.subscribe(seen.append)
    unsubscribe()
    asyncio.run(runner.run_all())
    assert seen == []
    # still recorded on the bus
    assert len(runner.bus.drain()) == 2


def test_kill_all():
    runner = Runner()
    runner.add_task(Task("t1", 1, lambda x: x))
    runner.add_task(Task("t2", 2, lambda x: x))
    # never run, nothing to kill
    runner.kill_all()

    asyncio.run(runner.run_all())
    handles = [task.handle for task in runner.tasks]
    runner.kill_all()
    assert all(task.handle is None for task in runner.tasks)
    assert all(handle.terminated for handle in handles)
    runner.kill_all()


def test_kill_all_during_run():
    runner = Runner()
    runner.add_task(Task("t1", 10, lambda x: time.sleep(x)))
    runner.add_task(Task("t2", 1, lambda x: x))

    async def run_and_kill():
        running = asyncio.ensure_future(runner.run_all())
        await asyncio.sleep(1.0)
        runner.kill_all()
        return await running

    assert asyncio.run(run_and_kill()) == [1]
    assert runner.statuses[0].status == TaskState.failed


def test_max_concurrency():
    runner = Runner(RunnerConfig(max_concurrency=1))
    for i in range(3):
        runner.add_task(Task(f"t{i}", i, lambda x: x))
    active = 0
    peak = 0

    def track(status):
        nonlocal active, peak
        if status.status == TaskState.running:
            active += 1
            peak = max(peak, active)
        elif status.status.is_terminal():
            active -= 1

    runner.subscribe(track)
    assert asyncio.run(runner.run_all()) == [0, 1, 2]
    assert peak == 1


def test_task_timeout():
    runner = Runner(RunnerConfig(task_timeout_sec=0.5))
    runner.add_task(Task("t1", 10, lambda x: time.sleep(x)))
    assert asyncio.run(runner.run_all()) == []
    assert runner.statuses[0].status == TaskState.failed
    assert isinstance(runner.statuses[0].error, TaskTimeoutError)


def test_monitor_task_status(caplog):
    runner = Runner()
    runner.add_task(Task("t1", 1, lambda x: x))
    runner.monitor_task_status()
    with caplog.at_level("INFO", logger="fanout"):
        asyncio.run(runner.run_all())
    assert "Task t1 is running" in caplog.text
    assert "Task t1 has completed" in caplog.text


def test_bus_keeps_only_latest_run():
    runner = Runner()
    runner.add_task(Task("t1", 1, lambda x: "r" * 100_000))
    for _ in range(3):
        assert len(asyncio.run(runner.run_all())[0]) == 100_000
        runner.kill_all()
    statuses = runner.bus.drain()
    assert [s.status for s in statuses] == [TaskState.running, TaskState.completed]


def test_kill_all_reaches_queued_tasks():
    runner = Runner(RunnerConfig(max_concurrency=1))
    runner.add_task(Task("t1", 10, lambda x: time.sleep(x)))
    runner.add_task(Task("t2", 1, lambda x: x))

    async def run_and_kill():
        running = asyncio.ensure_future(runner.run_all())
        await asyncio.sleep(1.0)
        runner.kill_all()
        return await running

    assert asyncio.run(run_and_kill()) == []
    assert [s.status for s in runner.statuses] == [TaskState.failed, TaskState.failed]
    assert isinstance(runner.statuses[1].error, TaskKilledError)
    assert runner.tasks[1].handle is None

    # a later run is not affected by the earlier kill
    runner.tasks[0].update_payload(0)
    assert asyncio.run(runner.run_all()) == [None, 1]
