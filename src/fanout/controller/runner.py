"""
Runs a batch of Tasks concurrently, each in its own worker, and reduces their outcomes.

Statuses are published as tasks settle, that is, in completion order. Results are returned in
submission order regardless. How failures affect the result is given by the AggregationPolicy
"""

import asyncio
import contextlib
import logging
from typing import Any, Callable, Optional

from fanout.controller.core import AggregationPolicy, RunnerConfig
from fanout.controller.notify import StatusBus, StatusCallback, log_status
from fanout.errors import AggregationError, NoHandleError, TaskKilledError
from fanout.low.core import TaskStatus
from fanout.low.func import Either, assert_never
from fanout.task import Task

logger = logging.getLogger(__name__)

Outcome = Either[Any, list[tuple[str, BaseException]]]


class Runner:
    def __init__(self, config: Optional[RunnerConfig] = None, bus: Optional[StatusBus] = None) -> None:
        self.config = config or RunnerConfig()
        self.bus = bus or StatusBus()
        self.tasks: list[Task] = []
        # latest status of each task of the last run_all, in submission order
        self.statuses: list[TaskStatus] = []
        # set by kill_all, checked by tasks still waiting for dispatch
        self.killed = False

    def add_task(self, task: Task) -> None:
        self.tasks.append(task)

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        return self.bus.subscribe(callback)

    def monitor_task_status(self) -> Callable[[], None]:
        """Logs every status transition"""
        return self.bus.subscribe(log_status)

    def _publish(self, idx: int, status: TaskStatus) -> None:
        self.statuses[idx] = status
        self.bus.publish(status)

    async def _run_one(self, idx: int, task: Task, semaphore: Optional[asyncio.Semaphore]) -> Outcome:
        async with semaphore if semaphore is not None else contextlib.nullcontext():
            self._publish(idx, self.statuses[idx].running())
            if self.killed:
                e = TaskKilledError(task.id, "killed before dispatch")
                self._publish(idx, self.statuses[idx].failed(e))
                return Either.error([(task.id, e)])
            try:
                result = await task.run(self.config.task_timeout_sec)
            except Exception as e:
                # NOTE recorded in the status, and under fail_fast also in the AggregationError
                logger.debug(f"task {task.id} failed with {e!r}")
                self._publish(idx, self.statuses[idx].failed(e))
                return Either.error([(task.id, e)])
            self._publish(idx, self.statuses[idx].completed(result))
            return Either.ok(result)

    def _aggregate(self, outcomes: list[Outcome]) -> list[Any]:
        policy = self.config.policy
        if policy == AggregationPolicy.collect_partial:
            failed = sum(1 for outcome in outcomes if outcome.e)
            if failed:
                logger.debug(f"{failed} out of {len(outcomes)} tasks failed, leaving them out")
            return [outcome.t for outcome in outcomes if not outcome.e]
        elif policy == AggregationPolicy.fail_fast:
            aggregate: Either[list[Any], list[tuple[str, BaseException]]] = Either.ok([outcome.t for outcome in outcomes])
            for outcome in outcomes:
                aggregate = aggregate.append(outcome.e)
            return aggregate.get_or_raise(AggregationError)
        else:
            assert_never(policy)

    async def run_all(self) -> list[Any]:
        tasks = list(self.tasks)
        self.killed = False
        # only the statuses of the latest run are kept on the bus
        self.bus.drain()
        self.statuses = [TaskStatus(id=task.id) for task in tasks]
        semaphore = asyncio.Semaphore(self.config.max_concurrency) if self.config.max_concurrency else None
        logger.debug(f"dispatching {len(tasks)} tasks with {self.config.policy=}")
        outcomes = await asyncio.gather(*(self._run_one(idx, task, semaphore) for idx, task in enumerate(tasks)))
        return self._aggregate(list(outcomes))

    def kill_all(self) -> None:
        self.killed = True
        for task in self.tasks:
            try:
                task.kill()
            except NoHandleError:
                logger.debug(f"task {task.id} has no worker, skipping")
