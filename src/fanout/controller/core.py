"""
Core data structures: aggregation policy and runner configuration
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AggregationPolicy(str, Enum):
    collect_partial = "collect_partial" # failed tasks are left out of the results, run_all does not raise
    fail_fast = "fail_fast" # any failure makes run_all raise AggregationError once all tasks settled


class RunnerConfig(BaseModel):
    policy: AggregationPolicy = Field(
        AggregationPolicy.collect_partial,
        description="how successes and failures of a batch are reduced to the result of run_all",
    )
    max_concurrency: Optional[int] = Field(
        None,
        gt=0,
        description="cap on concurrently live workers. None means one worker per task, all at once",
    )
    task_timeout_sec: Optional[float] = Field(
        None,
        gt=0,
        description="per task deadline, measured from dispatch. None means no deadline",
    )
