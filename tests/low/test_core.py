"""
Tests of the wire form and the status lifecycle
"""

import pytest
from pydantic import ValidationError

from fanout.errors import StatusTransitionError
from fanout.low.core import SerializedTask, TaskState, TaskStatus


def test_serialized_task_parts():
    st = SerializedTask.from_parts("t1", b"\x00\x01\xff", "entrypoint:math:sqrt")
    assert st.data == [0, 1, 255]
    assert st.encoded_payload() == b"\x00\x01\xff"
    assert st.model_dump() == {"id": "t1", "data": [0, 1, 255], "func": "entrypoint:math:sqrt"}

    with pytest.raises(ValidationError):
        SerializedTask(id="t1", data=[256], func="x")
    with pytest.raises(ValidationError):
        st.id = "t2"


def test_status_lifecycle():
    pending = TaskStatus(id="t1")
    assert pending.status == TaskState.pending
    assert pending.start_time is None

    running = pending.running()
    assert running.status == TaskState.running
    assert running.start_time is not None
    # every transition is a new snapshot
    assert pending.status == TaskState.pending

    completed = running.completed({"x": 1})
    assert completed.status == TaskState.completed
    assert completed.result == {"x": 1}
    assert completed.error is None
    assert completed.end_time >= completed.start_time

    error = ValueError("boom")
    failed = running.failed(error)
    assert failed.status == TaskState.failed
    assert failed.error is error
    assert failed.result is None


@pytest.mark.parametrize("state", [TaskState.completed, TaskState.failed])
def test_no_transition_after_terminal(state):
    running = TaskStatus(id="t1").running()
    terminal = running.completed(1) if state == TaskState.completed else running.failed(ValueError())
    assert terminal.status.is_terminal()
    with pytest.raises(StatusTransitionError):
        terminal.completed(2)
    with pytest.raises(StatusTransitionError):
        terminal.failed(ValueError())
    with pytest.raises(StatusTransitionError):
        terminal.running()


def test_no_skipping_running():
    with pytest.raises(StatusTransitionError):
        TaskStatus(id="t1").completed(1)
