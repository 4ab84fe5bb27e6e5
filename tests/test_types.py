import time
from datetime import timezone

import pytest

from aethrolink.types import (
    LaunchSpec,
    SessionBinding,
    TaskEnvelope,
    TaskStatus,
    new_id,
    now_utc,
)


@pytest.mark.parametrize(
    "status,terminal",
    [
        (TaskStatus.RUNNING, False),
        (TaskStatus.AWAITING_INPUT, False),
        (TaskStatus.COMPLETED, True),
        (TaskStatus.FAILED, True),
        (TaskStatus.CANCELLED, True),
    ],
)
def test_is_terminal(status, terminal):
    assert status.is_terminal() is terminal


def test_status_from_wire_value():
    assert TaskStatus("awaiting_input") is TaskStatus.AWAITING_INPUT


def test_new_id_shape_and_uniqueness():
    ids = {new_id() for _ in range(200)}
    assert len(ids) == 200
    alphabet = set("0123456789ABCDEFGHJKMNPQRSTVWXYZ")
    for value in ids:
        assert len(value) == 26
        assert set(value) <= alphabet


def test_new_id_is_time_ordered_across_milliseconds():
    first = new_id()
    time.sleep(0.005)
    second = new_id()
    assert first[:10] <= second[:10]
    assert first < second


def test_now_utc_is_timezone_aware():
    assert now_utc().tzinfo == timezone.utc


def test_defaults_are_independent():
    a, b = LaunchSpec(), LaunchSpec()
    a.command.append("x")
    assert b.command == []
    t1, t2 = TaskEnvelope(), TaskEnvelope()
    t1.payload["k"] = 1
    assert t2.payload == {}


def test_session_binding_zero_times_are_before_now():
    binding = SessionBinding()
    assert binding.last_activity_at < now_utc()