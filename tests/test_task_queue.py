"""Tests for the thread-backed task manager"""

import threading

import pytest

from geotrack.core import TaskManager, TaskStatus, TaskType


@pytest.fixture
def manager():
    manager = TaskManager(num_workers=1, name="test")
    yield manager
    manager.shutdown(wait=False)


def test_single_worker_runs_in_submission_order(manager):
    order = []
    for i in range(20):
        manager.submit(TaskType.FIX, order.append, i)
    assert manager.wait_idle(timeout=5)
    assert order == list(range(20))


def test_failed_task_is_recorded(manager):
    def broken():
        raise ValueError("bad fix")

    task_id = manager.submit(TaskType.FIX, broken)
    manager.wait_idle(timeout=5)

    info = manager.get_status(task_id)
    assert info.status == TaskStatus.FAILED
    assert info.error == "bad fix"


def test_failed_task_does_not_stop_worker(manager):
    results = []
    manager.submit(TaskType.FIX, lambda: 1 / 0)
    manager.submit(TaskType.FIX, results.append, "after")
    manager.wait_idle(timeout=5)
    assert results == ["after"]


def test_cancel_pending_task(manager):
    gate = threading.Event()
    ran = []
    manager.submit(TaskType.WAKE, gate.wait, 5)
    task_id = manager.submit(TaskType.FIX, ran.append, "x")

    assert manager.cancel(task_id) is True
    gate.set()
    manager.wait_idle(timeout=5)

    assert ran == []
    assert manager.get_status(task_id).status == TaskStatus.CANCELLED


def test_submit_after_shutdown_returns_none():
    manager = TaskManager(num_workers=1, name="closed")
    manager.shutdown()
    assert manager.submit(TaskType.UPLOAD, print) is None


def test_pool_runs_tasks_concurrently():
    manager = TaskManager(num_workers=2, name="pool")
    both_running = threading.Barrier(2, timeout=5)
    try:
        manager.submit(TaskType.UPLOAD, both_running.wait)
        manager.submit(TaskType.UPLOAD, both_running.wait)
        assert manager.wait_idle(timeout=5)
        assert all(info.status == TaskStatus.COMPLETED for info in manager.finished)
    finally:
        manager.shutdown()
