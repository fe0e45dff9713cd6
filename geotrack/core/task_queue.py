"""
Task Queue System

Thread-backed task execution for the worker:

- a single-threaded queue that serializes event handling (fixes, wake
  cycles, mode and configuration changes), so worker state is only ever
  mutated from one thread
- a small bounded pool for network sends, so a slow upload never blocks
  fix ingestion or the next wake cycle
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Callable, List, Deque
from datetime import datetime, timezone
from enum import Enum
import threading
import queue
import uuid
from loguru import logger


class TaskStatus(Enum):
    """Task execution status"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TaskType(Enum):
    """Types of worker tasks"""
    FIX = "fix"
    WAKE = "wake"
    MODE = "mode"
    CONFIG = "config"
    MANUAL = "manual"
    UPLOAD = "upload"
    LIFECYCLE = "lifecycle"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TaskInfo:
    """Information about a submitted task"""
    task_id: str
    task_type: TaskType
    status: TaskStatus
    error: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'task_id': self.task_id,
            'task_type': self.task_type.value,
            'status': self.status.value,
            'error': self.error,
            'created_at': self.created_at.isoformat(),
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }


class TaskWorker(threading.Thread):
    """Worker thread for executing tasks"""

    def __init__(self, manager: 'TaskManager', name: str):
        super().__init__(daemon=True, name=name)
        self.manager = manager
        self._stop_event = threading.Event()

    def run(self):
        """Main worker loop"""
        while not self._stop_event.is_set():
            try:
                task = self.manager.task_queue.get(timeout=0.5)
            except queue.Empty:
                continue

            try:
                if task is not None:
                    self.manager._execute(*task)
            except Exception as e:
                logger.error(f"Worker error: {e}")
            finally:
                self.manager.task_queue.task_done()

    def stop(self):
        """Stop the worker"""
        self._stop_event.set()


class TaskManager:
    """
    Runs submitted callables on a fixed set of worker threads.

    With num_workers=1 tasks run strictly in submission order.
    """

    def __init__(self, num_workers: int = 1, name: str = "tasks", history: int = 100):
        """
        Initialize task manager.

        Args:
            num_workers: Number of worker threads
            name: Thread name prefix (shows up in logs)
            history: Number of finished tasks kept for inspection
        """
        self.name = name
        self.num_workers = num_workers
        self.task_queue: queue.Queue = queue.Queue()
        self.task_registry: Dict[str, TaskInfo] = {}
        self.finished: Deque[TaskInfo] = deque(maxlen=history)
        self.workers: List[TaskWorker] = []
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._accepting = True

        for i in range(num_workers):
            worker = TaskWorker(self, name=f"{name}-{i}")
            worker.start()
            self.workers.append(worker)

        logger.debug(f"Task manager '{name}' initialized with {num_workers} workers")

    def submit(self, task_type: TaskType, func: Callable, *args, **kwargs) -> Optional[str]:
        """
        Submit a task for background execution.

        Args:
            task_type: Type of task
            func: Function to execute
            *args: Positional arguments for function
            **kwargs: Keyword arguments for function

        Returns:
            Task ID, or None if the manager has been shut down
        """
        task_id = str(uuid.uuid4())
        task_info = TaskInfo(task_id=task_id, task_type=task_type, status=TaskStatus.PENDING)

        with self._lock:
            if not self._accepting:
                logger.debug(f"Task manager '{self.name}' is shut down, dropping {task_type.value} task")
                return None
            self.task_registry[task_id] = task_info

        self.task_queue.put((task_id, func, args, kwargs))
        return task_id

    def _execute(self, task_id: str, func: Callable, args: tuple, kwargs: dict) -> None:
        with self._lock:
            task_info = self.task_registry.get(task_id)
        if task_info is None or task_info.status == TaskStatus.CANCELLED:
            return

        task_info.status = TaskStatus.RUNNING
        task_info.started_at = _utcnow()

        try:
            func(*args, **kwargs)
            task_info.status = TaskStatus.COMPLETED
        except Exception as e:
            logger.error(f"Task {task_id} ({task_info.task_type.value}) failed: {e}")
            task_info.error = str(e)
            task_info.status = TaskStatus.FAILED
        finally:
            task_info.completed_at = _utcnow()
            with self._lock:
                self.task_registry.pop(task_id, None)
                self.finished.append(task_info)
                self._idle.notify_all()

    def get_status(self, task_id: str) -> Optional[TaskInfo]:
        """Get task status by ID"""
        with self._lock:
            task_info = self.task_registry.get(task_id)
            if task_info is not None:
                return task_info
            for finished in self.finished:
                if finished.task_id == task_id:
                    return finished
        return None

    @property
    def pending_count(self) -> int:
        """Number of tasks queued or running"""
        with self._lock:
            return len(self.task_registry)

    def cancel(self, task_id: str) -> bool:
        """
        Cancel a pending task.

        Note: Cannot cancel running tasks.

        Returns:
            True if task was cancelled
        """
        with self._lock:
            task_info = self.task_registry.get(task_id)
            if task_info is None or task_info.status != TaskStatus.PENDING:
                return False
            task_info.status = TaskStatus.CANCELLED
            task_info.completed_at = _utcnow()
            self.task_registry.pop(task_id, None)
            self.finished.append(task_info)
            self._idle.notify_all()

        logger.debug(f"Task cancelled: {task_id}")
        return True

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no tasks are queued or running.

        Returns:
            True if idle, False on timeout
        """
        with self._idle:
            return self._idle.wait_for(lambda: not self.task_registry, timeout=timeout)

    def shutdown(self, wait: bool = True, timeout: float = 5.0) -> None:
        """
        Stop accepting tasks and stop the worker threads.

        Args:
            wait: Wait (up to timeout) for queued tasks to finish first
            timeout: Maximum time to wait
        """
        with self._lock:
            self._accepting = False

        if wait:
            self.wait_idle(timeout=timeout)

        for worker in self.workers:
            worker.stop()
        for worker in self.workers:
            if worker is not threading.current_thread():
                worker.join(timeout=2.0)

        logger.debug(f"Task manager '{self.name}' shutdown complete")
