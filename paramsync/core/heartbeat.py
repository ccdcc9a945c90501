"""
Heartbeat - cancellable periodic tasks driving incremental sync and snapshots.
"""

import threading
import time
from typing import Callable, Dict, Optional

from util.logging import logger

from .config import get_heartbeat_poll_interval


class Heartbeat:
    """
    Cooperative scheduler for named periodic tasks.

    Tasks first run one interval after registration. ``run_pending`` runs each
    due task at most once and coalesces missed ticks, so tests can drive it
    with a fake clock instead of the background thread.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, poll_interval_sec: Optional[float] = None):
        self.tasks: Dict[str, Dict] = {}  # task_name -> {func, interval, last_run, next_run, runs, failures}
        self.running = False
        self.poll_interval_sec = poll_interval_sec or get_heartbeat_poll_interval()
        self._clock = clock
        self._lock = threading.RLock()
        self._shutdown_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def register_task(self, name: str, interval_sec: float, func: Callable):
        """
        Register a task to be executed periodically.

        Args:
            name: Unique task identifier (re-registering replaces the task)
            interval_sec: How often to run this task in seconds
            func: Function to call (should not block for long)
        """
        if not callable(func):
            raise ValueError(f"Task function must be callable: {func}")

        if interval_sec <= 0:
            raise ValueError(f"Interval must be > 0 seconds: {interval_sec}")

        with self._lock:
            self.tasks[name] = {
                "func": func,
                "interval": interval_sec,
                "last_run": None,
                "next_run": self._clock() + interval_sec,
                "runs": 0,
                "failures": 0
            }

        logger.info(f"Registered heartbeat task '{name}' (every {interval_sec}s)")

    def unregister_task(self, name: str):
        """Remove a task from the registry."""
        with self._lock:
            removed = self.tasks.pop(name, None)
        if removed is not None:
            logger.info(f"Unregistered heartbeat task '{name}'")

    def list_tasks(self):
        """Return list of registered task names."""
        with self._lock:
            return list(self.tasks.keys())

    def should_run_task(self, name: str, task_info: Dict, now: Optional[float] = None) -> bool:
        """Check if a task is due."""
        if now is None:
            now = self._clock()
        return now >= task_info["next_run"]

    def run_task(self, name: str, task_info: Dict):
        """Execute a task and record timing. Raises RuntimeError if the task fails."""
        start_time = self._clock()

        try:
            task_info["func"]()
        except Exception as e:
            end_time = self._clock()
            task_info["failures"] += 1
            logger.log_heartbeat_task(name, start_time, end_time, status="failed", details={"error": str(e)[:100]})
            raise RuntimeError(f"Task '{name}' failed after {end_time - start_time:.2f}s: {e}") from e
        finally:
            task_info["runs"] += 1
            task_info["last_run"] = start_time

        logger.log_heartbeat_task(name, start_time, self._clock())

    def _advance(self, task_info: Dict, now: float):
        next_run = task_info["next_run"] + task_info["interval"]
        while next_run <= now:
            next_run += task_info["interval"]
        task_info["next_run"] = next_run

    def run_pending(self, now: Optional[float] = None) -> int:
        """
        Run every due task once.

        Failures are isolated: logged, counted, and the task stays scheduled.
        Returns the number of tasks run.
        """
        if now is None:
            now = self._clock()

        with self._lock:
            due = [
                (name, info) for name, info in self.tasks.items()
                if self.should_run_task(name, info, now)
            ]
            for _, info in due:
                self._advance(info, now)

        for name, info in due:
            try:
                self.run_task(name, info)
            except RuntimeError as e:
                # Error isolation - log error but keep the schedule
                logger.error(f"Heartbeat task '{name}' failed: {e}")

        return len(due)

    def reset_task(self, name: str):
        """Make a task due immediately."""
        with self._lock:
            if name in self.tasks:
                self.tasks[name]["next_run"] = self._clock()
                logger.info(f"Reset heartbeat task '{name}' (will run immediately)")

    def start(self):
        """Start the heartbeat loop on a daemon thread."""
        with self._lock:
            if self.running:
                raise RuntimeError("Heartbeat already running")
            self.running = True
            # Fresh event per loop; a previous loop that outlived stop() keeps its own
            self._shutdown_event = threading.Event()
            self._thread = threading.Thread(
                target=self._loop, args=(self._shutdown_event,), name="paramsync-heartbeat", daemon=True
            )
            self._thread.start()

        logger.info(f"Starting heartbeat loop with tasks: {self.list_tasks()}")

    def _loop(self, shutdown_event: threading.Event):
        try:
            while not shutdown_event.is_set():
                self.run_pending()
                shutdown_event.wait(self.poll_interval_sec)
        finally:
            with self._lock:
                if self._thread is threading.current_thread():
                    self.running = False

    def stop(self, timeout: float = 1.0):
        """Stop the heartbeat loop. Safe to call when it never started."""
        thread = self._thread
        if not self.running and thread is None:
            return

        self._shutdown_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        self.running = False
        logger.info("Heartbeat stopped")

    def get_status(self):
        """Return current heartbeat status for monitoring."""
        with self._lock:
            return {
                "status": "running" if self.running else "stopped",
                "tasks": {
                    name: {
                        "interval_sec": info["interval"],
                        "last_run": info["last_run"],
                        "next_run": info["next_run"],
                        "runs": info["runs"],
                        "failures": info["failures"]
                    }
                    for name, info in self.tasks.items()
                }
            }
