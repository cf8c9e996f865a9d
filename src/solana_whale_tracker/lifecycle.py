"""Registry and lifecycle control for background loops.

Every recurring loop in the tracker is registered here under a stable id.
Activation is idempotent: asking to start a loop that is already running
acknowledges "active" instead of starting a duplicate. Shutdown is
cooperative: each loop sees the stop flag at the top of its next iteration,
an in-flight tick always completes, and only loops still running after the
shutdown timeout are cancelled.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_SHUTDOWN_TIMEOUT_SECONDS = 10.0

TickFn = Callable[[], Awaitable[object]]


class ShutdownInProgressError(RuntimeError):
    """Raised when registering a process after shutdown began."""


class ProcessState(str, Enum):
    """Managed process states."""

    REGISTERED = "registered"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class ActivationStatus(str, Enum):
    """Acknowledgment returned by an activation request."""

    ACTIVE = "active"
    INITIALIZING = "initializing"


@dataclass(frozen=True)
class ManagedProcess:
    """Read-only snapshot of a registered process."""

    process_id: str
    process_type: str
    description: str
    state: ProcessState
    registered_at: datetime
    run_count: int = 0
    error_count: int = 0
    last_run_at: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.process_id,
            "type": self.process_type,
            "description": self.description,
            "state": self.state.value,
            "registered_at": self.registered_at.isoformat(),
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
        }


class PeriodicTask:
    """A serialized recurring loop.

    The first tick runs immediately. Before every tick the stop event is
    checked; between ticks the loop sleeps on the stop event so that a stop
    request wakes it without waiting out the interval. Exceptions raised by a
    tick are logged and counted, never propagated.
    """

    def __init__(
        self,
        name: str,
        tick: TickFn,
        *,
        interval_seconds: float,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.name = name
        self._tick = tick
        self._interval = interval_seconds
        self._stop_event = stop_event or asyncio.Event()
        self.run_count = 0
        self.error_count = 0
        self.last_run_at: datetime | None = None
        self.last_error: str | None = None

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def request_stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        while not self._stop_event.is_set():
            self.last_run_at = datetime.now(UTC)
            try:
                await self._tick()
                self.run_count += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.error_count += 1
                self.last_error = str(e)
                logger.exception("Periodic task %s tick failed", self.name)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                break
            except TimeoutError:
                pass


@dataclass
class _ProcessRecord:
    process_id: str
    process_type: str
    description: str
    state: ProcessState
    registered_at: datetime
    task: asyncio.Task[Any] | None = None
    periodic: PeriodicTask | None = None

    def snapshot(self) -> ManagedProcess:
        periodic = self.periodic
        return ManagedProcess(
            process_id=self.process_id,
            process_type=self.process_type,
            description=self.description,
            state=self.state,
            registered_at=self.registered_at,
            run_count=periodic.run_count if periodic else 0,
            error_count=periodic.error_count if periodic else 0,
            last_run_at=periodic.last_run_at if periodic else None,
            last_error=periodic.last_error if periodic else None,
        )


class ProcessLifecycleManager:
    """Owns every background loop and its activation state.

    Example:
        ```python
        manager = ProcessLifecycleManager()
        status = await manager.start_periodic(
            "whale-feed", "ingestion", "Whale signature polling",
            ingestor.tick, interval_seconds=10,
        )
        ...
        await manager.shutdown(timeout=10)
        ```
    """

    def __init__(self) -> None:
        self._processes: dict[str, _ProcessRecord] = {}
        self._lock = asyncio.Lock()
        self._shutdown_event = asyncio.Event()

    @property
    def shutdown_event(self) -> asyncio.Event:
        return self._shutdown_event

    @property
    def is_shutting_down(self) -> bool:
        return self._shutdown_event.is_set()

    def _is_active(self, process_id: str) -> bool:
        record = self._processes.get(process_id)
        return record is not None and record.state in (
            ProcessState.REGISTERED,
            ProcessState.RUNNING,
        )

    def _on_task_done(self, process_id: str, task: asyncio.Task[Any]) -> None:
        record = self._processes.get(process_id)
        if record is None or record.task is not task:
            return
        record.state = ProcessState.STOPPED
        if not task.cancelled() and task.exception() is not None:
            logger.error("Process %s exited with error: %s", process_id, task.exception())

    def _add(
        self,
        process_id: str,
        process_type: str,
        description: str,
        *,
        task: asyncio.Task[Any] | None,
        periodic: PeriodicTask | None = None,
    ) -> None:
        record = _ProcessRecord(
            process_id=process_id,
            process_type=process_type,
            description=description,
            state=ProcessState.REGISTERED,
            registered_at=datetime.now(UTC),
            task=task,
            periodic=periodic,
        )
        self._processes[process_id] = record
        if task is not None:
            task.add_done_callback(lambda t: self._on_task_done(process_id, t))
        record.state = ProcessState.RUNNING
        logger.info("Registered process %s (%s): %s", process_id, process_type, description)

    async def register_interval(
        self,
        process_id: str,
        process_type: str,
        description: str,
        handle: asyncio.Task[Any] | None = None,
    ) -> ActivationStatus:
        """Register an externally started loop.

        Returns:
            ACTIVE if the id is already running (the handle is not adopted),
            INITIALIZING if the process was registered.

        Raises:
            ShutdownInProgressError: If shutdown has begun.
        """
        async with self._lock:
            if self.is_shutting_down:
                raise ShutdownInProgressError(f"Cannot register {process_id}: shutting down")
            if self._is_active(process_id):
                logger.debug("Process %s already active", process_id)
                return ActivationStatus.ACTIVE
            self._add(process_id, process_type, description, task=handle)
            return ActivationStatus.INITIALIZING

    async def start_periodic(
        self,
        process_id: str,
        process_type: str,
        description: str,
        tick: TickFn,
        *,
        interval_seconds: float,
    ) -> ActivationStatus:
        """Start a recurring loop unless one with this id is already active."""
        async with self._lock:
            if self.is_shutting_down:
                raise ShutdownInProgressError(f"Cannot start {process_id}: shutting down")
            if self._is_active(process_id):
                logger.debug("Process %s already active", process_id)
                return ActivationStatus.ACTIVE
            periodic = PeriodicTask(process_id, tick, interval_seconds=interval_seconds)
            task = asyncio.create_task(periodic.run(), name=process_id)
            self._add(process_id, process_type, description, task=task, periodic=periodic)
            return ActivationStatus.INITIALIZING

    def is_active(self, process_id: str) -> bool:
        return self._is_active(process_id)

    async def unregister(self, process_id: str, *, timeout: float | None = None) -> bool:
        """Stop and forget a single process. Returns False if unknown."""
        async with self._lock:
            record = self._processes.pop(process_id, None)
        if record is None:
            return False
        record.state = ProcessState.STOPPING
        await self._stop_records([record], timeout or DEFAULT_SHUTDOWN_TIMEOUT_SECONDS)
        logger.info("Unregistered process %s", process_id)
        return True

    def get_process(self, process_id: str) -> ManagedProcess | None:
        record = self._processes.get(process_id)
        return record.snapshot() if record else None

    def get_all_processes(self) -> list[ManagedProcess]:
        return [record.snapshot() for record in self._processes.values()]

    def get_process_count(self) -> int:
        return len(self._processes)

    def get_status(self) -> dict[str, Any]:
        """Status summary for health endpoints."""
        processes = self.get_all_processes()
        return {
            "status": "shutting_down" if self.is_shutting_down else "running",
            "total": len(processes),
            "types": dict(Counter(p.process_type for p in processes)),
            "processes": [p.to_dict() for p in processes],
        }

    async def _stop_records(self, records: list[_ProcessRecord], timeout: float) -> None:
        for record in records:
            if record.periodic is not None:
                record.periodic.request_stop()

        tasks = [r.task for r in records if r.task is not None and not r.task.done()]
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
            for task in pending:
                logger.warning(
                    "Process %s did not stop within %.1fs, cancelling",
                    task.get_name(),
                    timeout,
                )
                task.cancel()
            for task in pending:
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        for record in records:
            record.state = ProcessState.STOPPED

    async def shutdown(self, timeout: float = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS) -> None:
        """Stop every process, cancelling those still running after timeout."""
        async with self._lock:
            if self.is_shutting_down:
                return
            self._shutdown_event.set()
            records = list(self._processes.values())
            for record in records:
                if record.state in (ProcessState.REGISTERED, ProcessState.RUNNING):
                    record.state = ProcessState.STOPPING

        logger.info("Shutting down %d processes", len(records))
        await self._stop_records(records, timeout)
        logger.info("All processes stopped")
