"""Two-stage job pipeline around the synthesis and spectral entry points.

Stage 1 (synthesis) and stage 2 (spectrum) each run on their own worker
thread, one job at a time. Workers never touch orchestrator state: they
post :class:`JobMessage` objects into an inbox that the control thread
drains with :meth:`JobOrchestrator.pump`.

Correlation rules:

* every :meth:`JobOrchestrator.request` makes a fresh request id; messages
  for any other id are stale and dropped,
* a spectrum is merged only if its ``request_id:generated_at`` key matches
  the current result, and a key is dispatched at most once,
* the first failure of a worker thread permanently switches both stages
  to in-process execution and retries the failed stage once inline.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

from mcp_server_vibsim.errors import ConfigurationError, ExecutionContextError, SimulatorError
from mcp_server_vibsim.models import (
    SimulationResult,
    SpectralPayload,
    SpectrumResult,
    SynthesisPayload,
)
from mcp_server_vibsim.simulator import (
    run_spectral_analysis,
    run_synthesis,
    spectral_payload_for,
)

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    IDLE = "idle"
    SYNTHESIZING = "synthesizing"
    SYNTHESIS_READY = "synthesis_ready"
    SPECTRUM_RUNNING = "spectrum_running"
    COMPLETE = "complete"
    ERROR = "error"


class Stage(str, Enum):
    SYNTHESIS = "synthesis"
    SPECTRUM = "spectrum"


class MessageType(str, Enum):
    SYNTHESIS_RESULT = "synthesis_result"
    SPECTRUM_RESULT = "spectrum_result"
    ERROR = "error"


@dataclass(frozen=True)
class Job:
    stage: Stage
    request_id: str
    payload: SynthesisPayload | SpectralPayload
    key: str | None = None


@dataclass(frozen=True)
class JobMessage:
    type: MessageType
    job: Job
    payload: Any = None
    error: BaseException | None = None
    offloaded: bool = False

    @classmethod
    def failure(cls, job: Job, exc: BaseException, offloaded: bool) -> JobMessage:
        """Error message for ``job``; worker-thread faults are wrapped."""
        if offloaded and not isinstance(exc, SimulatorError):
            wrapped = ExecutionContextError(job.stage.value, job.request_id, str(exc))
            wrapped.__cause__ = exc
            exc = wrapped
        return cls(MessageType.ERROR, job, error=exc, offloaded=offloaded)


Deliver = Callable[[JobMessage], None]


def execute_job(job: Job, offloaded: bool = False) -> JobMessage:
    """Run one stage synchronously and wrap its output in a message."""
    if job.stage is Stage.SYNTHESIS:
        result = run_synthesis(job.request_id, job.payload)
        return JobMessage(MessageType.SYNTHESIS_RESULT, job, result, offloaded=offloaded)
    spectrum = run_spectral_analysis(job.payload)
    return JobMessage(MessageType.SPECTRUM_RESULT, job, spectrum, offloaded=offloaded)


class JobRunner(Protocol):
    offloaded: bool

    def submit(self, job: Job) -> None: ...

    def close(self) -> None: ...


class InlineRunner:
    """Runs jobs on the calling thread; the synchronous fallback."""

    offloaded = False

    def __init__(self, deliver: Deliver) -> None:
        self._deliver = deliver

    def submit(self, job: Job) -> None:
        try:
            message = execute_job(job)
        except Exception as exc:
            logger.warning("Inline %s job %s failed: %s", job.stage.value, job.request_id, exc)
            message = JobMessage.failure(job, exc, offloaded=False)
        self._deliver(message)

    def close(self) -> None:
        pass


_STOP = object()


class OffloadedRunner:
    """One daemon worker thread fed by a job queue."""

    offloaded = True

    def __init__(self, name: str, deliver: Deliver) -> None:
        self.name = name
        self._deliver = deliver
        self._jobs: queue.Queue = queue.Queue()
        self._closed = False
        self._thread = threading.Thread(
            target=self._worker_loop,
            name=f"vibsim-{name}",
            daemon=True,
        )
        self._thread.start()

    def submit(self, job: Job) -> None:
        if self._closed or not self._thread.is_alive():
            raise ExecutionContextError(
                job.stage.value, job.request_id, f"{self.name} worker is not running"
            )
        self._jobs.put(job)

    def _worker_loop(self) -> None:
        while True:
            job = self._jobs.get()
            try:
                if job is _STOP:
                    return
                self._deliver(execute_job(job, offloaded=True))
            except ConfigurationError as exc:
                self._deliver(JobMessage.failure(job, exc, offloaded=True))
            except Exception as exc:
                logger.exception("%s worker failed on %s", self.name, job.request_id)
                self._deliver(JobMessage.failure(job, exc, offloaded=True))
            finally:
                self._jobs.task_done()

    def close(self, timeout: float = 2.0) -> None:
        if self._closed:
            return
        self._closed = True
        self._jobs.put(_STOP)
        self._thread.join(timeout=timeout)


RunnerFactory = Callable[[Stage, Deliver], JobRunner]


def _offloaded_factory(stage: Stage, deliver: Deliver) -> JobRunner:
    return OffloadedRunner(stage.value, deliver)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:8]}"


_TERMINAL = (JobState.COMPLETE, JobState.ERROR)


class JobOrchestrator:
    """Drives the two-stage pipeline from a single control thread.

    Args:
        offload: Run stages on worker threads. When False (or when the
            workers cannot be started) every stage runs inline.
        on_result: Called on the control thread with the partial result
            after synthesis, then with the same object once its spectrum
            is attached.
        runner_factory: Builds the offloaded runner for a stage.
    """

    def __init__(
        self,
        offload: bool = True,
        on_result: Callable[[SimulationResult], None] | None = None,
        runner_factory: RunnerFactory | None = None,
    ) -> None:
        self._inbox: queue.Queue[JobMessage] = queue.Queue()
        self._inline = InlineRunner(self._inbox.put)
        self._runners: dict[Stage, JobRunner] = {}
        self._offload_disabled = not offload
        self.on_result = on_result

        self._state = JobState.IDLE
        self._request_id: str | None = None
        self._payload: SynthesisPayload | None = None
        self._result: SimulationResult | None = None
        self._error: BaseException | None = None
        self._dispatched: set[str] = set()

        if offload:
            factory = runner_factory or _offloaded_factory
            try:
                for stage in Stage:
                    self._runners[stage] = factory(stage, self._inbox.put)
            except Exception as exc:
                self._trip_fallback(exc)

    # -- read-only view ----------------------------------------------------

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def request_id(self) -> str | None:
        return self._request_id

    @property
    def result(self) -> SimulationResult | None:
        return self._result

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def offload_disabled(self) -> bool:
        return self._offload_disabled

    # -- control -----------------------------------------------------------

    def request(self, payload: SynthesisPayload | Mapping[str, Any]) -> str:
        """Start a new run for ``payload``, superseding any run in flight.

        Raises:
            ConfigurationError: ``payload`` cannot be parsed.
        """
        if not isinstance(payload, SynthesisPayload):
            payload = SynthesisPayload.from_dict(payload)

        request_id = _new_id("req")
        self._request_id = request_id
        self._payload = payload
        self._result = None
        self._error = None
        self._dispatched.clear()
        self._state = JobState.SYNTHESIZING

        logger.debug("Request %s: fault=%s", request_id, payload.fault.id)
        self._submit(Job(Stage.SYNTHESIS, request_id, payload))
        return request_id

    def dispatch_spectrum(self, result: SimulationResult) -> bool:
        """Queue the spectral stage for ``result``.

        Returns False without dispatching when the key was already sent
        or ``result`` is not the current result.
        """
        key = result.correlation_key
        if key in self._dispatched:
            logger.debug("Spectrum for %s already dispatched", key)
            return False
        if result is not self._result or self._payload is None:
            logger.debug("Not dispatching spectrum for superseded result %s", key)
            return False

        self._dispatched.add(key)
        self._state = JobState.SPECTRUM_RUNNING
        self._submit(
            Job(
                Stage.SPECTRUM,
                result.request_id,
                spectral_payload_for(result, self._payload),
                key=key,
            )
        )
        return True

    def pump(self, timeout: float = 0.0) -> int:
        """Handle delivered messages; waits up to ``timeout`` for the first.

        Returns:
            Number of messages handled.
        """
        handled = 0
        try:
            message = self._inbox.get(timeout=timeout) if timeout > 0 else self._inbox.get_nowait()
        except queue.Empty:
            return 0
        while True:
            self._handle(message)
            handled += 1
            try:
                message = self._inbox.get_nowait()
            except queue.Empty:
                return handled

    def wait(self, timeout: float | None = None) -> JobState:
        """Pump until the current run completes or fails, or ``timeout`` elapses."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._state not in _TERMINAL and self._state is not JobState.IDLE:
            if deadline is None:
                self.pump(timeout=0.1)
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            self.pump(timeout=min(remaining, 0.1))
        return self._state

    def close(self) -> None:
        for runner in self._runners.values():
            runner.close()
        self._runners.clear()

    def __enter__(self) -> JobOrchestrator:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- internals ---------------------------------------------------------

    def _submit(self, job: Job) -> None:
        runner = self._runners.get(job.stage)
        if self._offload_disabled or runner is None:
            self._inline.submit(job)
            return
        try:
            runner.submit(job)
        except Exception as exc:
            self._trip_fallback(exc)
            self._inline.submit(job)

    def _trip_fallback(self, exc: BaseException) -> None:
        if not self._offload_disabled:
            logger.warning("Offloaded execution failed (%s); running stages inline from now on", exc)
        self._offload_disabled = True

    def _handle(self, message: JobMessage) -> None:
        job = message.job
        if job.request_id != self._request_id:
            logger.debug("Dropping stale %s for %s", message.type.value, job.request_id)
            return

        if message.type is MessageType.ERROR:
            self._handle_error(message)
        elif message.type is MessageType.SYNTHESIS_RESULT:
            self._handle_synthesis(message.payload)
        else:
            self._handle_spectrum(job, message.payload)

    def _handle_synthesis(self, result: SimulationResult) -> None:
        if self._state is not JobState.SYNTHESIZING:
            logger.debug("Ignoring repeated synthesis result for %s", result.request_id)
            return
        self._result = result
        self._state = JobState.SYNTHESIS_READY
        self._notify(result)
        self.dispatch_spectrum(result)

    def _handle_spectrum(self, job: Job, spectrum: SpectrumResult) -> None:
        result = self._result
        if result is None or job.key != result.correlation_key or result.spectrum is not None:
            logger.debug("Dropping stale spectrum %s", job.key)
            return
        result.attach_spectrum(spectrum)
        self._state = JobState.COMPLETE
        self._notify(result)

    def _handle_error(self, message: JobMessage) -> None:
        job = message.job
        error = message.error
        if message.offloaded and not isinstance(error, ConfigurationError):
            self._trip_fallback(error)
            logger.info("Retrying %s for %s inline", job.stage.value, job.request_id)
            self._inline.submit(job)
            return
        logger.error("%s stage failed for %s: %s", job.stage.value, job.request_id, error)
        self._error = error
        self._state = JobState.ERROR

    def _notify(self, result: SimulationResult) -> None:
        if self.on_result is not None:
            self.on_result(result)
