# executor.py
# Single-flight access to the local inference engine.
#
# The engine saturates the local accelerator, so two calls never run side by
# side. Every request is admitted to a FIFO queue; one worker thread spawns
# the engine process, owns it until it exits, and only then takes the next
# request. Deadlines are measured from admission, so time spent waiting in the
# queue counts against the caller's budget.
#
# The engine is anything with `command(request) -> list[str]`. LlamaCli is the
# production implementation; tests plug in a tiny Python script.

import contextlib
import itertools
import json
import logging
import queue
import subprocess
import threading
import time
from concurrent.futures import CancelledError, Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Protocol

from llama_router.errors import (
    EngineConfigError,
    ExecutorClosedError,
    InferenceCancelledError,
    InferenceTimeoutError,
    ProcessError,
)
from llama_router.models import InferenceRequest, clamp_tokens

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a precise technical assistant. Answer accurately and do not invent facts."
DEFAULT_TIMEOUT_SECONDS = 60.0

# Extra time a blocking caller waits past the deadline for the worker to
# finish killing and reaping the process.
WAIT_GRACE_SECONDS = 2.0
REAP_TIMEOUT_SECONDS = 5.0


class Engine(Protocol):
    def command(self, request: InferenceRequest) -> list[str]: ...


class LlamaCli:
    """Builds llama-cli argument vectors for single-turn and transcript requests."""

    def __init__(self, binary: str, model_path: str | None) -> None:
        self.binary = binary
        self.model_path = model_path

    def command(self, request: InferenceRequest) -> list[str]:
        if not self.model_path:
            raise EngineConfigError("LLAMA_MODEL is not configured (path to the .gguf model).")

        args = [
            self.binary,
            "-m", self.model_path,
            "-n", str(clamp_tokens(request.max_tokens)),
            "--temp", str(request.temperature),
            "--seed", str(request.seed),
            "--simple-io", "--no-display-prompt", "-st",
            "--ignore-eos",
        ]
        if request.transcript:
            # Already rendered with turn markers; conversation mode would re-template it.
            args += ["-no-cnv", "-p", request.prompt]
            return args

        args += ["-sys", request.system or DEFAULT_SYSTEM_PROMPT]
        if request.json_schema:
            args += ["-j", json.dumps(request.json_schema)]
        args += ["-p", request.prompt]
        return args


@dataclass
class _Job:
    seq: int
    request: InferenceRequest
    deadline: float
    future: Future = field(default_factory=Future)
    cancelled: bool = False


class SerializedExecutor:
    """
    FIFO queue in front of the engine with exactly one worker.

    Usage:
        with SerializedExecutor(LlamaCli(bin, model), default_timeout=60) as ex:
            text = ex.submit(InferenceRequest(prompt="hello"))

    submit() blocks and raises ExecutorError subclasses; submit_async() hands
    back the Future instead. Requests resolve in the order they were admitted.
    """

    def __init__(
        self,
        engine: Engine,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        name: str = "inference-worker",
    ) -> None:
        self._engine = engine
        self._default_timeout = default_timeout
        self._queue: queue.Queue[_Job | None] = queue.Queue()
        self._lock = threading.Lock()
        self._seq = itertools.count(1)
        self._closed = False
        self._active: _Job | None = None
        self._process: subprocess.Popen | None = None
        self._worker = threading.Thread(target=self._run, name=name, daemon=True)
        self._worker.start()

    def __enter__(self) -> "SerializedExecutor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown(cancel_pending=True)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    @property
    def default_timeout(self) -> float:
        return self._default_timeout

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def submit_async(self, request: InferenceRequest) -> Future:
        timeout = request.timeout or self._default_timeout
        with self._lock:
            if self._closed:
                raise ExecutorClosedError("Executor has been shut down.")
            job = _Job(
                seq=next(self._seq),
                request=request,
                deadline=time.monotonic() + timeout,
            )
            self._queue.put(job)
        logger.debug("Admitted request #%d (timeout %.1fs, %d queued)", job.seq, timeout, self.pending)
        return job.future

    def submit(self, request: InferenceRequest) -> str:
        """Admit a request and block until it resolves. Returns trimmed stdout."""
        future = self.submit_async(request)
        timeout = request.timeout or self._default_timeout
        try:
            return future.result(timeout=timeout + WAIT_GRACE_SECONDS)
        except InferenceTimeoutError:
            raise
        except FutureTimeoutError:
            self.cancel(future)
            raise InferenceTimeoutError(f"Inference did not complete within {timeout:.1f}s.") from None
        except CancelledError:
            raise InferenceCancelledError("Request was cancelled before it started.") from None

    def cancel(self, future: Future) -> bool:
        """
        Cancel a submitted request.

        A queued request is dropped. A running one has its process killed and
        resolves with InferenceCancelledError. Returns False if it already finished.
        """
        if future.cancel():
            return True
        with self._lock:
            job = self._active
            if job is None or job.future is not future:
                return False
            job.cancelled = True
            if self._process is not None:
                with contextlib.suppress(ProcessLookupError):
                    self._process.kill()
        logger.warning("Cancelled running request #%d", job.seq)
        return True

    def shutdown(self, wait: bool = True, cancel_pending: bool = False) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if cancel_pending:
                while True:
                    try:
                        job = self._queue.get_nowait()
                    except queue.Empty:
                        break
                    if job is not None:
                        job.future.cancel()
            self._queue.put(None)
        if cancel_pending:
            with self._lock:
                active = self._active
            if active is not None:
                self.cancel(active.future)
        if wait:
            self._worker.join()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            if job is None:
                return
            # A future that reports running() must already be visible to cancel().
            with self._lock:
                if not job.future.set_running_or_notify_cancel():
                    logger.debug("Skipping cancelled request #%d", job.seq)
                    continue
                self._active = job
            try:
                text = self._execute(job)
            except Exception as exc:
                job.future.set_exception(exc)
            else:
                job.future.set_result(text)
            finally:
                with self._lock:
                    self._active = None
                    self._process = None

    def _execute(self, job: _Job) -> str:
        remaining = job.deadline - time.monotonic()
        if remaining <= 0:
            logger.warning("Request #%d expired while queued", job.seq)
            raise InferenceTimeoutError("Deadline expired while waiting in the queue.")

        argv = self._engine.command(job.request)

        with self._lock:
            if job.cancelled:
                raise InferenceCancelledError("Request was cancelled.")
            try:
                proc = subprocess.Popen(
                    argv,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                )
            except OSError as exc:
                raise ProcessError(f"Could not start engine {argv[0]!r}: {exc}") from exc
            self._process = proc

        started = time.monotonic()
        logger.debug("Request #%d spawned pid %d", job.seq, proc.pid)
        try:
            stdout, stderr = proc.communicate(timeout=remaining)
        except subprocess.TimeoutExpired:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            with contextlib.suppress(subprocess.TimeoutExpired):
                proc.communicate(timeout=REAP_TIMEOUT_SECONDS)
            elapsed = time.monotonic() - started
            logger.warning("Request #%d timed out after %.1fs; engine killed", job.seq, elapsed)
            raise InferenceTimeoutError(
                f"Engine exceeded its deadline after {elapsed:.1f}s and was terminated."
            ) from None

        if job.cancelled:
            raise InferenceCancelledError("Request was cancelled while running.")
        if proc.returncode != 0:
            logger.warning("Request #%d: engine exited with code %d", job.seq, proc.returncode)
            raise ProcessError(
                stderr.strip() or f"Engine exited with code {proc.returncode}.",
                stderr=stderr,
                returncode=proc.returncode,
            )

        logger.debug("Request #%d completed in %.2fs", job.seq, time.monotonic() - started)
        return stdout.strip()
