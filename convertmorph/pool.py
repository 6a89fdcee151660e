"""
Bounded pool of background worker processes.

Jobs beyond `max_workers` wait in a FIFO queue and start as slots free up.
Each job runs in its own process; the pool relays progress to the caller
and settles the job's Future exactly once, on completion, worker error,
non-zero exit or timeout.
"""

import logging
import multiprocessing
import threading
import time
import uuid
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional

from .config import settings
from .messages import (
    CompleteResponse,
    CompressOutput,
    CompressRequest,
    ErrorResponse,
    ImagesToPdfRequest,
    MergeOutput,
    MergeRequest,
    OutputFiles,
    PdfToImagesRequest,
    ProgressResponse,
    SplitRequest,
    WorkerRequest,
    WorkerResponse,
    WorkerResult,
)
from .worker import run_job

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class JobError(RuntimeError):
    """A background job failed, crashed or timed out."""

    def __init__(self, message: str, job_id: Optional[str] = None, duration_ms: int = 0):
        super().__init__(message)
        self.job_id = job_id
        self.duration_ms = duration_ms


class ProcessWorker:
    """
    Runs one job in a separate process.

    A listener thread reads responses from the process and hands them to
    `on_message`. When the process goes away the listener reports its exit
    code through `on_exit`; unexpected channel failures go to `on_error`.
    """

    def __init__(
        self,
        on_message: Callable[[WorkerResponse], None],
        on_error: Callable[[BaseException], None],
        on_exit: Callable[[int], None],
        start_method: Optional[str] = None,
    ):
        self.on_message = on_message
        self.on_error = on_error
        self.on_exit = on_exit
        self._context = multiprocessing.get_context(start_method or settings.START_METHOD)
        self._process = None
        self._listener = None

    def start(self, message: WorkerRequest):
        reader, writer = self._context.Pipe(duplex=False)
        self._process = self._context.Process(
            target=run_job,
            args=(writer, message),
            name=f"convertmorph-{message.type}-{message.job_id[:8]}",
            daemon=True,
        )
        self._process.start()
        # The child holds the only writer; EOF on the reader means it exited
        writer.close()

        self._listener = threading.Thread(
            target=self._listen, args=(reader,), daemon=True,
        )
        self._listener.start()

    def _listen(self, reader):
        try:
            while True:
                try:
                    response = reader.recv()
                except (EOFError, OSError):
                    break
                self.on_message(response)
        except Exception as e:
            self.on_error(e)
        finally:
            reader.close()

        self._process.join()
        self.on_exit(self._process.exitcode)

    def terminate(self):
        if self._process is not None and self._process.is_alive():
            self._process.terminate()

    def join(self, timeout: Optional[float] = None):
        if self._process is not None:
            self._process.join(timeout)


@dataclass
class Job:
    """An in-flight job. Only the pool's lock holder mutates the job map."""
    id: str
    future: Future
    on_progress: Optional[ProgressCallback]
    parse: Callable[[WorkerResult, int], Any]
    start_time: float
    worker: Any = None
    timer: Optional[threading.Timer] = None

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self.start_time) * 1000)


@dataclass
class QueuedJob:
    message: WorkerRequest
    future: Future
    on_progress: Optional[ProgressCallback]
    parse: Callable[[WorkerResult, int], Any]


class WorkerManager:
    """
    Dispatches PDF jobs to at most `max_workers` worker processes.

    Every public operation returns a `concurrent.futures.Future` that
    resolves to the operation's output or fails with JobError.
    """

    def __init__(
        self,
        max_workers: Optional[int] = None,
        job_timeout: Optional[float] = None,
        worker_factory: Callable[..., Any] = ProcessWorker,
    ):
        """
        Initialize the pool.

        Args:
            max_workers: Concurrent job limit (default from settings)
            job_timeout: Seconds before a job is killed (default from settings)
            worker_factory: Callable taking on_message, on_error and on_exit
                keyword arguments and returning an object with start(message),
                terminate() and join()
        """
        self.max_workers = max_workers or settings.MAX_WORKERS
        self.job_timeout = settings.JOB_TIMEOUT if job_timeout is None else job_timeout
        self._worker_factory = worker_factory

        self._jobs: Dict[str, Job] = {}
        self._active_workers = 0
        self._queue: Deque[QueuedJob] = deque()
        self._lock = threading.Lock()
        self._shutting_down = False

    # Public operations

    def compress_pdf(
        self,
        file_path: str,
        quality: str,
        on_progress: Optional[ProgressCallback] = None,
        remove_metadata: bool = True,
        optimize_images: bool = True,
        subset_fonts: bool = True,
    ) -> "Future[CompressOutput]":
        def parse(data: WorkerResult, duration_ms: int) -> CompressOutput:
            if data.output_path is None or data.original_size is None or data.compressed_size is None:
                raise JobError("Invalid compression result")
            return CompressOutput(
                output_path=data.output_path,
                original_size=data.original_size,
                compressed_size=data.compressed_size,
                duration_ms=duration_ms,
            )

        message = CompressRequest(
            job_id=self._new_job_id(),
            file_path=str(file_path),
            quality=quality,
            remove_metadata=remove_metadata,
            optimize_images=optimize_images,
            subset_fonts=subset_fonts,
        )
        return self._submit(message, on_progress, parse)

    def merge_pdfs(
        self,
        file_paths: List[str],
        on_progress: Optional[ProgressCallback] = None,
    ) -> "Future[MergeOutput]":
        def parse(data: WorkerResult, duration_ms: int) -> MergeOutput:
            if data.output_path is None:
                raise JobError("Invalid merge result")
            return MergeOutput(output_path=data.output_path, duration_ms=duration_ms)

        message = MergeRequest(job_id=self._new_job_id(), file_paths=[str(p) for p in file_paths])
        return self._submit(message, on_progress, parse)

    def split_pdf(
        self,
        file_path: str,
        ranges: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> "Future[OutputFiles]":
        message = SplitRequest(job_id=self._new_job_id(), file_path=str(file_path), ranges=ranges)
        return self._submit(message, on_progress, self._output_files_parser("split"))

    def images_to_pdf(
        self,
        image_paths: List[str],
        mode: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> "Future[OutputFiles]":
        message = ImagesToPdfRequest(
            job_id=self._new_job_id(),
            image_paths=[str(p) for p in image_paths],
            mode=mode,
        )
        return self._submit(message, on_progress, self._output_files_parser("images to PDF"))

    def pdf_to_images(
        self,
        file_path: str,
        format: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> "Future[OutputFiles]":
        message = PdfToImagesRequest(job_id=self._new_job_id(), file_path=str(file_path), format=format)
        return self._submit(message, on_progress, self._output_files_parser("PDF to images"))

    def get_stats(self) -> dict:
        """Current job statistics."""
        with self._lock:
            return {
                "active_jobs": self._active_workers,
                "queued_jobs": len(self._queue),
                "max_workers": self.max_workers,
            }

    def shutdown(self):
        """
        Terminate all running workers and wait for them to exit.

        Running and queued jobs fail with JobError. Submissions made while
        shutdown is in progress are refused.
        """
        with self._lock:
            self._shutting_down = True
            jobs = list(self._jobs.values())
            queued = list(self._queue)
            self._jobs.clear()
            self._queue.clear()

        for job in jobs:
            if job.timer is not None:
                job.timer.cancel()
            job.worker.terminate()

        for job in jobs:
            job.worker.join()
            self._settle(job.future, error=JobError("Worker pool shut down", job.id, job.duration_ms))

        for entry in queued:
            self._settle(entry.future, error=JobError("Worker pool shut down", entry.message.job_id))

        with self._lock:
            self._active_workers = 0
            self._shutting_down = False

        if jobs or queued:
            logger.info("Worker pool shut down (%d running, %d queued)", len(jobs), len(queued))

    # Dispatch

    @staticmethod
    def _new_job_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _output_files_parser(label: str) -> Callable[[WorkerResult, int], OutputFiles]:
        def parse(data: WorkerResult, duration_ms: int) -> OutputFiles:
            if data.output_paths is None:
                raise JobError(f"Invalid {label} result")
            return OutputFiles(output_paths=list(data.output_paths), duration_ms=duration_ms)
        return parse

    def _submit(self, message: WorkerRequest, on_progress, parse) -> Future:
        future: Future = Future()
        entry = QueuedJob(message, future, on_progress, parse)

        with self._lock:
            if self._shutting_down:
                raise JobError("Worker pool is shutting down", message.job_id)
            if self._active_workers >= self.max_workers:
                self._queue.append(entry)
                logger.debug("Queued %s job %s (%d waiting)", message.type, message.job_id, len(self._queue))
                return future
            self._active_workers += 1

        self._start(entry)
        return future

    def _start(self, entry: QueuedJob):
        """Start a job; the caller has already reserved its slot."""
        message = entry.message
        job = Job(
            id=message.job_id,
            future=entry.future,
            on_progress=entry.on_progress,
            parse=entry.parse,
            start_time=time.monotonic(),
        )

        try:
            job.worker = self._worker_factory(
                on_message=lambda response: self._handle_message(job, response),
                on_error=lambda error: self._finish(job, error=error),
                on_exit=lambda code: self._handle_exit(job, code),
            )
            job.timer = threading.Timer(self.job_timeout, self._handle_timeout, args=(job,))
            job.timer.daemon = True

            with self._lock:
                self._jobs[job.id] = job

            logger.debug("Starting %s job %s", message.type, job.id)
            job.worker.start(message)
            job.timer.start()
        except Exception as e:
            logger.exception("Could not start %s job %s", message.type, job.id)
            with self._lock:
                if self._jobs.pop(job.id, None) is None and job.worker is not None:
                    # Already settled through a callback during start()
                    return
                self._active_workers -= 1
            if job.timer is not None:
                job.timer.cancel()
            self._settle(job.future, error=e)
            self._process_queue()

    def _handle_message(self, job: Job, response: WorkerResponse):
        if isinstance(response, ProgressResponse):
            if job.on_progress is None or not self._is_active(job):
                return
            try:
                job.on_progress(response.progress)
            except Exception:
                logger.exception("Progress callback for job %s failed", job.id)

        elif isinstance(response, CompleteResponse):
            try:
                result = job.parse(response.data, job.duration_ms)
            except Exception as e:
                self._finish(job, error=e)
            else:
                self._finish(job, result=result)

        elif isinstance(response, ErrorResponse):
            self._finish(job, error=JobError(response.error or "Worker error", job.id, job.duration_ms))

    def _handle_exit(self, job: Job, code: int):
        if code != 0:
            self._finish(job, error=JobError(f"Worker stopped with exit code {code}", job.id, job.duration_ms))

    def _handle_timeout(self, job: Job):
        if self._finish(job, error=JobError("Job timeout", job.id, job.duration_ms)):
            logger.warning("Job %s timed out after %.0f seconds", job.id, self.job_timeout)

    def _is_active(self, job: Job) -> bool:
        with self._lock:
            return self._jobs.get(job.id) is job

    def _finish(self, job: Job, result: Any = None, error: Optional[BaseException] = None) -> bool:
        """
        Settle a job and free its slot.

        Returns False when the job was already settled, so late messages,
        exits and timers are ignored.
        """
        with self._lock:
            if self._jobs.get(job.id) is not job:
                return False
            del self._jobs[job.id]
            self._active_workers -= 1

        if job.timer is not None:
            job.timer.cancel()
        job.worker.terminate()

        if error is None:
            logger.debug("Job %s completed in %d ms", job.id, job.duration_ms)
        else:
            logger.info("Job %s failed after %d ms: %s", job.id, job.duration_ms, error)

        self._settle(job.future, result=result, error=error)
        self._process_queue()
        return True

    @staticmethod
    def _settle(future: Future, result: Any = None, error: Optional[BaseException] = None):
        if future.done():
            return
        if error is None:
            future.set_result(result)
        else:
            if not isinstance(error, JobError):
                wrapped = JobError(str(error) or error.__class__.__name__)
                wrapped.__cause__ = error
                error = wrapped
            future.set_exception(error)

    def _process_queue(self):
        with self._lock:
            if not self._queue or self._active_workers >= self.max_workers or self._shutting_down:
                return
            entry = self._queue.popleft()
            self._active_workers += 1

        self._start(entry)


worker_manager = WorkerManager()
