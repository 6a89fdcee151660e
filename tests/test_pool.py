import time

import fitz
import pytest

from convertmorph.messages import (
    CompleteResponse,
    CompressOutput,
    ErrorResponse,
    MergeOutput,
    OutputFiles,
    ProgressResponse,
    WorkerResult,
)
from convertmorph.pool import JobError, WorkerManager


class FakeWorker:
    """Stands in for a worker process; tests drive its callbacks by hand."""

    def __init__(self, on_message, on_error, on_exit):
        self.on_message = on_message
        self.on_error = on_error
        self.on_exit = on_exit
        self.message = None
        self.terminated = False

    def start(self, message):
        self.message = message

    def terminate(self):
        self.terminated = True

    def join(self, timeout=None):
        pass

    def progress(self, percent):
        self.on_message(ProgressResponse(self.message.job_id, percent))

    def complete(self, **data):
        self.on_message(CompleteResponse(self.message.job_id, WorkerResult(**data)))

    def fail(self, error):
        self.on_message(ErrorResponse(self.message.job_id, error))

    def exit(self, code):
        self.on_exit(code)


class FakeWorkerFactory:
    def __init__(self):
        self.workers = []

    def __call__(self, **callbacks):
        worker = FakeWorker(**callbacks)
        self.workers.append(worker)
        return worker


@pytest.fixture
def factory():
    return FakeWorkerFactory()


@pytest.fixture
def manager(factory):
    pool = WorkerManager(max_workers=4, job_timeout=60, worker_factory=factory)
    yield pool
    pool.shutdown()


def submit_merges(manager, count):
    return [manager.merge_pdfs([f"/tmp/{i}.pdf"]) for i in range(count)]


def test_concurrency_is_bounded(manager, factory):
    futures = submit_merges(manager, 7)

    assert len(factory.workers) == 4
    assert manager.get_stats() == {"active_jobs": 4, "queued_jobs": 3, "max_workers": 4}
    assert not any(f.done() for f in futures)


def test_queued_jobs_start_in_order(manager, factory):
    futures = submit_merges(manager, 7)

    factory.workers[0].complete(output_path="/tmp/merged.pdf")

    assert isinstance(futures[0].result(), MergeOutput)
    assert futures[0].result().output_path == "/tmp/merged.pdf"
    assert len(factory.workers) == 5
    assert factory.workers[4].message.file_paths == ["/tmp/4.pdf"]
    assert manager.get_stats()["active_jobs"] == 4
    assert manager.get_stats()["queued_jobs"] == 2

    factory.workers[2].fail("Merge failed: boom")
    assert factory.workers[5].message.file_paths == ["/tmp/5.pdf"]


def test_progress_is_relayed_until_completion(manager, factory):
    updates = []
    future = manager.split_pdf("/tmp/doc.pdf", "1-2", on_progress=updates.append)
    worker = factory.workers[0]

    worker.progress(10)
    worker.progress(55)
    worker.complete(output_paths=["/tmp/doc_page_1.pdf", "/tmp/doc_page_2.pdf"])
    worker.progress(99)

    assert updates == [10, 55]
    output = future.result()
    assert isinstance(output, OutputFiles)
    assert output.output_paths == ["/tmp/doc_page_1.pdf", "/tmp/doc_page_2.pdf"]
    assert output.duration_ms >= 0


def test_failing_progress_callback_does_not_break_job(manager, factory):
    def explode(percent):
        raise RuntimeError("display closed")

    future = manager.merge_pdfs(["/tmp/a.pdf"], on_progress=explode)
    factory.workers[0].progress(20)
    factory.workers[0].complete(output_path="/tmp/merged.pdf")

    assert future.result().output_path == "/tmp/merged.pdf"


def test_compress_output(manager, factory):
    future = manager.compress_pdf("/tmp/doc.pdf", "strong")
    worker = factory.workers[0]

    assert worker.message.quality == "strong"
    worker.complete(output_path="/tmp/doc_compressed.pdf", original_size=1000, compressed_size=400)

    output = future.result()
    assert isinstance(output, CompressOutput)
    assert (output.original_size, output.compressed_size) == (1000, 400)


@pytest.mark.parametrize(
    "submit, message",
    [
        (lambda m: m.compress_pdf("/tmp/doc.pdf", "medium"), "Invalid compression result"),
        (lambda m: m.merge_pdfs(["/tmp/a.pdf"]), "Invalid merge result"),
        (lambda m: m.split_pdf("/tmp/doc.pdf", "1"), "Invalid split result"),
        (lambda m: m.images_to_pdf(["/tmp/a.png"], "single"), "Invalid images to PDF result"),
        (lambda m: m.pdf_to_images("/tmp/doc.pdf", "png"), "Invalid PDF to images result"),
    ],
)
def test_incomplete_result_is_rejected(manager, factory, submit, message):
    future = submit(manager)
    factory.workers[0].complete()

    with pytest.raises(JobError, match=message):
        future.result()
    assert manager.get_stats()["active_jobs"] == 0


def test_empty_output_list_is_valid(manager, factory):
    future = manager.split_pdf("/tmp/doc.pdf", "9")
    factory.workers[0].complete(output_paths=[])

    assert future.result().output_paths == []


def test_worker_error_message_is_passed_through(manager, factory):
    future = manager.merge_pdfs(["/tmp/a.pdf"])
    job_id = factory.workers[0].message.job_id
    factory.workers[0].fail("Merge failed: no such file")

    with pytest.raises(JobError) as exc_info:
        future.result()
    assert str(exc_info.value) == "Merge failed: no such file"
    assert exc_info.value.job_id == job_id
    assert factory.workers[0].terminated


def test_nonzero_exit_fails_job(manager, factory):
    future = manager.merge_pdfs(["/tmp/a.pdf"])
    factory.workers[0].exit(-9)

    with pytest.raises(JobError, match="Worker stopped with exit code -9"):
        future.result()


def test_clean_exit_without_result_keeps_waiting(manager, factory):
    future = manager.merge_pdfs(["/tmp/a.pdf"])
    factory.workers[0].exit(0)

    assert not future.done()
    assert manager.get_stats()["active_jobs"] == 1


def test_job_settles_only_once(manager, factory):
    future = manager.merge_pdfs(["/tmp/a.pdf"])
    worker = factory.workers[0]

    worker.complete(output_path="/tmp/merged.pdf")
    worker.fail("late error")
    worker.exit(1)
    worker.on_error(OSError("pipe closed"))

    assert future.result().output_path == "/tmp/merged.pdf"
    assert manager.get_stats()["active_jobs"] == 0


def test_channel_error_fails_job(manager, factory):
    future = manager.merge_pdfs(["/tmp/a.pdf"])
    error = OSError("pipe closed")
    factory.workers[0].on_error(error)

    with pytest.raises(JobError, match="pipe closed") as exc_info:
        future.result()
    assert exc_info.value.__cause__ is error


def test_job_timeout(factory):
    manager = WorkerManager(max_workers=1, job_timeout=0.05, worker_factory=factory)
    future = manager.merge_pdfs(["/tmp/a.pdf"])
    queued = manager.merge_pdfs(["/tmp/b.pdf"])

    with pytest.raises(JobError, match="Job timeout"):
        future.result(timeout=5)
    assert factory.workers[0].terminated

    # The freed slot goes to the queued job, which times out in turn
    with pytest.raises(JobError, match="Job timeout"):
        queued.result(timeout=5)
    assert len(factory.workers) == 2
    assert manager.get_stats()["active_jobs"] == 0


def test_timeout_after_completion_is_ignored(factory):
    manager = WorkerManager(max_workers=1, job_timeout=0.05, worker_factory=factory)
    future = manager.merge_pdfs(["/tmp/a.pdf"])
    factory.workers[0].complete(output_path="/tmp/merged.pdf")

    time.sleep(0.2)

    assert future.result().output_path == "/tmp/merged.pdf"
    assert manager.get_stats()["active_jobs"] == 0


def test_shutdown_when_idle(manager):
    manager.shutdown()
    assert manager.get_stats() == {"active_jobs": 0, "queued_jobs": 0, "max_workers": 4}


def test_shutdown_fails_running_and_queued_jobs(factory):
    manager = WorkerManager(max_workers=2, job_timeout=60, worker_factory=factory)
    futures = submit_merges(manager, 5)

    manager.shutdown()

    for future in futures:
        with pytest.raises(JobError, match="Worker pool shut down"):
            future.result()
    assert all(worker.terminated for worker in factory.workers)
    assert len(factory.workers) == 2
    assert manager.get_stats()["active_jobs"] == 0
    assert manager.get_stats()["queued_jobs"] == 0

    # Late messages from terminated workers are ignored
    factory.workers[0].complete(output_path="/tmp/merged.pdf")

    # The pool accepts new work afterwards
    future = manager.merge_pdfs(["/tmp/a.pdf"])
    factory.workers[-1].complete(output_path="/tmp/merged.pdf")
    assert future.result().output_path == "/tmp/merged.pdf"


def test_start_failure_frees_slot():
    class BrokenWorker(FakeWorker):
        def start(self, message):
            raise OSError("cannot spawn")

    manager = WorkerManager(max_workers=1, job_timeout=60, worker_factory=BrokenWorker)
    future = manager.merge_pdfs(["/tmp/a.pdf"])

    with pytest.raises(JobError, match="cannot spawn") as exc_info:
        future.result()
    assert isinstance(exc_info.value.__cause__, OSError)
    assert manager.get_stats()["active_jobs"] == 0


def test_real_worker_process_merges_files(pdf_file):
    manager = WorkerManager(max_workers=2, job_timeout=60)
    first = pdf_file("a.pdf", pages=1)
    second = pdf_file("b.pdf", pages=2)
    updates = []

    try:
        output = manager.merge_pdfs([str(first), str(second)], on_progress=updates.append).result(timeout=60)
    finally:
        manager.shutdown()

    with fitz.open(output.output_path) as doc:
        assert doc.page_count == 3
    assert updates
    assert manager.get_stats()["active_jobs"] == 0


def test_real_worker_process_reports_errors(pdf_file):
    manager = WorkerManager(max_workers=1, job_timeout=60)

    try:
        future = manager.split_pdf(str(pdf_file()), "bad")
        with pytest.raises(JobError, match="^Split failed:"):
            future.result(timeout=60)
    finally:
        manager.shutdown()


def test_compress_options_reach_the_worker(manager, factory):
    manager.compress_pdf("/tmp/doc.pdf", "light", remove_metadata=False, subset_fonts=False)
    message = factory.workers[0].message

    assert message.remove_metadata is False
    assert message.optimize_images is True
    assert message.subset_fonts is False
