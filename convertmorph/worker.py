"""
Job handlers that run inside worker processes.

`run_job` is the process entry point used by the pool. The handlers can also
be called directly; each takes its request and a `report(percent)` callback
and returns a WorkerResult.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Tuple

import fitz  # PyMuPDF
from PIL import Image

from .compressor import compress_pdf
from .config import settings
from .messages import (
    CompleteResponse,
    CompressRequest,
    ErrorResponse,
    ImagesToPdfRequest,
    MergeRequest,
    PdfToImagesRequest,
    ProgressResponse,
    SplitRequest,
    WorkerRequest,
    WorkerResult,
)
from .utils import get_output_path, parse_page_ranges

logger = logging.getLogger(__name__)

Reporter = Callable[[float], None]

IMAGE_FORMATS = ("png", "jpg")
IMAGE_MODES = ("single", "multiple")


def compress_file(request: CompressRequest, report: Reporter) -> WorkerResult:
    """Compress a PDF on disk with the in-process engine."""
    input_path = Path(request.file_path)
    data = input_path.read_bytes()

    result = compress_pdf(
        data,
        level=request.quality,
        remove_metadata=request.remove_metadata,
        optimize_images=request.optimize_images,
        subset_fonts=request.subset_fonts,
        progress_callback=lambda update: report(update.progress * 0.9),
    )
    if not result.success:
        raise RuntimeError(result.error)

    output_path = get_output_path(input_path)
    output_path.write_bytes(result.compressed_pdf)
    report(100)

    return WorkerResult(
        output_path=str(output_path),
        original_size=result.original_size,
        compressed_size=result.compressed_size,
    )


def merge_files(request: MergeRequest, report: Reporter) -> WorkerResult:
    """Concatenate PDFs into merged.pdf beside the first input."""
    if not request.file_paths:
        raise ValueError("No input files")

    report(10)
    merged = fitz.open()
    try:
        for i, file_path in enumerate(request.file_paths):
            with fitz.open(file_path) as src:
                merged.insert_pdf(src)
            report(10 + (i + 1) / len(request.file_paths) * 80)

        output_path = Path(request.file_paths[0]).parent / "merged.pdf"
        merged.save(str(output_path), garbage=3, deflate=True)
    finally:
        merged.close()

    report(100)
    return WorkerResult(output_path=str(output_path))


def split_file(request: SplitRequest, report: Reporter) -> WorkerResult:
    """Write one PDF per selected page; repeated pages and pages outside the document are skipped."""
    page_indices = parse_page_ranges(request.ranges)

    report(10)
    output_paths = []
    written = set()
    with fitz.open(request.file_path) as doc:
        total_pages = doc.page_count
        report(30)

        for i, page_index in enumerate(page_indices):
            if page_index < total_pages and page_index not in written:
                written.add(page_index)
                output_path = get_output_path(request.file_path, suffix=f"_page_{page_index + 1}")
                single = fitz.open()
                try:
                    single.insert_pdf(doc, from_page=page_index, to_page=page_index)
                    single.save(str(output_path), garbage=3, deflate=True)
                finally:
                    single.close()
                output_paths.append(str(output_path))

            report(30 + (i + 1) / len(page_indices) * 65)

    report(100)
    return WorkerResult(output_paths=output_paths)


def _add_image_page(doc: fitz.Document, image_path: str):
    """Append a page sized to the image (1 px = 1 pt) showing the image."""
    with Image.open(image_path) as img:
        width, height = img.size
    page = doc.new_page(width=width, height=height)
    page.insert_image(page.rect, filename=image_path)


def images_to_pdf(request: ImagesToPdfRequest, report: Reporter) -> WorkerResult:
    """Build one PDF from all images ("single") or one PDF per image ("multiple")."""
    if request.mode not in IMAGE_MODES:
        raise ValueError(f"Unknown mode: {request.mode!r}")
    if not request.image_paths:
        raise ValueError("No input images")

    report(10)
    total = len(request.image_paths)

    if request.mode == "single":
        doc = fitz.open()
        try:
            for i, image_path in enumerate(request.image_paths):
                _add_image_page(doc, image_path)
                report(10 + (i + 1) / total * 80)

            output_path = Path(request.image_paths[0]).parent / "images.pdf"
            doc.save(str(output_path), garbage=3, deflate=True)
        finally:
            doc.close()

        report(100)
        return WorkerResult(output_paths=[str(output_path)])

    output_paths = []
    for i, image_path in enumerate(request.image_paths):
        doc = fitz.open()
        try:
            _add_image_page(doc, image_path)
            output_path = Path(image_path).with_suffix(".pdf")
            doc.save(str(output_path), garbage=3, deflate=True)
        finally:
            doc.close()
        output_paths.append(str(output_path))
        report(10 + (i + 1) / total * 85)

    report(100)
    return WorkerResult(output_paths=output_paths)


def pdf_to_images(request: PdfToImagesRequest, report: Reporter) -> WorkerResult:
    """Render every page to <stem>_page_<n>.png|jpg."""
    if request.format not in IMAGE_FORMATS:
        raise ValueError(f"Unknown image format: {request.format!r}")

    report(10)
    output_paths = []
    with fitz.open(request.file_path) as doc:
        page_count = doc.page_count
        report(30)

        for i, page in enumerate(doc):
            output_path = get_output_path(
                request.file_path,
                suffix=f"_page_{i + 1}",
                extension=f".{request.format}",
            )
            pix = page.get_pixmap(dpi=settings.RENDER_DPI)

            if request.format == "png":
                pix.save(str(output_path))
            else:
                img = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
                img.save(str(output_path), format="JPEG", quality=90)

            output_paths.append(str(output_path))
            report(30 + (i + 1) / page_count * 65)

    report(100)
    return WorkerResult(output_paths=output_paths)


HANDLERS: Dict[str, Tuple[Callable[..., WorkerResult], str]] = {
    CompressRequest.type: (compress_file, "Compression"),
    MergeRequest.type: (merge_files, "Merge"),
    SplitRequest.type: (split_file, "Split"),
    ImagesToPdfRequest.type: (images_to_pdf, "Images to PDF"),
    PdfToImagesRequest.type: (pdf_to_images, "PDF to images"),
}


def run_job(conn, message: WorkerRequest):
    """
    Worker process entry point.

    Sends ProgressResponse messages while the job runs, then exactly one
    CompleteResponse or ErrorResponse, over `conn`.
    """
    job_id = message.job_id

    def report(progress: float):
        conn.send(ProgressResponse(job_id, int(progress)))

    try:
        if message.type not in HANDLERS:
            conn.send(ErrorResponse(job_id, f"Unknown operation type: {message.type}"))
            return

        handler, label = HANDLERS[message.type]
        try:
            data = handler(message, report)
        except Exception as e:
            logger.exception("%s job %s failed", label, job_id)
            conn.send(ErrorResponse(job_id, f"{label} failed: {e}"))
            return

        conn.send(CompleteResponse(job_id, data))
    finally:
        conn.close()
