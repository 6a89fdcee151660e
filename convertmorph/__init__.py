"""
ConvertMorph

Picks the right way to compress a PDF, compresses it in-process, and runs
heavier PDF jobs on a bounded pool of background workers.
"""

__version__ = "1.0.0"
__author__ = "ConvertMorph Team"

from .analyzer import FileAnalysis, PDFAnalyzer, analyze_pdf
from .compressor import (
    CompressionOptions,
    CompressionProgress,
    CompressionResult,
    PDFCompressor,
    compress_pdf,
)
from .pool import JobError, WorkerManager, worker_manager
from .router import (
    CompressionDecision,
    ValidationResult,
    choose_compression_method,
    estimate_processing_time,
    get_compression_method_explanation,
    validate_compression_method,
)

__all__ = [
    "FileAnalysis",
    "PDFAnalyzer",
    "analyze_pdf",
    "CompressionOptions",
    "CompressionProgress",
    "CompressionResult",
    "PDFCompressor",
    "compress_pdf",
    "JobError",
    "WorkerManager",
    "worker_manager",
    "CompressionDecision",
    "ValidationResult",
    "choose_compression_method",
    "estimate_processing_time",
    "get_compression_method_explanation",
    "validate_compression_method",
]
