"""PDF Analysis module for ConvertMorph."""

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import fitz  # PyMuPDF

from .utils import BYTES_PER_MB

logger = logging.getLogger(__name__)

# Bytes-per-page thresholds used to guess the content type
IMAGE_HEAVY_BYTES_PER_PAGE = 500_000
TEXT_HEAVY_BYTES_PER_PAGE = 50_000


@dataclass
class FileAnalysis:
    """Result of PDF analysis."""
    pages: int
    size_in_mb: float
    is_image_heavy: bool
    is_text_heavy: bool
    complexity: str  # "low", "medium", "high"
    size_bytes: int = 0
    used_fallback: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "pages": self.pages,
            "size_in_mb": round(self.size_in_mb, 2),
            "size_bytes": self.size_bytes,
            "is_image_heavy": self.is_image_heavy,
            "is_text_heavy": self.is_text_heavy,
            "complexity": self.complexity,
            "used_fallback": self.used_fallback,
        }


class PDFAnalyzer:
    """Classifies a PDF as image-heavy, text-heavy or mixed from its bytes-per-page ratio."""

    def __init__(self, data: bytes):
        """
        Initialize analyzer with the PDF bytes.

        Args:
            data: Raw PDF file content
        """
        self.data = data
        self.size_bytes = len(data)

    @classmethod
    def from_path(cls, pdf_path: Union[str, Path]) -> "PDFAnalyzer":
        """Create an analyzer for a file on disk."""
        pdf_path = Path(pdf_path)
        if not pdf_path.exists():
            raise FileNotFoundError(f"PDF file not found: {pdf_path}")
        return cls(pdf_path.read_bytes())

    @property
    def size_in_mb(self) -> float:
        return self.size_bytes / BYTES_PER_MB

    def analyze(self) -> FileAnalysis:
        """
        Analyze the PDF.

        Never raises: if the document cannot be parsed the result is
        estimated from the file size alone.

        Returns:
            FileAnalysis for the document
        """
        try:
            pages = self._count_pages()
        except Exception as e:
            logger.warning("Could not parse PDF (%s), using size-based estimate", e)
            return self._fallback_analysis()

        bytes_per_page = self.size_bytes / pages

        is_image_heavy = bytes_per_page > IMAGE_HEAVY_BYTES_PER_PAGE
        is_text_heavy = bytes_per_page < TEXT_HEAVY_BYTES_PER_PAGE

        complexity = "low"
        if is_image_heavy:
            complexity = "high"
        elif not is_text_heavy:
            complexity = "medium"

        return FileAnalysis(
            pages=pages,
            size_in_mb=self.size_in_mb,
            is_image_heavy=is_image_heavy,
            is_text_heavy=is_text_heavy,
            complexity=complexity,
            size_bytes=self.size_bytes,
        )

    def _count_pages(self) -> int:
        """Open the document and return its page count."""
        doc = fitz.open(stream=self.data, filetype="pdf")
        try:
            pages = doc.page_count
        finally:
            doc.close()

        if pages < 1:
            raise ValueError("document has no pages")
        return pages

    def _fallback_analysis(self) -> FileAnalysis:
        """Rough analysis from the file size when the PDF cannot be opened."""
        size_in_mb = self.size_in_mb

        if size_in_mb > 20:
            complexity = "high"
        elif size_in_mb > 5:
            complexity = "medium"
        else:
            complexity = "low"

        return FileAnalysis(
            pages=max(1, math.ceil(size_in_mb * 10)),
            size_in_mb=size_in_mb,
            is_image_heavy=size_in_mb > 10,
            is_text_heavy=size_in_mb < 5,
            complexity=complexity,
            size_bytes=self.size_bytes,
            used_fallback=True,
        )


def analyze_pdf(source: Union[bytes, str, Path]) -> FileAnalysis:
    """
    Convenience function to analyze a PDF.

    Args:
        source: PDF bytes or a path to a PDF file

    Returns:
        FileAnalysis
    """
    if isinstance(source, (bytes, bytearray)):
        return PDFAnalyzer(bytes(source)).analyze()
    return PDFAnalyzer.from_path(source).analyze()
