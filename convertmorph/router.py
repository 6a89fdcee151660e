"""Chooses between in-process and server-side compression for a PDF."""

from dataclasses import dataclass, field
from typing import List, Optional

from .analyzer import FileAnalysis
from .utils import format_duration

CLIENT_SIDE = "client-side"
SERVER_SIDE = "server-side"
METHODS = (CLIENT_SIDE, SERVER_SIDE)

PREFERENCES = ("privacy", "performance", "quality", "auto")

LARGE_FILE_SIZE_MB = 50
LARGE_PAGE_COUNT = 100
VERY_LARGE_PAGE_COUNT = 1000
TEXT_HEAVY_PAGE_COUNT = 50
SMALL_FILE_PAGE_COUNT = 50
SMALL_FILE_SIZE_MB = 10

# Seconds per page by complexity
CLIENT_SECONDS_PER_PAGE = {"high": 0.6, "medium": 0.2, "low": 0.05}
SERVER_SECONDS_PER_PAGE = {"high": 0.1, "medium": 0.03, "low": 0.01}
SERVER_TRANSFER_SECONDS = 5

CLIENT_MAX_SIZE_MB = 100
CLIENT_WARN_SIZE_MB = 50
CLIENT_WARN_PAGES = 2000
SERVER_MAX_SIZE_MB = 500


@dataclass
class CompressionDecision:
    """Which backend should compress a file, and why."""
    method: str
    reason: str
    estimated_time: str
    recommendation: str

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "reason": self.reason,
            "estimated_time": self.estimated_time,
            "recommendation": self.recommendation,
        }


@dataclass
class ValidationResult:
    """Whether a file fits the limits of a compression backend."""
    valid: bool
    warning: Optional[str] = None

    def to_dict(self) -> dict:
        return {"valid": self.valid, "warning": self.warning}


@dataclass
class MethodExplanation:
    """User-facing description of a compression backend."""
    title: str
    description: str
    pros: List[str] = field(default_factory=list)
    cons: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "pros": list(self.pros),
            "cons": list(self.cons),
        }


def _check_method(method: str):
    if method not in METHODS:
        raise ValueError(f"Unknown compression method: {method!r}")


def _decide(analysis: FileAnalysis, method: str, reason: str, recommendation: str) -> CompressionDecision:
    return CompressionDecision(
        method=method,
        reason=reason,
        estimated_time=estimate_processing_time(analysis, method),
        recommendation=recommendation,
    )


def choose_compression_method(
    analysis: FileAnalysis,
    user_preference: Optional[str] = None,
) -> CompressionDecision:
    """
    Pick a compression backend for an analyzed file.

    The rules are checked in a fixed order and the first match wins, so the
    result depends only on the analysis and the preference.

    Args:
        analysis: Result of analyzing the file
        user_preference: "privacy", "performance", "quality", "auto" or None

    Returns:
        CompressionDecision

    Raises:
        ValueError: If the preference is not recognized
    """
    if user_preference is not None and user_preference not in PREFERENCES:
        raise ValueError(f"Unknown preference: {user_preference!r}")

    pages = analysis.pages
    size_in_mb = analysis.size_in_mb

    if user_preference == "privacy":
        return _decide(
            analysis, CLIENT_SIDE,
            "User selected privacy-first processing",
            "Files will be processed locally for maximum privacy",
        )

    if user_preference == "performance":
        return _decide(
            analysis, SERVER_SIDE,
            "User selected performance-optimized processing",
            "Files will be processed on our servers for fastest results",
        )

    if size_in_mb > LARGE_FILE_SIZE_MB or pages > VERY_LARGE_PAGE_COUNT:
        return _decide(
            analysis, SERVER_SIDE,
            f"Large file ({size_in_mb:.1f}MB, {pages} pages) - server processing recommended",
            "Server-side processing will be faster and more reliable for large files",
        )

    if pages > LARGE_PAGE_COUNT:
        return _decide(
            analysis, SERVER_SIDE,
            f"High page count ({pages} pages) - server processing recommended",
            "Server-side processing prevents timeouts for multi-page documents",
        )

    if analysis.is_text_heavy and pages > TEXT_HEAVY_PAGE_COUNT:
        return _decide(
            analysis, SERVER_SIDE,
            "Text-heavy PDF - server processing preserves text searchability",
            "Server-side compression can optimize without converting text to images",
        )

    if analysis.is_image_heavy and pages <= LARGE_PAGE_COUNT and size_in_mb <= LARGE_FILE_SIZE_MB:
        return _decide(
            analysis, CLIENT_SIDE,
            "Image-heavy PDF - client-side compression works well for images",
            "Client-side processing provides excellent compression for image content",
        )

    if pages < SMALL_FILE_PAGE_COUNT and size_in_mb < SMALL_FILE_SIZE_MB:
        return _decide(
            analysis, CLIENT_SIDE,
            "Small file - fast client-side processing with complete privacy",
            "Client-side processing is ideal for small files",
        )

    return _decide(
        analysis, SERVER_SIDE,
        "Default recommendation for optimal quality and performance",
        "Server-side processing provides the best balance of speed and quality",
    )


def estimate_processing_time(analysis: FileAnalysis, method: str) -> str:
    """
    Estimate how long compression will take.

    Args:
        analysis: Result of analyzing the file
        method: "client-side" or "server-side"

    Returns:
        Human-readable estimate such as "~12 seconds"
    """
    _check_method(method)

    if method == CLIENT_SIDE:
        total_seconds = analysis.pages * CLIENT_SECONDS_PER_PAGE[analysis.complexity]
    else:
        total_seconds = (
            analysis.pages * SERVER_SECONDS_PER_PAGE[analysis.complexity]
            + SERVER_TRANSFER_SECONDS
        )

    return format_duration(total_seconds)


def validate_compression_method(analysis: FileAnalysis, method: str) -> ValidationResult:
    """
    Check a file against the limits of the chosen backend.

    Callers must not start the operation when `valid` is False; a warning
    with `valid` True is advisory.
    """
    _check_method(method)

    pages = analysis.pages
    size_in_mb = analysis.size_in_mb

    if method == CLIENT_SIDE:
        if size_in_mb > CLIENT_MAX_SIZE_MB:
            return ValidationResult(
                valid=False,
                warning=f"File too large for client-side processing (max {CLIENT_MAX_SIZE_MB}MB)",
            )

        if pages > CLIENT_WARN_PAGES:
            return ValidationResult(
                valid=True,
                warning=f"Large page count ({pages} pages) may cause performance issues",
            )

        if size_in_mb > CLIENT_WARN_SIZE_MB:
            return ValidationResult(
                valid=True,
                warning=f"Large file ({size_in_mb:.1f}MB) may take significant time to process",
            )
    else:
        if size_in_mb > SERVER_MAX_SIZE_MB:
            return ValidationResult(
                valid=False,
                warning=f"File too large for server processing (max {SERVER_MAX_SIZE_MB}MB)",
            )

    return ValidationResult(valid=True)


def get_compression_method_explanation(decision: CompressionDecision) -> MethodExplanation:
    """Describe the trade-offs of the backend a decision picked."""
    if decision.method == CLIENT_SIDE:
        return MethodExplanation(
            title="Client-Side Processing",
            description="Your PDF will be processed locally on your device",
            pros=[
                "Complete privacy - files never leave your device",
                "No upload time required",
                "Works offline",
                "No file size limits from server",
            ],
            cons=[
                "Processing speed depends on your device",
                "Only images and document structure are optimized",
                "Large files may take a long time",
                "Limited compression algorithms",
            ],
        )

    return MethodExplanation(
        title="Server-Side Processing",
        description="Your PDF will be processed by background workers",
        pros=[
            "Much faster processing (5-10x speed)",
            "Advanced compression algorithms",
            "Preserves text searchability",
            "Reliable for large files",
            "Works on all devices",
        ],
        cons=[
            "Requires file upload",
            "Files temporarily stored on server",
            "Requires internet connection",
            "Upload time for large files",
        ],
    )
