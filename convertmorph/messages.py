"""
Messages exchanged between the worker pool and its worker processes.

Each request variant carries only the fields its operation needs and a
`type` tag naming the operation. Workers answer with any number of progress
messages followed by exactly one complete or error message.
"""

from dataclasses import dataclass, field
from typing import ClassVar, List, Optional, Union


@dataclass(frozen=True)
class CompressRequest:
    job_id: str
    file_path: str
    quality: str  # "light", "medium", "strong"
    remove_metadata: bool = True
    optimize_images: bool = True
    subset_fonts: bool = True
    type: ClassVar[str] = "compress"


@dataclass(frozen=True)
class MergeRequest:
    job_id: str
    file_paths: List[str]
    type: ClassVar[str] = "merge"


@dataclass(frozen=True)
class SplitRequest:
    job_id: str
    file_path: str
    ranges: str  # e.g. "1-3,5,7-9"
    type: ClassVar[str] = "split"


@dataclass(frozen=True)
class ImagesToPdfRequest:
    job_id: str
    image_paths: List[str]
    mode: str  # "single" or "multiple"
    type: ClassVar[str] = "images-to-pdf"


@dataclass(frozen=True)
class PdfToImagesRequest:
    job_id: str
    file_path: str
    format: str  # "png" or "jpg"
    type: ClassVar[str] = "pdf-to-images"


WorkerRequest = Union[
    CompressRequest,
    MergeRequest,
    SplitRequest,
    ImagesToPdfRequest,
    PdfToImagesRequest,
]


@dataclass
class WorkerResult:
    """Payload of a completed job; which fields are set depends on the operation."""
    output_path: Optional[str] = None
    output_paths: Optional[List[str]] = None
    original_size: Optional[int] = None
    compressed_size: Optional[int] = None


@dataclass(frozen=True)
class ProgressResponse:
    job_id: str
    progress: int  # 0-100
    type: ClassVar[str] = "progress"


@dataclass(frozen=True)
class CompleteResponse:
    job_id: str
    data: WorkerResult = field(default_factory=WorkerResult)
    type: ClassVar[str] = "complete"


@dataclass(frozen=True)
class ErrorResponse:
    job_id: str
    error: str
    type: ClassVar[str] = "error"


WorkerResponse = Union[ProgressResponse, CompleteResponse, ErrorResponse]


# Results handed back to callers of the pool


@dataclass
class CompressOutput:
    output_path: str
    original_size: int
    compressed_size: int
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "output_path": self.output_path,
            "original_size": self.original_size,
            "compressed_size": self.compressed_size,
            "duration_ms": self.duration_ms,
        }


@dataclass
class MergeOutput:
    output_path: str
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return {"output_path": self.output_path, "duration_ms": self.duration_ms}


@dataclass
class OutputFiles:
    output_paths: List[str]
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return {"output_paths": list(self.output_paths), "duration_ms": self.duration_ms}
