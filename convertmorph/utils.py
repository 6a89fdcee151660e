"""Utility functions shared by the analyzer, engine and worker."""

import math
import re
from pathlib import Path
from typing import List, Union

BYTES_PER_MB = 1024 * 1024


def format_size(size_bytes: int) -> str:
    """
    Format bytes to human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Human-readable size string
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.2f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.2f} GB"


def calculate_compression_ratio(original_size: int, compressed_size: int) -> int:
    """
    Calculate the size reduction as a whole percentage.

    Args:
        original_size: Original file size in bytes
        compressed_size: Compressed file size in bytes

    Returns:
        Reduction in percent, clamped to 0..100 (a larger output reports 0)
    """
    if original_size <= 0:
        return 0
    reduction = (original_size - compressed_size) / original_size * 100
    # Half-up rounding, never negative
    return min(100, int(math.floor(max(0.0, reduction) + 0.5)))


def format_duration(total_seconds: float, allow_hours: bool = True) -> str:
    """Format an estimated duration as "~N seconds|minutes|hours", rounded up."""
    if total_seconds < 60:
        return f"~{math.ceil(total_seconds)} seconds"
    if total_seconds < 3600 or not allow_hours:
        return f"~{math.ceil(total_seconds / 60)} minutes"
    return f"~{math.ceil(total_seconds / 3600)} hours"


def parse_page_ranges(ranges: str) -> List[int]:
    """
    Expand a page range string into zero-based page indices.

    Args:
        ranges: Comma-separated pages and ranges, e.g. "1-3,5,7-9"

    Returns:
        Page indices in the order given (duplicates kept)

    Raises:
        ValueError: If a part is not a page number or a start-end range
    """
    indices = []
    for part in ranges.split(","):
        part = part.strip()
        if not part:
            continue

        match = re.match(r'^(\d+)\s*(?:-\s*(\d+))?$', part)
        if not match:
            raise ValueError(f"Invalid page range: {part!r}. Use formats like '1-3,5'")

        start = int(match.group(1))
        end = int(match.group(2)) if match.group(2) else start
        if start < 1 or end < start:
            raise ValueError(f"Invalid page range: {part!r}")

        indices.extend(range(start - 1, end))

    if not indices:
        raise ValueError("No pages selected")
    return indices


def get_output_path(
    input_path: Union[str, Path],
    suffix: str = "_compressed",
    extension: str = ".pdf",
) -> Path:
    """
    Determine an output file path beside the input.

    Args:
        input_path: Input file path
        suffix: Suffix added to the input stem
        extension: Extension of the output file

    Returns:
        Output file path
    """
    input_path = Path(input_path)
    return input_path.parent / f"{input_path.stem}{suffix}{extension}"
