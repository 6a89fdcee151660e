"""In-process PDF compression engine for ConvertMorph."""

import io
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import fitz  # PyMuPDF
from PIL import Image

from .utils import calculate_compression_ratio

logger = logging.getLogger(__name__)

LEVELS = ("light", "medium", "strong")


@dataclass(frozen=True)
class LevelSettings:
    """Image settings for one compression level."""
    quality: int
    target_dpi: int
    max_dimension: int
    objects_per_tick: int


# More aggressive levels: lower quality, lower DPI, smaller images, bigger batches
LEVEL_SETTINGS = {
    "light": LevelSettings(quality=85, target_dpi=150, max_dimension=2000, objects_per_tick=50),
    "medium": LevelSettings(quality=70, target_dpi=120, max_dimension=1600, objects_per_tick=100),
    "strong": LevelSettings(quality=55, target_dpi=96, max_dimension=1200, objects_per_tick=200),
}

# Catalog entries dropped at each level (cumulative)
CATALOG_KEYS = {
    "light": ("ViewerPreferences",),
    "medium": ("ViewerPreferences", "PageLayout", "PageMode", "OpenAction"),
    "strong": (
        "ViewerPreferences", "PageLayout", "PageMode", "OpenAction",
        "Names", "Dests", "Outlines",
    ),
}

# Optional page entries dropped for medium and strong
PAGE_KEYS = ("Annots", "Group", "Thumb")

# Source DPI assumed when an image has no placement on the page
DEFAULT_SOURCE_DPI = 150


@dataclass
class CompressionOptions:
    """Caller-supplied compression settings."""
    level: str = "medium"
    remove_metadata: bool = True
    optimize_images: bool = True
    subset_fonts: bool = True

    def __post_init__(self):
        if self.level not in LEVELS:
            raise ValueError(f"Unknown compression level: {self.level!r}")

    @property
    def settings(self) -> LevelSettings:
        return LEVEL_SETTINGS[self.level]


@dataclass(frozen=True)
class SaveOptions:
    """Serialization options for the compressed document."""
    use_object_streams: bool = True
    objects_per_tick: int = 100
    add_default_page: bool = False

    @classmethod
    def for_level(cls, level: str) -> "SaveOptions":
        return cls(objects_per_tick=LEVEL_SETTINGS[level].objects_per_tick)


@dataclass
class CompressionProgress:
    """A progress update from the engine."""
    stage: str
    progress: int
    message: str


class CompressionStage:
    """Enumeration of compression stages for progress reporting."""
    LOADING = "loading"
    ANALYZING = "analyzing"
    COMPRESSING = "compressing"
    OPTIMIZING = "optimizing"
    FINALIZING = "finalizing"
    COMPLETE = "complete"


@dataclass
class CompressionResult:
    """Result of one compression run."""
    success: bool
    original_size: int
    compressed_size: int
    compression_ratio: int
    compressed_pdf: Optional[bytes] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    pages_processed: int = 0
    images_optimized: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization (without the PDF bytes)."""
        return {
            "success": self.success,
            "original_size": self.original_size,
            "compressed_size": self.compressed_size,
            "compression_ratio": self.compression_ratio,
            "pages_processed": self.pages_processed,
            "images_optimized": self.images_optimized,
            "warnings": list(self.warnings),
            "error": self.error,
        }


class PDFCompressor:
    """
    Single-threaded PDF compression pipeline.

    Stages run in a fixed order and each reports progress:
    loading, analyzing, compressing, optimizing, finalizing, complete.

    Size reductions come from:
    - Metadata removal
    - Dropping optional catalog and page entries
    - JPEG re-encoding and downscaling of embedded images
    - Font subsetting
    - Garbage collection, stream deflation and object streams on save
    """

    def __init__(
        self,
        options: Optional[CompressionOptions] = None,
        progress_callback: Optional[Callable[[CompressionProgress], None]] = None,
    ):
        """
        Initialize compressor.

        Args:
            options: Compression settings (defaults to medium)
            progress_callback: Optional callback receiving CompressionProgress updates
        """
        self.options = options or CompressionOptions()
        self.progress_callback = progress_callback
        self._last_progress = 0

    def _report_progress(self, stage: str, progress: int, message: str):
        """Report progress if callback is set; never goes backwards."""
        if progress <= self._last_progress:
            return
        self._last_progress = progress
        if self.progress_callback:
            self.progress_callback(CompressionProgress(stage, progress, message))

    def compress(self, data: bytes) -> CompressionResult:
        """
        Compress a PDF held in memory.

        Never raises; failures are returned as an unsuccessful result whose
        compressed size equals the original size.

        Args:
            data: Raw PDF bytes

        Returns:
            CompressionResult
        """
        original_size = len(data)
        level = self.options.level
        warnings: List[str] = []
        self._last_progress = 0

        doc = None
        try:
            self._report_progress(CompressionStage.LOADING, 10, "Loading PDF document...")
            doc = fitz.open(stream=data, filetype="pdf")

            self._report_progress(CompressionStage.ANALYZING, 20, "Analyzing document structure...")
            if doc.needs_pass:
                raise ValueError("PDF is encrypted")
            page_count = doc.page_count

            self._report_progress(CompressionStage.COMPRESSING, 30, "Removing metadata...")
            if self.options.remove_metadata:
                self._collect(warnings, self._remove_metadata(doc))

            self._report_progress(CompressionStage.COMPRESSING, 40, "Optimizing document structure...")
            self._collect(warnings, self._optimize_document_structure(doc, level))

            save_options = SaveOptions.for_level(level)
            images_optimized = 0
            if self.options.optimize_images:
                images_optimized = self._optimize_images(doc, save_options.objects_per_tick)
            self._report_progress(CompressionStage.COMPRESSING, 70, "Content compressed")

            self._report_progress(CompressionStage.OPTIMIZING, 80, "Removing unnecessary objects...")
            self._collect(warnings, self._remove_unnecessary_objects(doc, level))
            if self.options.subset_fonts:
                self._collect(warnings, self._subset_fonts(doc))

            self._report_progress(CompressionStage.FINALIZING, 90, "Finalizing compression...")
            compressed_pdf = self._save(doc, save_options)
        except Exception as e:
            logger.exception("PDF compression failed")
            return CompressionResult(
                success=False,
                original_size=original_size,
                compressed_size=original_size,
                compression_ratio=0,
                error=str(e) or e.__class__.__name__,
                warnings=warnings,
            )
        finally:
            if doc is not None:
                doc.close()

        compressed_size = len(compressed_pdf)

        # Output grew: keep the original document
        if compressed_size >= original_size:
            self._report_progress(
                CompressionStage.COMPLETE, 100,
                "File already optimized - no compression needed",
            )
            return CompressionResult(
                success=True,
                original_size=original_size,
                compressed_size=original_size,
                compression_ratio=0,
                compressed_pdf=bytes(data),
                warnings=warnings,
                pages_processed=page_count,
                images_optimized=images_optimized,
            )

        ratio = calculate_compression_ratio(original_size, compressed_size)
        self._report_progress(
            CompressionStage.COMPLETE, 100,
            f"Compression complete! {ratio}% reduction",
        )

        return CompressionResult(
            success=True,
            original_size=original_size,
            compressed_size=compressed_size,
            compression_ratio=ratio,
            compressed_pdf=compressed_pdf,
            warnings=warnings,
            pages_processed=page_count,
            images_optimized=images_optimized,
        )

    @staticmethod
    def _collect(warnings: List[str], warning: Optional[str]):
        if warning:
            logger.warning(warning)
            warnings.append(warning)

    # Best-effort steps return a warning string instead of failing the run

    def _remove_metadata(self, doc: fitz.Document) -> Optional[str]:
        try:
            doc.set_metadata({})
            doc.del_xml_metadata()
        except Exception as e:
            return f"Could not remove metadata: {e}"
        return None

    def _optimize_document_structure(self, doc: fitz.Document, level: str) -> Optional[str]:
        try:
            catalog = doc.pdf_catalog()
            for key in CATALOG_KEYS[level]:
                if doc.xref_get_key(catalog, key)[0] != "null":
                    doc.xref_set_key(catalog, key, "null")
        except Exception as e:
            return f"Could not optimize document structure: {e}"
        return None

    def _remove_unnecessary_objects(self, doc: fitz.Document, level: str) -> Optional[str]:
        if level == "light":
            return None

        failed = 0
        for page in doc:
            try:
                for key in PAGE_KEYS:
                    if doc.xref_get_key(page.xref, key)[0] != "null":
                        doc.xref_set_key(page.xref, key, "null")
            except Exception:
                failed += 1

        if failed:
            return f"Could not clean {failed} page(s)"
        return None

    def _subset_fonts(self, doc: fitz.Document) -> Optional[str]:
        try:
            doc.subset_fonts()
        except Exception as e:
            return f"Could not subset fonts: {e}"
        return None

    def _optimize_images(self, doc: fitz.Document, objects_per_tick: int) -> int:
        """
        Re-encode embedded images as JPEG at the level's quality and DPI.

        Progress is reported once per `objects_per_tick` images, between
        41% and 69%.

        Returns:
            Number of images replaced
        """
        settings = self.options.settings

        # Collect unique images with the page they were first seen on
        targets = []
        seen_xrefs = set()
        for page in doc:
            for img in page.get_images(full=True):
                xref = img[0]
                if xref in seen_xrefs:
                    continue
                seen_xrefs.add(xref)
                targets.append((page, xref))

        total = len(targets)
        images_optimized = 0

        for index, (page, xref) in enumerate(targets, start=1):
            try:
                if self._recompress_image(doc, page, xref, settings):
                    images_optimized += 1
            except Exception as e:
                # Some images cannot be decoded; leave them as they are
                logger.debug("Skipping image xref %d: %s", xref, e)

            if index % objects_per_tick == 0 or index == total:
                progress = 40 + max(1, int(29 * index / total))
                self._report_progress(
                    CompressionStage.COMPRESSING, progress,
                    f"Compressing images ({index}/{total})...",
                )

        return images_optimized

    def _recompress_image(
        self,
        doc: fitz.Document,
        page: fitz.Page,
        xref: int,
        settings: LevelSettings,
    ) -> bool:
        """Replace one image if the re-encoded version is smaller."""
        base_image = doc.extract_image(xref)
        if not base_image or base_image.get("smask"):
            # Soft masks carry transparency that JPEG would lose
            return False

        image_bytes = base_image["image"]
        pil_image = Image.open(io.BytesIO(image_bytes))

        if pil_image.mode == "1":
            return False
        if pil_image.mode not in ("RGB", "L"):
            pil_image = pil_image.convert("RGB")

        scale = min(1.0, settings.target_dpi / self._source_dpi(page, xref, pil_image.width))
        longest = max(pil_image.width, pil_image.height) * scale
        if longest > settings.max_dimension:
            scale *= settings.max_dimension / longest

        if scale < 1.0:
            new_size = (
                int(pil_image.width * scale),
                int(pil_image.height * scale),
            )
            if new_size[0] > 10 and new_size[1] > 10:
                pil_image = pil_image.resize(new_size, Image.Resampling.LANCZOS)

        img_buffer = io.BytesIO()
        pil_image.save(img_buffer, format="JPEG", quality=settings.quality, optimize=True)

        new_image_bytes = img_buffer.getvalue()
        if len(new_image_bytes) >= len(image_bytes):
            return False

        page.replace_image(xref, stream=new_image_bytes)
        return True

    @staticmethod
    def _source_dpi(page: fitz.Page, xref: int, width_px: int) -> float:
        """Effective resolution of an image from its widest placement on the page."""
        try:
            rects = page.get_image_rects(xref)
        except Exception:
            rects = []

        widest = max((rect.width for rect in rects), default=0)
        if widest <= 0:
            return DEFAULT_SOURCE_DPI
        return width_px / (widest / 72)

    @staticmethod
    def _save(doc: fitz.Document, save_options: SaveOptions) -> bytes:
        if save_options.add_default_page and doc.page_count == 0:
            doc.new_page()

        return doc.tobytes(
            garbage=4,  # Maximum garbage collection
            deflate=True,
            clean=True,
            deflate_images=True,
            deflate_fonts=True,
            use_objstms=1 if save_options.use_object_streams else 0,
        )


def compress_pdf(
    data: bytes,
    level: str = "medium",
    remove_metadata: bool = True,
    optimize_images: bool = True,
    subset_fonts: bool = True,
    progress_callback: Optional[Callable[[CompressionProgress], None]] = None,
) -> CompressionResult:
    """
    Convenience function to compress a PDF in memory.

    Args:
        data: Raw PDF bytes
        level: "light", "medium" or "strong"
        remove_metadata: Clear document info and XMP metadata
        optimize_images: Re-encode embedded images
        subset_fonts: Subset embedded fonts
        progress_callback: Optional progress callback

    Returns:
        CompressionResult
    """
    options = CompressionOptions(
        level=level,
        remove_metadata=remove_metadata,
        optimize_images=optimize_images,
        subset_fonts=subset_fonts,
    )
    return PDFCompressor(options, progress_callback).compress(data)
