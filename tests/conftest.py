import io
import random

import fitz
import pytest
from PIL import Image

LINE = "The quick brown fox jumps over the lazy dog. " * 2


def build_text_pdf(pages: int = 5, title: str = "Quarterly Report", toc: bool = False) -> bytes:
    """Uncompressed text-only PDF with metadata."""
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page()
        for line in range(30):
            page.insert_text((50, 60 + line * 22), f"{i + 1}.{line} {LINE}", fontsize=9)
    doc.set_metadata({"title": title, "author": "Jane Roe", "subject": "Testing"})
    if toc:
        doc.set_toc([[1, f"Section {i + 1}", i + 1] for i in range(pages)])
    data = doc.tobytes()
    doc.close()
    return data


def noise_png(width: int, height: int, seed: int) -> bytes:
    rng = random.Random(seed)
    img = Image.frombytes("RGB", (width, height), rng.randbytes(width * height * 3))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def build_image_pdf(pages: int = 2, size: int = 600) -> bytes:
    """PDF with one large, poorly compressed image per page drawn in a small box."""
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page()
        page.insert_image(fitz.Rect(72, 72, 272, 272), stream=noise_png(size, size, seed=i))
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def text_pdf() -> bytes:
    return build_text_pdf()


@pytest.fixture
def image_pdf() -> bytes:
    return build_image_pdf()


@pytest.fixture
def pdf_file(tmp_path):
    """Write a text PDF with the given page count to tmp_path."""
    def _write(name: str = "document.pdf", pages: int = 5):
        path = tmp_path / name
        path.write_bytes(build_text_pdf(pages=pages))
        return path
    return _write


@pytest.fixture
def png_file(tmp_path):
    def _write(name: str, width: int = 120, height: int = 80, color=(200, 30, 30)):
        path = tmp_path / name
        Image.new("RGB", (width, height), color).save(path, format="PNG")
        return path
    return _write
