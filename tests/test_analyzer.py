import pytest

from convertmorph.analyzer import FileAnalysis, PDFAnalyzer, analyze_pdf

MB = 1024 * 1024


def test_text_pdf_is_text_heavy(text_pdf):
    analysis = PDFAnalyzer(text_pdf).analyze()

    assert analysis.pages == 5
    assert analysis.is_text_heavy
    assert not analysis.is_image_heavy
    assert analysis.complexity == "low"
    assert analysis.size_bytes == len(text_pdf)
    assert not analysis.used_fallback


def test_image_pdf_is_image_heavy(image_pdf):
    analysis = PDFAnalyzer(image_pdf).analyze()

    assert analysis.pages == 2
    assert analysis.is_image_heavy
    assert not analysis.is_text_heavy
    assert analysis.complexity == "high"


def test_unparseable_input_uses_size_heuristic():
    analysis = PDFAnalyzer(b"definitely not a pdf" * 10).analyze()

    assert analysis.used_fallback
    assert analysis.pages == 1
    assert analysis.is_text_heavy
    assert not analysis.is_image_heavy
    assert analysis.complexity == "low"


def test_fallback_thresholds_for_large_garbage():
    analysis = PDFAnalyzer(b"\x00" * (12 * MB)).analyze()

    assert analysis.used_fallback
    assert analysis.pages == 120
    assert analysis.is_image_heavy
    assert not analysis.is_text_heavy
    assert analysis.complexity == "medium"


def test_analyze_pdf_accepts_path(pdf_file):
    path = pdf_file(pages=3)
    analysis = analyze_pdf(path)

    assert isinstance(analysis, FileAnalysis)
    assert analysis.pages == 3


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        PDFAnalyzer.from_path(tmp_path / "missing.pdf")


def test_to_dict_rounds_size(text_pdf):
    data = PDFAnalyzer(text_pdf).analyze().to_dict()
    assert data["pages"] == 5
    assert data["size_in_mb"] == round(len(text_pdf) / MB, 2)
    assert data["complexity"] == "low"
