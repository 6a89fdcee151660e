import json

import fitz
from click.testing import CliRunner

from cli import cli


def test_analyze_json(pdf_file):
    path = pdf_file(pages=3)

    result = CliRunner().invoke(cli, ["analyze", str(path), "--json-output"])

    assert result.exit_code == 0, result.output
    body = json.loads(result.output)
    assert body["analysis"]["pages"] == 3
    assert body["decision"]["method"] == "client-side"
    assert body["validation"] == {"valid": True, "warning": None}


def test_analyze_table(pdf_file):
    result = CliRunner().invoke(cli, ["analyze", str(pdf_file()), "--preference", "performance"])

    assert result.exit_code == 0, result.output
    assert "server-side" in result.output


def test_compress_client_side(pdf_file, tmp_path):
    path = pdf_file()
    output = tmp_path / "small.pdf"

    result = CliRunner().invoke(cli, [
        "compress", str(path),
        "--level", "strong",
        "--method", "client-side",
        "--output", str(output),
        "--json-output",
    ])

    assert result.exit_code == 0, result.output
    report = json.loads(result.output)
    assert report["success"] is True
    assert report["method"] == "client-side"
    assert report["output_path"] == str(output)
    assert report["compressed_size"] < report["original_size"]
    with fitz.open(output) as doc:
        assert doc.page_count == 5


def test_compress_default_output_path(pdf_file):
    path = pdf_file()

    result = CliRunner().invoke(cli, ["compress", str(path), "--method", "client-side"])

    assert result.exit_code == 0, result.output
    assert (path.parent / "document_compressed.pdf").exists()


def test_split_rejects_bad_ranges(pdf_file):
    result = CliRunner().invoke(cli, ["split", str(pdf_file()), "--ranges", "two"])

    assert result.exit_code == 1
    assert "Split failed" in result.output


def test_split_with_no_matching_pages(pdf_file):
    result = CliRunner().invoke(cli, ["split", str(pdf_file(pages=3)), "--ranges", "50"])

    assert result.exit_code == 0, result.output
    assert "No output files were written" in result.output
    assert "0 file(s) written" in result.output


def test_compress_server_side_honours_options(pdf_file, tmp_path):
    output = tmp_path / "kept.pdf"

    result = CliRunner().invoke(cli, [
        "compress", str(pdf_file()),
        "--method", "server-side",
        "--keep-metadata",
        "--output", str(output),
        "--json-output",
    ])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["method"] == "server-side"
    with fitz.open(output) as doc:
        assert doc.metadata["title"] == "Quarterly Report"
