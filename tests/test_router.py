import pytest

from convertmorph.analyzer import FileAnalysis
from convertmorph.router import (
    CLIENT_SIDE,
    SERVER_SIDE,
    choose_compression_method,
    estimate_processing_time,
    get_compression_method_explanation,
    validate_compression_method,
)


def make_analysis(pages=10, size_in_mb=1.0, image_heavy=False, text_heavy=False, complexity="low"):
    return FileAnalysis(
        pages=pages,
        size_in_mb=size_in_mb,
        is_image_heavy=image_heavy,
        is_text_heavy=text_heavy,
        complexity=complexity,
    )


def test_large_file_goes_to_server():
    decision = choose_compression_method(make_analysis(pages=10, size_in_mb=80))
    assert decision.method == SERVER_SIDE
    assert decision.reason.startswith("Large file")


def test_small_image_heavy_file_stays_local():
    analysis = make_analysis(pages=5, size_in_mb=2, image_heavy=True, complexity="high")
    assert choose_compression_method(analysis).method == CLIENT_SIDE


def test_privacy_preference_overrides_size():
    decision = choose_compression_method(make_analysis(pages=5000, size_in_mb=400), "privacy")
    assert decision.method == CLIENT_SIDE
    assert "privacy" in decision.reason


def test_performance_preference_overrides_small_file():
    decision = choose_compression_method(make_analysis(pages=2, size_in_mb=0.1), "performance")
    assert decision.method == SERVER_SIDE


@pytest.mark.parametrize("preference", [None, "auto", "quality"])
def test_automatic_preferences_use_rules(preference):
    decision = choose_compression_method(make_analysis(pages=10, size_in_mb=80), preference)
    assert decision.reason.startswith("Large file")


def test_unknown_preference_raises():
    with pytest.raises(ValueError):
        choose_compression_method(make_analysis(), "speed")


def test_page_count_edge_at_one_hundred():
    at_limit = choose_compression_method(make_analysis(pages=100, size_in_mb=1))
    assert not at_limit.reason.startswith("High page count")

    over_limit = choose_compression_method(make_analysis(pages=101, size_in_mb=1))
    assert over_limit.method == SERVER_SIDE
    assert over_limit.reason.startswith("High page count")


def test_very_large_page_count_edge():
    assert choose_compression_method(make_analysis(pages=1000)).reason.startswith("High page count")
    assert choose_compression_method(make_analysis(pages=1001)).reason.startswith("Large file")


def test_size_edge_at_fifty_mb():
    analysis = make_analysis(pages=10, size_in_mb=50, image_heavy=True, complexity="high")
    decision = choose_compression_method(analysis)
    assert decision.method == CLIENT_SIDE
    assert decision.reason.startswith("Image-heavy")


def test_image_heavy_at_one_hundred_pages_stays_local():
    analysis = make_analysis(pages=100, size_in_mb=49, image_heavy=True, complexity="high")
    assert choose_compression_method(analysis).method == CLIENT_SIDE


def test_text_heavy_many_pages_goes_to_server():
    decision = choose_compression_method(make_analysis(pages=51, size_in_mb=1, text_heavy=True))
    assert decision.method == SERVER_SIDE
    assert "searchability" in decision.reason


def test_text_heavy_fifty_pages_falls_through_to_default():
    decision = choose_compression_method(make_analysis(pages=50, size_in_mb=1, text_heavy=True))
    assert decision.method == SERVER_SIDE
    assert decision.reason.startswith("Default")


def test_small_file_edges():
    assert choose_compression_method(make_analysis(pages=49, size_in_mb=9.9)).method == CLIENT_SIDE
    assert choose_compression_method(make_analysis(pages=49, size_in_mb=10)).method == SERVER_SIDE
    assert choose_compression_method(make_analysis(pages=50, size_in_mb=1)).method == SERVER_SIDE


def test_decision_is_deterministic():
    analysis = make_analysis(pages=30, size_in_mb=4, complexity="medium")
    first = choose_compression_method(analysis, "auto")
    second = choose_compression_method(analysis, "auto")
    assert first == second


def test_decision_fields_populated():
    decision = choose_compression_method(make_analysis())
    assert decision.reason
    assert decision.recommendation
    assert decision.estimated_time.startswith("~")


@pytest.mark.parametrize(
    "pages, complexity, method, expected",
    [
        (10, "low", CLIENT_SIDE, "~1 seconds"),
        (500, "medium", CLIENT_SIDE, "~2 minutes"),
        (950, "high", CLIENT_SIDE, "~10 minutes"),
        (10000, "high", CLIENT_SIDE, "~2 hours"),
        (10, "low", SERVER_SIDE, "~6 seconds"),
        (1000, "high", SERVER_SIDE, "~2 minutes"),
        (200000, "high", SERVER_SIDE, "~6 hours"),
    ],
)
def test_estimate_processing_time(pages, complexity, method, expected):
    analysis = make_analysis(pages=pages, complexity=complexity)
    assert estimate_processing_time(analysis, method) == expected


def test_client_side_is_slower_than_server_side():
    analysis = make_analysis(pages=650, complexity="high")
    assert estimate_processing_time(analysis, CLIENT_SIDE) == "~7 minutes"
    assert estimate_processing_time(analysis, SERVER_SIDE) == "~2 minutes"


def test_estimate_rejects_unknown_method():
    with pytest.raises(ValueError):
        estimate_processing_time(make_analysis(), "cloud")


def test_validation_limits():
    analysis = make_analysis(pages=10, size_in_mb=150)
    assert validate_compression_method(analysis, CLIENT_SIDE).valid is False
    assert validate_compression_method(analysis, SERVER_SIDE).valid is True


def test_validation_warnings_for_client_side():
    many_pages = validate_compression_method(make_analysis(pages=2001), CLIENT_SIDE)
    assert many_pages.valid
    assert "2001 pages" in many_pages.warning

    large = validate_compression_method(make_analysis(size_in_mb=60), CLIENT_SIDE)
    assert large.valid
    assert "60.0MB" in large.warning

    ok = validate_compression_method(make_analysis(), CLIENT_SIDE)
    assert ok.valid
    assert ok.warning is None


def test_server_side_size_limit():
    result = validate_compression_method(make_analysis(size_in_mb=501), SERVER_SIDE)
    assert not result.valid
    assert "500MB" in result.warning


def test_explanation_matches_method():
    local = get_compression_method_explanation(choose_compression_method(make_analysis(), "privacy"))
    remote = get_compression_method_explanation(choose_compression_method(make_analysis(), "performance"))

    assert local.title == "Client-Side Processing"
    assert remote.title == "Server-Side Processing"
    assert local.pros and local.cons
    assert remote.to_dict()["pros"] == remote.pros
