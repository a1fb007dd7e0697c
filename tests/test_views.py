import csv
import io
from datetime import datetime

from models import AnalysisResult, Resume
from views import CSV_HEADERS, compare_analyses, export_csv, filter_analyses, format_flags


def analysis(file_name, score, risk, summary="ok", flags=None, details=None):
    return AnalysisResult(
        resume=Resume(file_name=file_name),
        credibility_score=score,
        risk_level=risk,
        summary=summary,
        flags=flags or [],
        detailed_analysis=details
        or {
            "experience_consistency": "Consistent",
            "skills_alignment": "Aligned",
            "achievements_credibility": "Plausible",
            "overall_authenticity": "Authentic",
        },
        created_at=datetime(2025, 12, 23, 15, 30, 0),
    )


def test_filter_by_risk_search_and_score():
    items = [
        analysis("Jane_Doe.pdf", 90, "low"),
        analysis("john-smith.docx", 60, "medium"),
        analysis("jane-backup.txt", 30, "high"),
    ]
    assert [a.file_name for a in filter_analyses(items, risk_level="high")] == ["jane-backup.txt"]
    assert [a.file_name for a in filter_analyses(items, search="JANE")] == [
        "Jane_Doe.pdf",
        "jane-backup.txt",
    ]
    assert [a.file_name for a in filter_analyses(items, min_score=50, max_score=80)] == [
        "john-smith.docx"
    ]
    assert len(filter_analyses(items, risk_level="all")) == 3


def test_compare_reports_higher_side_and_categories():
    a = analysis(
        "a.pdf",
        85,
        "low",
        flags=[{"category": "Skills", "severity": "low", "description": "x"}],
    )
    b = analysis(
        "b.pdf",
        40,
        "high",
        flags=[
            {"category": "Skills", "severity": "high", "description": "y"},
            {"category": "Timeline", "severity": "high", "description": "z"},
        ],
    )
    result = compare_analyses(a, b)

    assert result["higher"] == "A"
    assert result["score_difference"] == 45
    assert result["flag_count_a"] == 1 and result["flag_count_b"] == 2
    assert result["shared_categories"] == ["Skills"]
    assert result["only_in_a"] == []
    assert result["only_in_b"] == ["Timeline"]
    assert compare_analyses(b, a)["higher"] == "B"
    assert compare_analyses(a, a)["higher"] == "equal"


def test_flags_render_as_single_cell():
    flags = [
        {"category": "Skills", "severity": "high", "description": "Too broad"},
        {"category": "Metrics", "severity": "low", "description": "Vague"},
    ]
    assert format_flags(flags) == "[high] Skills: Too broad; [low] Metrics: Vague"


def test_csv_quotes_commas_and_quotes():
    content = export_csv([analysis("cv.pdf", 70, "medium", summary='He said, "hi"')])

    lines = content.splitlines()
    assert lines[0] == ",".join(CSV_HEADERS)
    assert '"He said, ""hi"""' in lines[1]

    rows = list(csv.reader(io.StringIO(content)))
    assert rows[1][3] == 'He said, "hi"'


def test_csv_row_layout():
    flags = [{"category": "Timeline", "severity": "medium", "description": "Gap in 2019"}]
    content = export_csv([analysis("cv.pdf", 64, "medium", summary="Line one\nline two", flags=flags)])
    rows = list(csv.reader(io.StringIO(content)))

    assert len(rows) == 2
    assert rows[1] == [
        "cv.pdf",
        "64",
        "medium",
        "Line one\nline two",
        "1",
        "[medium] Timeline: Gap in 2019",
        "Consistent",
        "Aligned",
        "Plausible",
        "Authentic",
        "2025-12-23 15:30:00",
    ]
