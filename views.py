"""
views.py — History filtering, pairwise comparison and CSV export over stored analyses.
"""

import csv
import io
from typing import Iterable, List, Optional

from models import AnalysisResult

CSV_HEADERS = [
    "File Name",
    "Credibility Score",
    "Risk Level",
    "Summary",
    "Flag Count",
    "Flags",
    "Experience Consistency",
    "Skills Alignment",
    "Achievements Credibility",
    "Overall Authenticity",
    "Analysis Date",
]

DETAIL_FIELDS = [
    "experience_consistency",
    "skills_alignment",
    "achievements_credibility",
    "overall_authenticity",
]


def filter_analyses(
    analyses: Iterable[AnalysisResult],
    risk_level: Optional[str] = None,
    search: Optional[str] = None,
    min_score: Optional[int] = None,
    max_score: Optional[int] = None,
) -> List[AnalysisResult]:
    needle = search.lower() if search else ""
    selected = []
    for analysis in analyses:
        if risk_level and risk_level != "all" and analysis.risk_level != risk_level:
            continue
        if needle and needle not in analysis.file_name.lower():
            continue
        if min_score is not None and analysis.credibility_score < min_score:
            continue
        if max_score is not None and analysis.credibility_score > max_score:
            continue
        selected.append(analysis)
    return selected


def _categories(analysis: AnalysisResult) -> List[str]:
    seen = []
    for flag in analysis.flags or []:
        category = flag.get("category")
        if category and category not in seen:
            seen.append(category)
    return seen


def compare_analyses(a: AnalysisResult, b: AnalysisResult) -> dict:
    if a.credibility_score > b.credibility_score:
        higher = "A"
    elif a.credibility_score < b.credibility_score:
        higher = "B"
    else:
        higher = "equal"

    categories_a = _categories(a)
    categories_b = _categories(b)
    return {
        "analysis_a": a,
        "analysis_b": b,
        "score_difference": abs(a.credibility_score - b.credibility_score),
        "higher": higher,
        "flag_count_a": len(a.flags or []),
        "flag_count_b": len(b.flags or []),
        "shared_categories": [c for c in categories_a if c in categories_b],
        "only_in_a": [c for c in categories_a if c not in categories_b],
        "only_in_b": [c for c in categories_b if c not in categories_a],
    }


def format_flags(flags) -> str:
    return "; ".join(
        f"[{flag.get('severity')}] {flag.get('category')}: {flag.get('description')}"
        for flag in flags or []
    )


def analysis_row(analysis: AnalysisResult) -> list:
    details = analysis.detailed_analysis or {}
    created = analysis.created_at.strftime("%Y-%m-%d %H:%M:%S") if analysis.created_at else ""
    return [
        analysis.file_name,
        analysis.credibility_score,
        analysis.risk_level,
        analysis.summary or "",
        len(analysis.flags or []),
        format_flags(analysis.flags),
        *(details.get(name) or "" for name in DETAIL_FIELDS),
        created,
    ]


def export_csv(analyses: Iterable[AnalysisResult]) -> str:
    """Fields with commas, quotes or newlines are quoted and inner quotes doubled."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for analysis in analyses:
        writer.writerow(analysis_row(analysis))
    return buffer.getvalue()
