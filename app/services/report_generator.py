"""
Report export for finished analyses.

    generate_markdown(result) → str     human-readable report
    generate_json(result)     → str     camelCase JSON, 2-space indent
    generate_docx(result)     → bytes   Word document with the same layout

Edge cases are grouped by category in first-seen order.
"""
from __future__ import annotations

import io
from typing import Dict, List

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt

from app.models.schemas import AnalysisResult, EdgeCase, ReportFormat

REPORT_TITLE = "PRD Edge Case Analysis Report"

MEDIA_TYPES = {
    ReportFormat.MARKDOWN: "text/markdown; charset=utf-8",
    ReportFormat.JSON: "application/json",
    ReportFormat.DOCX: (
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    ),
}

FILE_EXTENSIONS = {
    ReportFormat.MARKDOWN: "md",
    ReportFormat.JSON: "json",
    ReportFormat.DOCX: "docx",
}


def group_by_category(edge_cases: List[EdgeCase]) -> Dict[str, List[EdgeCase]]:
    grouped: Dict[str, List[EdgeCase]] = {}
    for edge_case in edge_cases:
        grouped.setdefault(edge_case.category.value, []).append(edge_case)
    return grouped


def category_title(category: str) -> str:
    return category.replace("_", " ").upper()


def _summary_lines(result: AnalysisResult) -> List[tuple]:
    summary = result.summary
    return [
        ("Total User Journeys:", str(summary.total_journeys)),
        ("Edge Cases Identified:", str(summary.total_edge_cases)),
        ("Critical Issues:", str(summary.critical_issues)),
        ("Coverage Score:", f"{summary.coverage_score}%"),
    ]


# ---------------------------------------------------------------------------
# Markdown
# ---------------------------------------------------------------------------

def generate_markdown(result: AnalysisResult) -> str:
    lines: List[str] = [f"# {REPORT_TITLE}", ""]
    lines.append(f"**Document:** {result.document_name}")
    lines.append(f"**Analyzed:** {result.analyzed_at.date().isoformat()}")
    if result.context.company:
        lines.append(f"**Company:** {result.context.company}")
    if result.context.problem_statement:
        lines.append(f"**Problem Statement:** {result.context.problem_statement}")
    if result.is_fallback:
        lines.append("")
        lines.append("> AI analysis was unavailable; this report contains demo data.")

    lines += ["", "## Executive Summary", ""]
    lines += [f"- **{label}** {value}" for label, value in _summary_lines(result)]

    lines += ["", "## User Journeys", ""]
    for journey in result.journeys:
        lines.append(f"### {journey.name}")
        lines.append(f"**User Type:** {journey.user_type}")
        lines.append(f"**Priority:** {journey.priority.value}")
        lines.append(f"**Description:** {journey.description}")
        if journey.business_impact:
            lines.append(f"**Business Impact:** {journey.business_impact}")
        lines += ["", "**Steps:**"]
        for index, step in enumerate(journey.steps, start=1):
            lines.append(f"{index}. **{step.action}:** {step.description}")
            lines.append(f"   - Expected: {step.expected_outcome}")
        lines.append("")

    lines += ["## Edge Cases & Issues", ""]
    for category, cases in group_by_category(result.edge_cases).items():
        lines += [f"### {category_title(category)}", ""]
        for edge_case in cases:
            lines.append(f"#### {edge_case.title} ({edge_case.severity.value.upper()})")
            lines += [f"**Description:** {edge_case.description}", ""]
            lines += [f"**Affected Journeys:** {', '.join(edge_case.affected_journeys)}", ""]
            lines += [f"**Recommendation:** {edge_case.recommendation}", ""]
            lines += [f"**Impact:** {edge_case.impact}", ""]
            if edge_case.questions_to_resolve:
                lines.append("**Questions to Resolve:**")
                lines += [f"- {q}" for q in edge_case.questions_to_resolve]
                lines.append("")
            lines += ["---", ""]

    return "\n".join(lines)


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------

def generate_json(result: AnalysisResult) -> str:
    return result.model_dump_json(by_alias=True, indent=2)


# ---------------------------------------------------------------------------
# DOCX
# ---------------------------------------------------------------------------

def generate_docx(result: AnalysisResult) -> bytes:
    """Render the report as a .docx file and return its bytes."""
    doc = Document()
    normal = doc.styles["Normal"]
    normal.font.name = "Calibri"
    normal.font.size = Pt(11)

    title = doc.add_heading(REPORT_TITLE, level=0)
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER

    _add_labelled(doc, "Document:", result.document_name)
    _add_labelled(doc, "Analyzed:", result.analyzed_at.date().isoformat())
    if result.context.company:
        _add_labelled(doc, "Company:", result.context.company)
    if result.context.problem_statement:
        _add_labelled(doc, "Problem Statement:", result.context.problem_statement)
    if result.is_fallback:
        note = doc.add_paragraph().add_run(
            "AI analysis was unavailable; this report contains demo data."
        )
        note.italic = True

    doc.add_heading("Executive Summary", level=1)
    for label, value in _summary_lines(result):
        _add_bullet(doc, value, bold_prefix=label)

    doc.add_heading("User Journeys", level=1)
    for journey in result.journeys:
        doc.add_heading(journey.name, level=2)
        _add_labelled(doc, "User Type:", journey.user_type)
        _add_labelled(doc, "Priority:", journey.priority.value)
        _add_labelled(doc, "Description:", journey.description)
        for index, step in enumerate(journey.steps, start=1):
            p = doc.add_paragraph(style="List Number")
            p.add_run(f"{step.action}: ").bold = True
            p.add_run(step.description)
            _add_bullet(doc, step.expected_outcome, bold_prefix="Expected:")

    doc.add_heading("Edge Cases & Issues", level=1)
    for category, cases in group_by_category(result.edge_cases).items():
        doc.add_heading(category_title(category), level=2)
        for edge_case in cases:
            doc.add_heading(
                f"{edge_case.title} ({edge_case.severity.value.upper()})", level=3
            )
            _add_labelled(doc, "Description:", edge_case.description)
            _add_labelled(doc, "Affected Journeys:", ", ".join(edge_case.affected_journeys))
            _add_labelled(doc, "Recommendation:", edge_case.recommendation)
            _add_labelled(doc, "Impact:", edge_case.impact)
            for question in edge_case.questions_to_resolve:
                _add_bullet(doc, question)

    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def _add_labelled(doc, label: str, text: str):
    p = doc.add_paragraph()
    p.add_run(label).bold = True
    p.add_run(f" {text}")
    return p


def _add_bullet(doc, text: str, bold_prefix: str = None):
    p = doc.add_paragraph(style="List Bullet")
    if bold_prefix:
        p.add_run(bold_prefix).bold = True
        p.add_run(f" {text}")
    else:
        p.add_run(text)
    return p


def render(result: AnalysisResult, fmt: ReportFormat):
    """Dispatch to the generator for *fmt*; returns str or bytes."""
    if fmt == ReportFormat.JSON:
        return generate_json(result)
    if fmt == ReportFormat.DOCX:
        return generate_docx(result)
    return generate_markdown(result)
