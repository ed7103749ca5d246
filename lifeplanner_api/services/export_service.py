"""
PDF export of a plan: title page with the executive summary, then one block per section.
"""
import io
import logging
from typing import Iterable, Optional, Tuple
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer

logger = logging.getLogger(__name__)

# 40pt margins all round
PAGE_MARGIN = 40
EXECUTIVE_SUMMARY_HEADING = "Resumen Ejecutivo:"


def _markup(text: str) -> str:
    """Escape text for a reportlab Paragraph, keeping line breaks"""
    return escape(text or "").replace("\n", "<br/>")


def export_filename(plan_id: int) -> str:
    return f"plan-{plan_id}.pdf"


def render_plan_pdf(title: Optional[str], executive_summary: str,
                    sections: Iterable[Tuple[str, str]], plan_id: Optional[int] = None) -> bytes:
    """Render the plan and return the PDF bytes.

    ``sections`` is a sequence of ``(section_type, content)`` pairs, rendered in the
    order given.
    """
    buffer = io.BytesIO()
    display_title = title or (f"Plan {plan_id}" if plan_id is not None else "Plan")
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=PAGE_MARGIN,
        rightMargin=PAGE_MARGIN,
        topMargin=PAGE_MARGIN,
        bottomMargin=PAGE_MARGIN,
        title=display_title,
    )
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle("PlanTitle", parent=styles["Title"], fontSize=20, leading=24, spaceAfter=20)
    heading_style = ParagraphStyle("SectionHeading", parent=styles["Heading2"], fontSize=16, spaceAfter=8)
    body_style = ParagraphStyle("Body", parent=styles["Normal"], fontSize=12, leading=16)

    story = [
        Paragraph(_markup(display_title), title_style),
        Paragraph(EXECUTIVE_SUMMARY_HEADING, styles["Heading3"]),
        Paragraph(_markup(executive_summary), body_style),
    ]

    sections = list(sections)
    # Sections always start on a new page, even when there are none
    story.append(PageBreak())
    for section_type, content in sections:
        story.append(Paragraph(_markup(section_type), heading_style))
        story.append(Paragraph(_markup(content), body_style))
        story.append(Spacer(1, 16))

    doc.build(story)
    logger.debug("Rendered PDF for %r with %d sections", display_title, len(sections))
    return buffer.getvalue()
