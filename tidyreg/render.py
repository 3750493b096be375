"""
Rendering the vignette: fixed-width tables and the PDF document.

The document interleaves a text page (monospace, one paragraph per line)
with a figure page for each section.
"""

import os

from PIL import Image
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import (
    SimpleDocTemplate, Paragraph, Spacer, PageBreak, Image as RLImage,
)


def format_table(df, digits=3, max_rows=40):
    """
    Fixed-width text rendering of a DataFrame for the document pages.

    Floats are rounded to ``digits``; longer tables are cut at
    ``max_rows`` with a trailing note.
    """
    shown = df.head(max_rows)
    text = shown.to_string(
        index=False,
        na_rep="NA",
        float_format=lambda v: f"{v:.{digits}f}",
    )
    if len(df) > max_rows:
        text += f"\n... {len(df) - max_rows} more rows"
    return text


def _escape(line):
    return line.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _styles():
    styles = getSampleStyleSheet()
    code = ParagraphStyle(
        "CodeBlock", parent=styles["Normal"], fontName="Courier",
        fontSize=8, leading=10.5, spaceAfter=2, leftIndent=0,
    )
    section = ParagraphStyle(
        "SectionTitle", parent=styles["Heading1"], fontName="Helvetica-Bold",
        fontSize=14, leading=18, spaceAfter=12, textColor="#2171B5",
    )
    heading = ParagraphStyle(
        "VignetteTitle", parent=styles["Title"], fontName="Helvetica-Bold",
        fontSize=18, leading=22, spaceAfter=6,
    )
    subtitle = ParagraphStyle(
        "Subtitle", parent=styles["Normal"], fontName="Helvetica",
        fontSize=10, leading=13, spaceAfter=20, textColor="#555555",
    )
    return styles, code, section, heading, subtitle


def _text_block(story, text, code_style, spacer=6):
    # Leading spaces carry table alignment; keep them as non-breaking
    for line in text.split("\n"):
        safe = _escape(line)
        if safe.strip() == "":
            story.append(Spacer(1, spacer))
        else:
            stripped = safe.lstrip(" ")
            pad = "&nbsp;" * (len(safe) - len(stripped))
            story.append(Paragraph(pad + stripped.replace("  ", " &nbsp;"),
                                   code_style))


def render_pdf(path, title, subtitle, intro_lines, sections, summary=None):
    """
    Build the vignette PDF.

    Parameters
    ----------
    path : str
        Output PDF path.
    title, subtitle : str
    intro_lines : list of str
        Cover page lines ("" for a blank spacer).
    sections : list of (text, figure_path or None)
        The first line of each text is the section title.
    summary : str, optional
        Closing page text.

    Returns
    -------
    str
        Absolute path of the written PDF.
    """
    doc = SimpleDocTemplate(path, pagesize=letter,
                            leftMargin=0.75 * inch, rightMargin=0.75 * inch,
                            topMargin=0.75 * inch, bottomMargin=0.75 * inch)
    styles, code_style, section_style, heading_style, subtitle_style = _styles()

    story = [Paragraph(_escape(title), heading_style),
             Paragraph(_escape(subtitle), subtitle_style),
             Spacer(1, 12)]
    for line in intro_lines:
        if line == "":
            story.append(Spacer(1, 6))
        else:
            story.append(Paragraph(_escape(line), styles["Normal"]))
    story.append(PageBreak())

    page_w = letter[0] - 1.5 * inch
    max_h = letter[1] - 1.5 * inch
    for text, fig_path in sections:
        lines = text.strip().split("\n")
        story.append(Paragraph(_escape(lines[0]).replace("--", "&mdash;"),
                               section_style))
        _text_block(story, "\n".join(lines[1:]), code_style)
        story.append(PageBreak())

        if fig_path is None:
            continue
        # Scale the PNG to the page width, capping the height
        with Image.open(fig_path) as img:
            iw, ih = img.size
        aspect = ih / iw
        display_w = page_w
        display_h = display_w * aspect
        if display_h > max_h:
            display_h = max_h
            display_w = display_h / aspect
        story.append(RLImage(fig_path, width=display_w, height=display_h))
        story.append(PageBreak())

    if summary:
        story.append(Paragraph("Summary", section_style))
        story.append(Spacer(1, 8))
        _text_block(story, summary.strip(), code_style, spacer=4)

    doc.build(story)
    return os.path.abspath(path)
