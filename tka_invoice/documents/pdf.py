"""
tka_invoice/documents/pdf.py

Invoice PDF output (reportlab platypus).

Layout, top to bottom:
- letterhead: company name, INVOICE title, tagline
- number / date on the left, office address and phones on the right
- "To:" client block
- grouped line table (No., Expatriat, Keterangan, Harga), header repeated
  on every page
- Sub Total / PPN / Total, then the amount in words
- notes, signature block, bank information
"""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Iterable
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..errors import InvalidArgument
from ..models import Invoice
from ..settings_store import Letterhead, letterhead
from .printing import TABLE_HEADERS, InvoiceDocument, build_document

logger = logging.getLogger(__name__)

MARGIN = 28
COL_WIDTHS = [32, 150, 245, 100]


def _styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    normal = base["Normal"]
    normal.fontSize = 9
    normal.leading = 11
    return {
        "normal": normal,
        "small": ParagraphStyle("small", parent=normal, fontSize=8, leading=10),
        "right": ParagraphStyle("right", parent=normal, alignment=TA_RIGHT),
        "center": ParagraphStyle("center", parent=normal, alignment=TA_CENTER),
        "company": ParagraphStyle(
            "company", parent=base["Title"], fontSize=14, leading=17, spaceAfter=2
        ),
        "title": ParagraphStyle("title", parent=base["Title"], fontSize=16, leading=19, spaceAfter=2),
        "tagline": ParagraphStyle("tagline", parent=normal, alignment=TA_CENTER, spaceAfter=10),
    }


def _p(text: str, style: ParagraphStyle) -> Paragraph:
    """Paragraph from plain text; newlines become line breaks."""
    return Paragraph(escape(text or "").replace("\n", "<br/>"), style)


def _header(doc: InvoiceDocument, st: dict) -> list:
    head = doc.letterhead
    story = [
        _p(head.company_name, st["company"]),
        _p("INVOICE", st["title"]),
    ]
    if head.company_tagline:
        story.append(_p(head.company_tagline, st["tagline"]))

    left = [_p(f"No: {doc.invoice_number}", st["normal"]), _p(doc.date_line, st["normal"])]
    right = [Paragraph("<b>Kantor:</b>", st["right"])]
    right.append(_p(head.company_address, st["right"]))
    if head.company_phone:
        right.append(_p(f"Telp: {head.company_phone}", st["right"]))
    if head.company_phone2:
        right.append(_p(head.company_phone2, st["right"]))

    details = Table([[left, right]], colWidths=[270, 257])
    details.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
    story += [details, Spacer(1, 8)]

    story.append(Paragraph("<b>To:</b>", st["normal"]))
    story.append(Paragraph(f"<b>{escape(doc.company_name)}</b>", st["normal"]))
    story.append(_p(doc.company_address, st["normal"]))
    story.append(Spacer(1, 10))
    return story


def _lines_table(doc: InvoiceDocument, st: dict) -> Table:
    data = [list(TABLE_HEADERS)]
    for row in doc.rows:
        data.append(
            [
                _p(str(row.number), st["center"]),
                _p("\n".join(row.workers), st["normal"]),
                _p("\n".join(row.descriptions), st["normal"]),
                _p(row.amount, st["right"]),
            ]
        )

    tbl = Table(data, repeatRows=1, colWidths=COL_WIDTHS)
    tbl.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, 0), 9),
                ("ALIGN", (0, 0), (-1, 0), "CENTER"),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                ("VALIGN", (0, 1), (-1, -1), "TOP"),
            ]
        )
    )
    return tbl


def _summary(doc: InvoiceDocument, st: dict) -> list:
    data = [
        [_p("Sub Total:", st["right"]), _p(doc.subtotal, st["right"])],
        [_p(doc.vat_label, st["right"]), _p(doc.vat_amount, st["right"])],
        [Paragraph("<b>Total:</b>", st["right"]), Paragraph(f"<b>{escape(doc.total)}</b>", st["right"])],
    ]
    tbl = Table(data, colWidths=[sum(COL_WIDTHS) - COL_WIDTHS[-1], COL_WIDTHS[-1]])
    tbl.setStyle(TableStyle([("LINEABOVE", (0, 2), (-1, 2), 0.5, colors.black)]))
    return [tbl, Spacer(1, 8), _p(f"Terbilang: {doc.words}", st["normal"]), Spacer(1, 16)]


def _footer(doc: InvoiceDocument, st: dict) -> list:
    notes = _p(doc.notes, st["small"]) if doc.notes else ""
    signature = [_p("_________________", st["right"]), _p("Authorized Signature", st["right"])]
    footer = Table(
        [[notes, Paragraph(f"<b>{escape(doc.letterhead.company_name)}</b>", st["center"]), signature]],
        colWidths=[180, 170, 177],
    )
    footer.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))

    story = [footer]
    if doc.bank_lines:
        story += [Spacer(1, 10), Paragraph("<b>BANK INFORMATION:</b>", st["normal"])]
        story += [_p(line, st["normal"]) for line in doc.bank_lines]
    return story


def _invoice_story(doc: InvoiceDocument, st: dict) -> list:
    story = _header(doc, st)
    story.append(_lines_table(doc, st))
    story.append(Spacer(1, 8))
    story += _summary(doc, st)
    story += _footer(doc, st)
    return story


def _render(story: list, title: str) -> bytes:
    buf = BytesIO()
    pdf = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=MARGIN,
        rightMargin=MARGIN,
        topMargin=MARGIN,
        bottomMargin=MARGIN,
        title=title,
    )
    pdf.build(story)
    return buf.getvalue()


def build_invoice_pdf(invoice: Invoice, head: Letterhead | None = None) -> bytes:
    doc = build_document(invoice, head)
    data = _render(_invoice_story(doc, _styles()), doc.invoice_number)
    logger.info("Rendered PDF for invoice %s (%s bytes)", doc.invoice_number, len(data))
    return data


def build_batch_pdf(invoices: Iterable[Invoice]) -> bytes:
    """One PDF with each invoice starting on a new page."""
    head = letterhead()
    st = _styles()
    story: list = []
    count = 0
    for invoice in invoices:
        if story:
            story.append(PageBreak())
        story += _invoice_story(build_document(invoice, head), st)
        count += 1

    if not story:
        raise InvalidArgument("Tidak ada invoice untuk dicetak")
    logger.info("Rendered batch PDF with %s invoices", count)
    return _render(story, "Invoices")
