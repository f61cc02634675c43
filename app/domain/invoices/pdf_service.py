"""
Invoice PDF generation
Renders an invoice with sender, recipient, lines, VAT summary and payment details
"""

import io
import logging
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ...models import Company, Invoice
from ...utils.sanitization import sanitize_string
from ..contracts.pdf_service import format_amount

logger = logging.getLogger(__name__)

LABELS = {
    "sv": {
        "title": "FAKTURA",
        "invoice_number": "Fakturanummer",
        "invoice_date": "Fakturadatum",
        "due_date": "Förfallodatum",
        "payment_terms": "Betalningsvillkor",
        "days": "dagar",
        "reference": "Er referens",
        "recipient": "Faktureras till",
        "org_number": "Org.nr",
        "description": "Beskrivning",
        "vat": "Moms",
        "amount": "Belopp",
        "subtotal": "Summa exkl. moms",
        "total": "Att betala",
        "bank_account": "Bankgiro/konto",
        "payment_reference": "Ange fakturanummer vid betalning",
    },
    "en": {
        "title": "INVOICE",
        "invoice_number": "Invoice number",
        "invoice_date": "Invoice date",
        "due_date": "Due date",
        "payment_terms": "Payment terms",
        "days": "days",
        "reference": "Your reference",
        "recipient": "Bill to",
        "org_number": "Reg. no",
        "description": "Description",
        "vat": "VAT",
        "amount": "Amount",
        "subtotal": "Subtotal excl. VAT",
        "total": "Amount due",
        "bank_account": "Bank account",
        "payment_reference": "Please quote the invoice number with your payment",
    },
}


def invoice_filename(invoice: Invoice) -> str:
    return f"Faktura-{invoice.invoice_number}.pdf"


class InvoicePDFService:
    """Generate invoice PDFs"""

    def __init__(self, invoice: Invoice, company: Optional[Company] = None, locale: str = "sv"):
        self.invoice = invoice
        self.client = invoice.client
        self.company = company
        language = (self.client.invoice_language if self.client else None) or locale
        self.labels = LABELS.get(language, LABELS["sv"])

        self.page_width, self.page_height = A4
        self.margin = 0.75 * inch

        self.primary = colors.HexColor("#111827")
        self.secondary = colors.HexColor("#6b7280")
        self.border = colors.HexColor("#e5e7eb")

    def render(self) -> bytes:
        invoice = self.invoice
        labels = self.labels
        logger.info(f"📄 Rendering PDF for invoice #{invoice.invoice_number}")

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=self.margin,
            leftMargin=self.margin,
            topMargin=self.margin,
            bottomMargin=self.margin,
            title=f"{labels['title'].title()} {invoice.invoice_number}",
            invariant=True,
        )

        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "InvoiceTitle", parent=styles["Heading1"], fontSize=22, textColor=self.primary, spaceAfter=2
        )
        body_style = ParagraphStyle(
            "InvoiceBody", parent=styles["Normal"], fontSize=10, leading=14, textColor=self.primary
        )
        muted_style = ParagraphStyle(
            "InvoiceMuted", parent=body_style, fontSize=8, textColor=self.secondary
        )

        story = [
            Table(
                [[self._sender_cell(title_style, body_style, muted_style), self._meta_table()]],
                colWidths=[3.2 * inch, 3.3 * inch],
                style=TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]),
            ),
            Spacer(1, 0.35 * inch),
            Paragraph(labels["recipient"].upper(), muted_style),
        ]
        for line in self._recipient_lines():
            story.append(Paragraph(line, body_style))

        story.append(Spacer(1, 0.35 * inch))
        story.append(self._lines_table())
        story.append(Spacer(1, 0.2 * inch))
        story.append(self._totals_table())

        story.append(Spacer(1, 0.4 * inch))
        story.extend(self._payment_details(body_style, muted_style))

        doc.build(story, onFirstPage=self._add_footer, onLaterPages=self._add_footer)
        pdf_bytes = buffer.getvalue()
        buffer.close()

        logger.info(f"✅ Generated invoice PDF ({len(pdf_bytes)} bytes)")
        return pdf_bytes

    def _sender_cell(self, title_style, body_style, muted_style) -> list:
        cell = [Paragraph(self.labels["title"], title_style)]
        if self.company:
            cell.append(Paragraph(f"<b>{sanitize_string(self.company.name)}</b>", body_style))
            if self.company.address:
                cell.append(Paragraph(sanitize_string(self.company.address), muted_style))
            if self.company.email:
                cell.append(Paragraph(sanitize_string(self.company.email), muted_style))
        return cell

    def _meta_table(self) -> Table:
        invoice = self.invoice
        labels = self.labels
        rows = [
            [labels["invoice_number"], str(invoice.invoice_number)],
            [labels["invoice_date"], invoice.invoice_date.isoformat()],
            [labels["due_date"], invoice.due_date.isoformat()],
            [labels["payment_terms"], f"{(invoice.due_date - invoice.invoice_date).days} {labels['days']}"],
        ]
        if self.client and self.client.reference_person:
            rows.append([labels["reference"], sanitize_string(self.client.reference_person)])

        table = Table(rows, colWidths=[1.5 * inch, 1.8 * inch])
        table.setStyle(
            TableStyle(
                [
                    ("FONT", (0, 0), (0, -1), "Helvetica", 9),
                    ("FONT", (1, 0), (1, -1), "Helvetica-Bold", 9),
                    ("TEXTCOLOR", (0, 0), (0, -1), self.secondary),
                    ("ALIGN", (1, 0), (1, -1), "RIGHT"),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
                ]
            )
        )
        return table

    def _recipient_lines(self) -> list[str]:
        client = self.client
        if client is None:
            return []
        lines = [f"<b>{sanitize_string(client.name)}</b>"]
        if client.address:
            lines.extend(sanitize_string(part.strip()) for part in client.address.split(",") if part.strip())
        if client.org_number:
            lines.append(f"{self.labels['org_number']} {sanitize_string(client.org_number)}")
        if client.vat_number:
            lines.append(f"VAT {sanitize_string(client.vat_number)}")
        return lines

    def _lines_table(self) -> Table:
        invoice = self.invoice
        labels = self.labels
        rows = [[labels["description"], labels["vat"], labels["amount"]]]
        for line in invoice.invoice_lines:
            rows.append(
                [
                    sanitize_string(line.description),
                    f"{line.vat_rate:g}%",
                    format_amount(line.amount, invoice.currency),
                ]
            )
        if len(rows) == 1:
            # Imported invoices carry totals only
            rows.append(["", f"{invoice.vat_rate:g}%", format_amount(invoice.subtotal, invoice.currency)])

        table = Table(rows, colWidths=[4.0 * inch, 0.8 * inch, 1.7 * inch], repeatRows=1)
        table.setStyle(
            TableStyle(
                [
                    ("FONT", (0, 0), (-1, 0), "Helvetica-Bold", 9),
                    ("FONT", (0, 1), (-1, -1), "Helvetica", 10),
                    ("TEXTCOLOR", (0, 0), (-1, 0), self.secondary),
                    ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
                    ("LINEBELOW", (0, 0), (-1, 0), 0.75, self.primary),
                    ("LINEBELOW", (0, 1), (-1, -1), 0.5, self.border),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
                ]
            )
        )
        return table

    def _totals_table(self) -> Table:
        invoice = self.invoice
        labels = self.labels
        table = Table(
            [
                [labels["subtotal"], format_amount(invoice.subtotal, invoice.currency)],
                [f"{labels['vat']} {invoice.vat_rate:g}%", format_amount(invoice.vat_amount, invoice.currency)],
                [labels["total"], format_amount(invoice.total, invoice.currency)],
            ],
            colWidths=[4.8 * inch, 1.7 * inch],
        )
        table.setStyle(
            TableStyle(
                [
                    ("FONT", (0, 0), (-1, 1), "Helvetica", 10),
                    ("FONT", (0, 2), (-1, 2), "Helvetica-Bold", 12),
                    ("ALIGN", (0, 0), (-1, -1), "RIGHT"),
                    ("LINEABOVE", (0, 2), (-1, 2), 0.75, self.primary),
                    ("TOPPADDING", (0, 2), (-1, 2), 8),
                ]
            )
        )
        return table

    def _payment_details(self, body_style, muted_style) -> list:
        labels = self.labels
        details = []
        if self.company and self.company.bank_account:
            details.append(
                Paragraph(
                    f"{labels['bank_account']}: <b>{sanitize_string(self.company.bank_account)}</b>",
                    body_style,
                )
            )
        details.append(Paragraph(labels["payment_reference"], muted_style))
        return details

    def _add_footer(self, canvas_obj, doc):
        canvas_obj.setFont("Helvetica", 8)
        canvas_obj.setFillColor(colors.grey)
        footer = []
        if self.company:
            footer.append(self.company.name)
            if self.company.org_number:
                footer.append(f"{self.labels['org_number']} {self.company.org_number}")
        canvas_obj.drawString(self.margin, self.margin / 2, "  |  ".join(footer))
        canvas_obj.drawRightString(
            self.page_width - self.margin, self.margin / 2, f"{canvas_obj.getPageNumber()}"
        )
