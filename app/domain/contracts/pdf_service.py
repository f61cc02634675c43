"""
Contract PDF generation
Renders the subscription agreement, unsigned or with the embedded signature and the
fingerprint of the unsigned document it was signed from
"""

import hashlib
import io
import logging
from datetime import datetime
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ...models import Company, Contract
from ...security_utils import strip_html
from ...utils.sanitization import sanitize_string

logger = logging.getLogger(__name__)

INTERVAL_LABELS = {"monthly": "Monthly", "quarterly": "Quarterly", "annual": "Annually"}

STANDARD_CLAUSES = [
    "5.1 Data Processing: The Service Provider processes personal data in accordance with "
    "GDPR and applicable Swedish data protection legislation.",
    "5.2 Termination: Either party may terminate this agreement with 30 days written notice. "
    "In case of material breach, termination is effective immediately upon written notice.",
    "5.3 Governing Law: This agreement is governed by Swedish law. Disputes shall be resolved "
    "by the Swedish courts.",
]


def format_amount(amount: float, currency: str) -> str:
    """Swedish style: 12 000,00 SEK"""
    whole, cents = f"{amount:,.2f}".split(".")
    return f"{whole.replace(',', ' ')},{cents} {currency}"


def compute_document_hash(content: bytes) -> str:
    """SHA-256 hex digest of a rendered document"""
    return hashlib.sha256(content).hexdigest()


class ContractPDFService:
    """Generate subscription agreement PDFs"""

    def __init__(self, contract: Contract, company: Optional[Company] = None):
        self.contract = contract
        self.company = company

        self.page_width, self.page_height = A4
        self.margin = 0.75 * inch

        self.primary = colors.HexColor("#111827")
        self.secondary = colors.HexColor("#6b7280")
        self.accent = colors.HexColor("#2563eb")

    def render(
        self,
        signature_png: Optional[bytes] = None,
        signed_at: Optional[datetime] = None,
        signer_ip: Optional[str] = None,
        original_hash: Optional[str] = None,
    ) -> bytes:
        """Render the agreement; passing signature_png produces the signed version"""
        contract = self.contract
        signed = signature_png is not None
        logger.info(
            f"📄 Rendering {'signed' if signed else 'unsigned'} PDF for {contract.contract_number}"
        )

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=self.margin,
            leftMargin=self.margin,
            topMargin=self.margin,
            bottomMargin=self.margin,
            title=f"Subscription Agreement {contract.contract_number}",
            invariant=True,
        )

        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "ContractTitle",
            parent=styles["Heading1"],
            fontSize=20,
            textColor=self.primary,
            spaceAfter=4,
        )
        heading_style = ParagraphStyle(
            "ContractHeading",
            parent=styles["Heading2"],
            fontSize=12,
            textColor=self.primary,
            spaceBefore=16,
            spaceAfter=6,
        )
        body_style = ParagraphStyle(
            "ContractBody",
            parent=styles["Normal"],
            fontSize=10,
            leading=14,
            textColor=self.primary,
            spaceAfter=6,
        )
        muted_style = ParagraphStyle(
            "ContractMuted", parent=body_style, fontSize=8, textColor=self.secondary
        )

        story = [
            Paragraph("SUBSCRIPTION AGREEMENT", title_style),
            Paragraph(f"Agreement no. {sanitize_string(contract.contract_number)}", muted_style),
        ]
        if signed and signed_at:
            story.append(Paragraph(f"Signed {signed_at.strftime('%Y-%m-%d %H:%M')} UTC", muted_style))
        story.append(Spacer(1, 0.3 * inch))

        # 1. Parties
        story.append(Paragraph("1. Parties", heading_style))
        subscriber = [sanitize_string(self.company.name)] if self.company else []
        if self.company and self.company.org_number:
            subscriber.append(f"Org. nr {sanitize_string(self.company.org_number)}")
        if self.company and self.company.address:
            subscriber.append(sanitize_string(self.company.address))
        subscriber.append(f"Represented by {sanitize_string(contract.signer_name)}")
        story.append(Paragraph("<b>Service Provider:</b> Gigbook", body_style))
        story.append(Paragraph(f"<b>Subscriber:</b> {', '.join(subscriber)}", body_style))

        # 2. Service
        story.append(Paragraph("2. Service", heading_style))
        story.append(
            Paragraph(
                "The Service Provider grants the Subscriber access to the Gigbook platform and "
                f"services associated with the <b>{sanitize_string(contract.tier)}</b> subscription level.",
                body_style,
            )
        )

        # 3. Pricing
        story.append(Paragraph("3. Pricing", heading_style))
        vat_amount = contract.annual_price * contract.vat_rate_pct / 100
        pricing = Table(
            [
                ["Annual price (excl. VAT)", format_amount(contract.annual_price, contract.currency)],
                [f"VAT ({contract.vat_rate_pct:g}%)", format_amount(vat_amount, contract.currency)],
                [
                    "Annual price (incl. VAT)",
                    format_amount(contract.annual_price + vat_amount, contract.currency),
                ],
                [
                    "Billing",
                    INTERVAL_LABELS.get(contract.billing_interval, contract.billing_interval),
                ],
            ],
            colWidths=[3.0 * inch, 3.0 * inch],
        )
        pricing.setStyle(
            TableStyle(
                [
                    ("FONT", (0, 0), (0, -1), "Helvetica", 10),
                    ("FONT", (1, 0), (1, -1), "Helvetica-Bold", 10),
                    ("TEXTCOLOR", (0, 0), (-1, -1), self.primary),
                    ("LINEBELOW", (0, 0), (-1, -2), 0.5, colors.HexColor("#e5e7eb")),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
                ]
            )
        )
        story.append(pricing)

        # 4. Duration
        story.append(Paragraph("4. Duration", heading_style))
        start = (
            contract.contract_start_date.isoformat() if contract.contract_start_date else "signing"
        )
        story.append(
            Paragraph(
                f"The agreement starts on {start} and runs for {contract.duration_months} months. "
                "It automatically renews for successive periods of equal duration unless either "
                "party gives written notice at least 30 days before the end of the current period.",
                body_style,
            )
        )

        # 5. Standard clauses
        story.append(Paragraph("5. General Terms", heading_style))
        for clause in STANDARD_CLAUSES:
            story.append(Paragraph(clause, body_style))

        if contract.custom_terms:
            story.append(Paragraph("6. Additional Terms", heading_style))
            for heading, text in contract.custom_terms.items():
                story.append(
                    Paragraph(f"<b>{strip_html(str(heading))}:</b> {strip_html(str(text))}", body_style)
                )

        # Signatures
        story.append(Spacer(1, 0.4 * inch))
        story.append(Paragraph("Signatures", heading_style))
        story.append(self._signature_table(signature_png, body_style, muted_style))

        if signed:
            story.append(Spacer(1, 0.3 * inch))
            if signer_ip:
                story.append(Paragraph(f"Signer IP: {sanitize_string(signer_ip)}", muted_style))
            if original_hash:
                story.append(
                    Paragraph(f"Original document SHA-256: {sanitize_string(original_hash)}", muted_style)
                )

        doc.build(story, onFirstPage=self._add_page_number, onLaterPages=self._add_page_number)
        pdf_bytes = buffer.getvalue()
        buffer.close()

        logger.info(f"✅ Generated contract PDF ({len(pdf_bytes)} bytes)")
        return pdf_bytes

    def _signature_table(self, signature_png, body_style, muted_style) -> Table:
        contract = self.contract
        provider_cell = [
            Paragraph("SERVICE PROVIDER", muted_style),
            Paragraph("<b>Gigbook</b>", body_style),
        ]

        subscriber_cell = [Paragraph("SUBSCRIBER", muted_style)]
        if signature_png:
            subscriber_cell.append(Image(io.BytesIO(signature_png), width=2.0 * inch, height=0.8 * inch))
        else:
            subscriber_cell.append(Spacer(1, 0.8 * inch))
            subscriber_cell.append(Paragraph("_" * 32, body_style))
        subscriber_cell.append(Paragraph(f"<b>{sanitize_string(contract.signer_name)}</b>", body_style))
        if contract.signer_title:
            subscriber_cell.append(Paragraph(sanitize_string(contract.signer_title), muted_style))

        table = Table([[provider_cell, subscriber_cell]], colWidths=[3.0 * inch, 3.0 * inch])
        table.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
        return table

    def _add_page_number(self, canvas_obj, doc):
        canvas_obj.setFont("Helvetica", 8)
        canvas_obj.setFillColor(colors.grey)
        canvas_obj.drawString(self.margin, self.margin / 2, self.contract.contract_number)
        canvas_obj.drawRightString(
            self.page_width - self.margin, self.margin / 2, f"Page {canvas_obj.getPageNumber()}"
        )
