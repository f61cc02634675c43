"""
MJML Email Templates
Contract review, signing and confirmation emails; invoices and payment reminders
"""

from typing import Optional

from .config import FRONTEND_URL
from .utils.sanitization import sanitize_string

THEME = {
    "primary": "#4f46e5",
    "background": "#f8fafc",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="40px 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" padding="0 0 16px 0">
              {title}
            </mj-text>
            {content_sections}
          </mj-column>
        </mj-section>
        {cta_section}
        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8">
              Sent by Gigbook on behalf of your contact.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def contract_review_request_template(reviewer_name: str, contract_number: str, token: str) -> str:
    content = f"""
    <mj-text>Hi {reviewer_name},</mj-text>
    <mj-text>
      Agreement <strong>{contract_number}</strong> is ready for your review.
      Approving it sends it on to the signer.
    </mj-text>
    """
    return get_base_template(
        title="Agreement ready for review",
        preview_text=f"Please review agreement {contract_number}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/review/{token}",
        cta_label="Review agreement",
    )


def contract_signing_request_template(
    signer_name: str, contract_number: str, token: str, expires_on: str
) -> str:
    content = f"""
    <mj-text>Hi {signer_name},</mj-text>
    <mj-text>
      You have been asked to sign agreement <strong>{contract_number}</strong>.
    </mj-text>
    <mj-text color="{THEME['text_muted']}">The signing link is valid until {expires_on}.</mj-text>
    """
    return get_base_template(
        title="Agreement ready to sign",
        preview_text=f"Sign agreement {contract_number}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/sign/{token}",
        cta_label="Review and sign",
    )


def contract_signed_confirmation_template(
    signer_name: str, contract_number: str, document_hash: str, pdf_url: Optional[str] = None
) -> str:
    content = f"""
    <mj-text>Hi {signer_name},</mj-text>
    <mj-text>Thank you. Agreement <strong>{contract_number}</strong> has been signed.</mj-text>
    <mj-text font-size="12px" color="{THEME['text_muted']}">
      Document fingerprint (SHA-256): {document_hash}
    </mj-text>
    """
    return get_base_template(
        title="Agreement signed",
        preview_text=f"Agreement {contract_number} signed",
        content_sections=content,
        cta_url=pdf_url,
        cta_label="Download signed agreement" if pdf_url else None,
    )


def message_paragraphs(message: Optional[str]) -> str:
    """Free text from the sender, escaped, with line breaks kept"""
    if not message:
        return ""
    return f"<mj-text>{sanitize_string(message).replace(chr(10), '<br />')}</mj-text>"


def invoice_email_template(
    message: Optional[str], invoice_number: int, amount_due: str, due_date: str
) -> str:
    content = f"""
    {message_paragraphs(message)}
    <mj-text>
      Invoice <strong>{invoice_number}</strong> is attached as a PDF.
    </mj-text>
    <mj-text>
      Amount due: <strong>{amount_due}</strong><br />
      Due date: <strong>{due_date}</strong>
    </mj-text>
    """
    return get_base_template(
        title=f"Invoice {invoice_number}",
        preview_text=f"Invoice {invoice_number}, {amount_due} due {due_date}",
        content_sections=content,
    )


def invoice_reminder_template(
    message: Optional[str],
    invoice_number: int,
    amount_due: str,
    due_date: str,
    reminder_number: int,
) -> str:
    content = f"""
    {message_paragraphs(message)}
    <mj-text>
      According to our records invoice <strong>{invoice_number}</strong>, due {due_date},
      has not been paid. The invoice is attached again for reference.
    </mj-text>
    <mj-text>Amount due: <strong>{amount_due}</strong></mj-text>
    <mj-text color="{THEME['text_muted']}">Reminder {reminder_number}</mj-text>
    """
    return get_base_template(
        title=f"Payment reminder: invoice {invoice_number}",
        preview_text=f"Invoice {invoice_number} is awaiting payment",
        content_sections=content,
    )
