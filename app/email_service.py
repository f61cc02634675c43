"""
Email Service using Resend with SMTP fallback
Templates are MJML compiled to HTML
"""

import logging
import smtplib
import ssl
from datetime import datetime
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import (
    EMAIL_FROM_ADDRESS,
    RESEND_API_KEY,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USE_TLS,
    SMTP_USERNAME,
)
from .email_templates import (
    contract_review_request_template,
    contract_signed_confirmation_template,
    contract_signing_request_template,
    invoice_email_template,
    invoice_reminder_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailNotConfiguredError(Exception):
    pass


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        html = getattr(result, "html", None)
        return html if html is not None else str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise


def send_via_smtp(
    to: list[str],
    subject: str,
    html_content: str,
    from_address: str,
    attachments: Optional[list[dict]] = None,
) -> dict:
    """Send email via the configured SMTP server"""
    msg = MIMEMultipart("mixed")
    msg["Subject"] = subject
    msg["From"] = from_address
    msg["To"] = ", ".join(to)
    msg.attach(MIMEText(html_content, "html"))

    for attachment in attachments or []:
        maintype, _, subtype = attachment.get("content_type", "application/octet-stream").partition("/")
        part = MIMEBase(maintype, subtype)
        part.set_payload(attachment["content"])
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", f'attachment; filename="{attachment["filename"]}"')
        msg.attach(part)

    if SMTP_PORT == 465:
        server = smtplib.SMTP_SSL(SMTP_HOST, SMTP_PORT, context=ssl.create_default_context(), timeout=30)
    else:
        server = smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=30)
        if SMTP_USE_TLS:
            server.starttls(context=ssl.create_default_context())

    try:
        if SMTP_USERNAME:
            server.login(SMTP_USERNAME, SMTP_PASSWORD or "")
        server.sendmail(from_address.split("<")[-1].rstrip(">"), to, msg.as_string())
    finally:
        server.quit()

    logger.info(f"✅ SMTP email sent via {SMTP_HOST}")
    return {"id": f"smtp-{datetime.utcnow().timestamp()}", "success": True}


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
    attachments: Optional[list[dict]] = None,
) -> dict:
    """
    Send an email using Resend, falling back to SMTP when Resend is
    not configured or the send fails.

    Attachments are dicts with filename, content (bytes) and content_type.
    """
    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to
    sender = from_address or EMAIL_FROM_ADDRESS

    if RESEND_API_KEY:
        try:
            logger.info(f"📧 Sending email via Resend to: {recipients}")
            email_data = {"from": sender, "to": recipients, "subject": subject, "html": html_content}
            if attachments:
                email_data["attachments"] = [
                    {"filename": attachment["filename"], "content": list(attachment["content"])}
                    for attachment in attachments
                ]
            response = resend.Emails.send(email_data)
            logger.info(f"✅ Email sent successfully via Resend: {response}")
            return response
        except Exception as e:
            if not SMTP_HOST:
                logger.error(f"❌ Email send error to {recipients}: {e}")
                raise
            logger.warning(f"⚠️ Resend failed, falling back to SMTP: {e}")

    if not SMTP_HOST:
        logger.error("❌ No email service configured - RESEND_API_KEY and SMTP_HOST missing")
        raise EmailNotConfiguredError("Email service not configured")

    return send_via_smtp(recipients, subject, html_content, sender, attachments)


# ============================================
# Contract emails
# ============================================


async def send_contract_review_request(
    to: str, reviewer_name: str, contract_number: str, token: str
) -> dict:
    return await send_email(
        to=to,
        subject=f"Review agreement {contract_number}",
        mjml_content=contract_review_request_template(reviewer_name, contract_number, token),
    )


async def send_contract_signing_request(
    to: str, signer_name: str, contract_number: str, token: str, expires_at: datetime
) -> dict:
    return await send_email(
        to=to,
        subject=f"Agreement {contract_number} ready to sign",
        mjml_content=contract_signing_request_template(
            signer_name, contract_number, token, expires_at.strftime("%Y-%m-%d")
        ),
    )


async def send_contract_signed_confirmation(
    to: str,
    signer_name: str,
    contract_number: str,
    document_hash: str,
    pdf_url: Optional[str] = None,
) -> dict:
    """Confirmation to the signer with the signed document fingerprint"""
    return await send_email(
        to=to,
        subject=f"Agreement {contract_number} signed",
        mjml_content=contract_signed_confirmation_template(
            signer_name, contract_number, document_hash, pdf_url
        ),
    )


# ============================================
# Invoice emails
# ============================================


def sender_with_name(display_name: Optional[str]) -> str:
    """The platform address under the musician's business name"""
    if not display_name:
        return EMAIL_FROM_ADDRESS
    address = EMAIL_FROM_ADDRESS.split("<")[-1].rstrip(">").strip()
    return f"{display_name} <{address}>"


def invoice_pdf_attachment(invoice_number: int, pdf_bytes: bytes) -> dict:
    return {
        "filename": f"Faktura-{invoice_number}.pdf",
        "content": pdf_bytes,
        "content_type": "application/pdf",
    }


async def send_invoice_email(
    to: str,
    subject: str,
    message: Optional[str],
    sender_name: Optional[str],
    invoice_number: int,
    amount_due: str,
    due_date: str,
    pdf_bytes: bytes,
) -> dict:
    """Invoice to the client with the rendered PDF attached"""
    return await send_email(
        to=to,
        subject=subject,
        mjml_content=invoice_email_template(message, invoice_number, amount_due, due_date),
        from_address=sender_with_name(sender_name),
        attachments=[invoice_pdf_attachment(invoice_number, pdf_bytes)],
    )


async def send_invoice_reminder(
    to: str,
    subject: str,
    message: Optional[str],
    sender_name: Optional[str],
    invoice_number: int,
    amount_due: str,
    due_date: str,
    reminder_number: int,
    pdf_bytes: bytes,
) -> dict:
    return await send_email(
        to=to,
        subject=subject,
        mjml_content=invoice_reminder_template(
            message, invoice_number, amount_due, due_date, reminder_number
        ),
        from_address=sender_with_name(sender_name),
        attachments=[invoice_pdf_attachment(invoice_number, pdf_bytes)],
    )
