"""
Email Service using Resend

Transport for certificate notifications. Templates live with the
certificates module; this module only delivers already-rendered HTML.
"""

import asyncio
import logging

import resend

from certtrack.core.config import settings

logger = logging.getLogger(__name__)

# Initialize Resend with API key
resend.api_key = settings.resend_api_key


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent (or logged in development without an API key),
        False on any delivery error or when no API key is set outside development
    """
    if not resend.api_key:
        if settings.is_development:
            logger.warning("RESEND_API_KEY not set - logging email instead of sending")
            logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
            return True
        logger.error(f"RESEND_API_KEY not set - cannot send email to {to_email}")
        return False

    try:
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


class ResendNotifier:
    """Notifier backed by Resend. Delivery failures are reported, never raised."""

    async def send(self, to: str, subject: str, html: str) -> bool:
        return await send_email(to_email=to, subject=subject, html_content=html)
