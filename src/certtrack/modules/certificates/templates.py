"""
Certificate Notification Templates

Renders the holder-facing and administrator-facing emails for each
milestone. Rendering is pure: every value comes from the milestone, the
certificate snapshot and the renewal base URL, so the same inputs always
produce byte-identical output.

Unknown milestones raise ``UnsupportedMilestoneError``; there is no
fallback template.
"""

from dataclasses import dataclass
from html import escape

from certtrack.modules.certificates.contracts import CertificateSnapshot
from certtrack.modules.certificates.models import Milestone


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str


@dataclass(frozen=True)
class RenderedNotification:
    """The pair of emails sent for one milestone of one certificate."""

    holder: RenderedEmail
    admin: RenderedEmail


@dataclass(frozen=True)
class _HolderCopy:
    subject: str
    heading: str
    message: str  # formatted with {course}
    cta_text: str
    cta_color: str
    urgency: str = ""


_HOLDER_COPY: dict[Milestone, _HolderCopy] = {
    Milestone.THIRTY_DAY: _HolderCopy(
        subject="Certificate Expiring Soon - 30 Days Remaining",
        heading="Certificate Expiry Reminder",
        message=(
            "Your certificate for <strong>{course}</strong> will expire in "
            "<strong>30 days</strong>."
        ),
        cta_text="Renew Now",
        cta_color="#FF774B",
    ),
    Milestone.SEVEN_DAY: _HolderCopy(
        subject="Certificate Expires in 7 Days - Action Required",
        heading="Urgent: Certificate Expiring Soon",
        message=(
            "Your certificate for <strong>{course}</strong> will expire in "
            "<strong>7 days</strong>. "
            "Don't lose access to your certification!"
        ),
        cta_text="Renew Now - Don't Lose Access!",
        cta_color="#FF5722",
        urgency="Act now to avoid losing your certification and course access.",
    ),
    Milestone.ONE_DAY: _HolderCopy(
        subject="Final Notice: Certificate Expires Tomorrow!",
        heading="Final Warning: Certificate Expires Tomorrow",
        message=(
            "Your certificate for <strong>{course}</strong> expires <strong>tomorrow</strong>! "
            "After expiry, you will lose access to the course and must re-enroll."
        ),
        cta_text="Renew Today",
        cta_color="#d32f2f",
        urgency="This is your last chance to renew before losing access!",
    ),
    Milestone.EXPIRED: _HolderCopy(
        subject="Your Certificate Has Expired - Re-enroll Now",
        heading="Certificate Expired",
        message=(
            "Your certificate for <strong>{course}</strong> has expired. "
            "You no longer have access to this course. "
            "To regain access and renew your certification, please re-enroll."
        ),
        cta_text="Re-enroll Now",
        cta_color="#d32f2f",
    ),
}

_ADMIN_HEADINGS: dict[Milestone, str] = {
    Milestone.THIRTY_DAY: "Certificate Expiring in 30 Days",
    Milestone.SEVEN_DAY: "Certificate Expiring in 7 Days",
    Milestone.ONE_DAY: "Certificate Expires Tomorrow",
    Milestone.EXPIRED: "Certificate Has Expired - Access Revoked",
}

_STYLES = """
        <style>
            body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
            .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
            .header { color: #1a365d; margin-bottom: 24px; }
            .urgency { background-color: #fef2f2; border: 1px solid #fecaca; color: #d32f2f; padding: 12px 16px; border-radius: 8px; font-weight: bold; }
            .details { width: 100%; border-collapse: collapse; margin: 20px 0; }
            .details td { padding: 10px; border: 1px solid #e5e7eb; }
            .details td.label { background-color: #f3f4f6; font-weight: bold; }
            .details td.revoked { background-color: #ffebee; color: #d32f2f; font-weight: bold; }
            .button { display: inline-block; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; font-weight: bold; }
            .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
        </style>"""


def _course_name(snapshot: CertificateSnapshot, default: str) -> str:
    if snapshot.credential and snapshot.credential.title:
        return snapshot.credential.title
    return default


def _holder_name(snapshot: CertificateSnapshot) -> str:
    holder = snapshot.holder
    if holder is None:
        return "Student"
    return holder.first_name or holder.username or "Student"


def _row(label: str, value: str, value_class: str = "") -> str:
    css = f' class="{value_class}"' if value_class else ""
    return f'<tr><td class="label">{escape(label)}</td><td{css}>{value}</td></tr>'


def renewal_url(snapshot: CertificateSnapshot, renewal_base_url: str) -> str:
    course_id = snapshot.credential.id if snapshot.credential else ""
    return f"{renewal_base_url.rstrip('/')}/renewal?course={course_id}"


def render_holder_email(
    milestone: Milestone | str,
    snapshot: CertificateSnapshot,
    renewal_base_url: str,
) -> RenderedEmail:
    """
    Render the email sent to the certificate holder.

    Raises:
        UnsupportedMilestoneError: If ``milestone`` is not a known milestone
    """
    milestone = Milestone.parse(milestone)
    copy = _HOLDER_COPY[milestone]

    safe_course = escape(_course_name(snapshot, "your course"))
    safe_name = escape(_holder_name(snapshot))
    safe_url = escape(renewal_url(snapshot, renewal_base_url))
    urgency = f'<p class="urgency">{escape(copy.urgency)}</p>' if copy.urgency else ""

    html_content = f"""
    <!DOCTYPE html>
    <html>
    <head>{_STYLES}
    </head>
    <body>
        <div class="container">
            <h1 class="header">{escape(copy.heading)}</h1>

            <p>Hi {safe_name},</p>

            <p>{copy.message.format(course=safe_course)}</p>

            {urgency}

            <table class="details">
                {_row("Course", safe_course)}
                {_row("Issued Date", snapshot.issued_date.isoformat())}
                {_row("Expiry Date", snapshot.expiry_date.isoformat())}
            </table>

            <a href="{safe_url}" class="button" style="background-color: {copy.cta_color};">{escape(copy.cta_text)}</a>

            <div class="footer">
                <p>If you have any questions, please contact our support team.</p>
                <p>Best regards,<br />The Certification Team</p>
            </div>
        </div>
    </body>
    </html>
    """
    return RenderedEmail(subject=copy.subject, html=html_content)


def render_admin_email(
    milestone: Milestone | str,
    snapshot: CertificateSnapshot,
) -> RenderedEmail:
    """
    Render the notice sent to the operational administrator contact.

    Raises:
        UnsupportedMilestoneError: If ``milestone`` is not a known milestone
    """
    milestone = Milestone.parse(milestone)
    heading = _ADMIN_HEADINGS[milestone]

    course = _course_name(snapshot, "N/A")
    username = snapshot.holder.username if snapshot.holder else "Unknown"
    user_email = (snapshot.holder.email if snapshot.holder else None) or "Unknown"

    revoked_row = ""
    if milestone is Milestone.EXPIRED:
        revoked_row = _row("Status", "Course access has been revoked", "revoked")

    html_content = f"""
    <!DOCTYPE html>
    <html>
    <head>{_STYLES}
    </head>
    <body>
        <div class="container">
            <h1 class="header">{escape(heading)}</h1>

            <table class="details">
                {_row("User", escape(username))}
                {_row("Email", escape(user_email))}
                {_row("Course", escape(course))}
                {_row("Issued Date", snapshot.issued_date.isoformat())}
                {_row("Expiry Date", snapshot.expiry_date.isoformat())}
                {revoked_row}
            </table>

            <div class="footer">
                <p>Certificate #{snapshot.id}</p>
            </div>
        </div>
    </body>
    </html>
    """
    return RenderedEmail(subject=f"{heading}: {username} - {course}", html=html_content)


def render_notification(
    milestone: Milestone | str,
    snapshot: CertificateSnapshot,
    renewal_base_url: str,
) -> RenderedNotification:
    """
    Render both emails for a milestone.

    Raises:
        UnsupportedMilestoneError: If ``milestone`` is not a known milestone
    """
    return RenderedNotification(
        holder=render_holder_email(milestone, snapshot, renewal_base_url),
        admin=render_admin_email(milestone, snapshot),
    )
