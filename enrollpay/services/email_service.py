"""Email service for enrollment notifications (Resend).

Bodies come from the center's editable templates (``CenterSettings.email_templates``).
To send to any recipient, verify a domain at resend.com/domains and set
EMAIL_FROM to an address at that domain.
"""

import logging
from typing import Any, Dict

from enrollpay.config import settings

logger = logging.getLogger(__name__)


class _TemplateContext(dict):
    """Leaves unknown placeholders in place instead of raising KeyError"""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render_template(template: str, context: Dict[str, Any]) -> str:
    try:
        return template.format_map(_TemplateContext(context))
    except (ValueError, IndexError) as e:
        # Malformed admin-edited template; send it unformatted
        logger.warning("Could not render email template: %s", e)
        return template


def _should_skip_email(to_email: str) -> bool:
    """Skip sending in test env or to test domains (Resend sandbox restricts recipients)."""
    if settings.ENVIRONMENT == "test":
        return True
    test_domains = ("@test.com", "@test.example.com", "@resend.dev")
    return any(to_email.lower().endswith(d) for d in test_domains)


def _send(kind: str, to_email: str, subject: str, html: str) -> bool:
    """
    Send one email. Returns True if sent (or deliberately skipped for a test
    recipient), False if skipped for lack of an API key or failed.
    """
    if not settings.RESEND_API_KEY:
        logger.info("Email skipped (RESEND_API_KEY not set): %s to %s", kind, to_email)
        return False
    if _should_skip_email(to_email):
        logger.info("Email skipped (test env or test domain): %s to %s", kind, to_email)
        return True

    try:
        import resend

        resend.api_key = settings.RESEND_API_KEY
        resend.Emails.send(
            {
                "from": settings.EMAIL_FROM,
                "to": [to_email],
                "subject": subject,
                "html": html,
            }
        )
        logger.info("%s email sent to %s", kind, to_email)
        return True
    except Exception as e:
        logger.exception("Failed to send %s email to %s: %s", kind, to_email, e)
        return False


def send_enrollment_request_confirmation(to_email: str, template: str, context: Dict[str, Any]) -> bool:
    """Tell the student the request is in and how long they have to pay the registration fee"""
    return _send(
        "Enrollment request",
        to_email,
        f"Enrollment request received - {context.get('course_name', '')}",
        render_template(template, context),
    )


def send_enrollment_approval(to_email: str, template: str, context: Dict[str, Any]) -> bool:
    return _send(
        "Enrollment approval",
        to_email,
        f"Enrollment approved - {context.get('course_name', '')}",
        render_template(template, context),
    )


def send_enrollment_rejection(to_email: str, template: str, context: Dict[str, Any]) -> bool:
    return _send(
        "Enrollment rejection",
        to_email,
        f"Enrollment update - {context.get('course_name', '')}",
        render_template(template, context),
    )


def send_refund_notification(to_email: str, student_name: str, course_name: str, amount: str) -> bool:
    html = f"""
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Refund processed</title></head>
<body style="font-family: sans-serif; line-height: 1.6; color: #333; max-width: 560px; margin: 0 auto; padding: 20px;">
  <h2>Refund processed</h2>
  <p>Dear {student_name},</p>
  <p>A refund of <strong>{amount} {settings.CURRENCY_CODE}</strong> for {course_name} has been processed.</p>
  <p>Please contact the center if you have any questions.</p>
</body>
</html>
"""
    return _send("Refund", to_email, f"Refund processed - {course_name}", html)


def send_enrollment_expiration(to_email: str, student_name: str, course_name: str, validity_hours: int) -> bool:
    html = f"""
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Enrollment request expired</title></head>
<body style="font-family: sans-serif; line-height: 1.6; color: #333; max-width: 560px; margin: 0 auto; padding: 20px;">
  <h2>Enrollment request expired</h2>
  <p>Dear {student_name},</p>
  <p>Your enrollment request for {course_name} has expired because the registration fee
  was not paid within {validity_hours} hours.</p>
  <p>Please contact the center if you still wish to enroll.</p>
</body>
</html>
"""
    return _send("Enrollment expiration", to_email, f"Enrollment request expired - {course_name}", html)
