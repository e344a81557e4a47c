import logging
import os
import smtplib
from email.message import EmailMessage

logger = logging.getLogger(__name__)

EMAIL_OUTBOX: list[tuple[str, str, str]] = []


class EmailDeliveryError(RuntimeError):
    """Raised when an outbound email cannot be handed to the SMTP server."""


def send_email(to_email: str, subject: str, message: str):
    if os.getenv("TESTING") == "1":
        EMAIL_OUTBOX.append((to_email, subject, message))
        return
    server = os.getenv("SMTP_SERVER")
    if not server:
        logger.warning("SMTP_SERVER not configured; dropping email to %s (%s)", to_email, subject)
        return
    from_addr = os.getenv("EMAIL_FROM", "noreply@example.com")
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_email
    msg.set_content(message)
    try:
        with smtplib.SMTP(server) as s:
            s.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailDeliveryError(str(exc)) from exc


def send_invitation_email(
    to_email: str,
    *,
    company_name: str,
    inviter_name: str,
    role: str,
    token: str,
    expires_at,
):
    """Send the invitation link for a pending company invitation."""
    base_url = os.getenv("APP_BASE_URL", "http://localhost:3000").rstrip("/")
    link = f"{base_url}/invite/accept?token={token}"
    role_label = role.replace("_", " ").title()
    body = (
        f"{inviter_name} has invited you to join {company_name} as a {role_label}.\n\n"
        f"Accept the invitation: {link}\n\n"
        f"This invitation expires on {expires_at:%d %B %Y}."
    )
    send_email(to_email, f"You're invited to join {company_name}", body)
    return link


def send_password_reset_email(to_email: str, token: str):
    send_email(to_email, "Password Reset", f"Use this code to reset: {token}")
