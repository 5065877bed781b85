import html
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from .app_logger import get_logger
from .config import settings

logger = get_logger("email")


class EmailDispatchError(Exception):
    pass


def _smtp_configured() -> bool:
    return bool(settings.smtp_username and settings.smtp_password)


def send_email(*, to_email: str, subject: str, html_body: str) -> bool:
    """Send an HTML email. Returns False when delivery was only simulated."""
    if not _smtp_configured():
        if settings.allow_email_console_fallback:
            logger.warning("Email simulation: To=%s, Subject=%s", to_email, subject)
            return False
        raise EmailDispatchError("SMTP credentials are missing")

    msg = MIMEMultipart()
    msg["From"] = settings.email_from or settings.smtp_username
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.attach(MIMEText(html_body, "html"))

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15) as server:
            server.starttls()
            server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailDispatchError(f"Failed to send email to {to_email}: {exc}") from exc
    logger.info("Email sent to %s: %s", to_email, subject)
    return True


def send_verification_email(*, to_email: str, first_name: str, token: str) -> bool:
    link = f"{settings.frontend_url}/verify-email?token={token}"
    body = (
        f"<p>Hi {html.escape(first_name)},</p>"
        "<p>Welcome to EduPulse. Please confirm your email address:</p>"
        f'<p><a href="{link}">Verify email</a></p>'
        f"<p>This link expires in {settings.email_verify_exp_hours} hours.</p>"
    )
    return send_email(to_email=to_email, subject="Verify your EduPulse account", html_body=body)


def send_password_reset_email(*, to_email: str, first_name: str, token: str) -> bool:
    link = f"{settings.frontend_url}/reset-password?token={token}"
    body = (
        f"<p>Hi {html.escape(first_name)},</p>"
        "<p>We received a request to reset your password.</p>"
        f'<p><a href="{link}">Reset password</a></p>'
        f"<p>This link expires in {settings.password_reset_exp_minutes} minutes. "
        "If you did not ask for this, ignore this email.</p>"
    )
    return send_email(to_email=to_email, subject="Reset your EduPulse password", html_body=body)
