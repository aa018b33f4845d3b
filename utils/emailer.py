import logging
import smtplib
from email.message import EmailMessage

logger = logging.getLogger(__name__)


def send_email(settings, to_email: str, subject: str, body: str):
    """Send a plain-text email. Returns (ok, error) and never raises."""
    host = settings.get("SMTP_HOST")
    port = settings.get("SMTP_PORT", 587)
    username = settings.get("SMTP_USERNAME")
    password = settings.get("SMTP_PASSWORD")
    from_email = settings.get("SMTP_FROM_EMAIL") or username
    use_tls = settings.get("SMTP_USE_TLS", True)

    if not host or not from_email:
        return False, "Email not configured"
    if not to_email:
        return False, "Missing recipient"

    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        with smtplib.SMTP(host, port, timeout=10) as server:
            if use_tls:
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        return True, None
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("SMTP send to %s failed: %s", to_email, exc)
        return False, str(exc)
