import logging
import smtplib
from email.message import EmailMessage
from core.celery import celery_app
from core.config import settings

logger = logging.getLogger(__name__)

PLACEHOLDER_PASSWORD = "your-gmail-app-password"


def smtp_configured() -> bool:
    return bool(settings.SMTP_PASSWORD) and settings.SMTP_PASSWORD != PLACEHOLDER_PASSWORD


def deliver(to_email: str, subject: str, body: str) -> None:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.SMTP_FROM or settings.SMTP_USERNAME
    msg["To"] = to_email
    msg.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT) as server:
        server.starttls()
        if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.send_message(msg)


@celery_app.task(bind=True, max_retries=3)
def send_email_task(self, to_email: str, subject: str, body: str):
    """
    Send email asynchronously with Celery.
    Retries up to 3 times on failure.
    """
    if settings.TESTING or not smtp_configured():
        logger.debug("Email to %s skipped (SMTP not configured): %s", to_email, subject)
        return {"status": "debug", "message": "Email skipped in debug mode"}

    try:
        deliver(to_email, subject, body)
        return {"status": "sent", "to": to_email, "subject": subject}
    except Exception as exc:
        if settings.DEBUG:
            logger.error("Failed to send email to %s: %s", to_email, exc)
            return {"status": "failed", "error": str(exc), "debug": True}

        countdown = min(2 ** self.request.retries, 60)
        raise self.retry(exc=exc, countdown=countdown)
