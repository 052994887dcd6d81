import logging
import os
from typing import Dict, Any, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import settings
from tasks.email_tasks import send_email_task, deliver, smtp_configured

logger = logging.getLogger(__name__)

_templates_env = Environment(
    loader=FileSystemLoader(searchpath=os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")),
    autoescape=select_autoescape(["html", "xml"]),
)


def send_email(to_email: str, subject: str, body: str) -> None:
    """
    Queue the email on Celery, falling back to a direct SMTP send when the
    broker is unreachable. Never raises: a lost email must not fail a payment.
    """
    try:
        send_email_task.delay(to_email, subject, body)
        logger.debug("Email task queued to Celery for %s", to_email)
        return
    except Exception as e:
        logger.warning("Celery not available, falling back to direct email sending: %s", e)

    _send_email_direct(to_email, subject, body)


def render_template(template_path: str, context: Dict[str, Any]) -> str:
    """Render a text template from templates/ directory with provided context."""
    template = _templates_env.get_template(template_path)
    return template.render(**context)


def send_templated_email(to_email: str, subject: str, template_path: str, context: Dict[str, Any]) -> None:
    body = render_template(template_path, context)
    send_email(to_email, subject, body)


def build_payment_confirmation(order, payment) -> Tuple[str, str, str]:
    """Recipient, subject and rendered body of the payment confirmation email."""
    body = render_template(
        "emails/payment_confirmation.txt",
        {
            "recipient_name": order.customer_name,
            "order_number": order.order_number,
            "amount": f"{float(payment.amount):,.2f}",
            "currency": payment.currency,
            "payment_method": payment.payment_method or "Monnify",
            "transaction_id": payment.transaction_id,
            "payment_date": payment.processed_at,
            "order_url": f"{settings.FRONTEND_URL}/order-history/{order.id}",
        },
    )
    return order.email, f"Payment Confirmed - Order #{order.order_number}", body


def send_payment_confirmation(order, payment) -> None:
    send_email(*build_payment_confirmation(order, payment))


def _send_email_direct(to_email: str, subject: str, body: str) -> None:
    if not smtp_configured():
        logger.info("SMTP not configured, email to %s not sent: %s", to_email, subject)
        return

    try:
        deliver(to_email, subject, body)
        logger.info("Email sent successfully to %s", to_email)
    except Exception as e:
        logger.error("Email sending failed for %s: %s", to_email, e)
