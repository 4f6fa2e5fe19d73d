import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Dict, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import settings
from tasks.email_tasks import send_email_task

logger = logging.getLogger(__name__)

USE_CELERY = not settings.TESTING

# Jinja2 environment for email templates
_templates_env = Environment(
    loader=FileSystemLoader(searchpath=os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")),
    autoescape=select_autoescape(["html", "xml"]),
)


def send_email(to_email: str, subject: str, body: str) -> None:
    """
    Send email using Celery if available, otherwise send directly.
    This function returns immediately and doesn't block the request when using Celery.
    """
    if USE_CELERY:
        try:
            send_email_task.delay(to_email, subject, body)
            logger.debug("email task queued to Celery for %s", to_email)
            return
        except Exception as exc:
            logger.warning("Celery not available, falling back to direct email sending: %s", exc)

    # Fallback: send email directly (synchronously)
    _send_email_direct(to_email, subject, body)


def render_template(template_path: str, context: Dict[str, Any]) -> str:
    """Render a text template from templates/ directory with provided context."""
    template = _templates_env.get_template(template_path)
    return template.render(**context)


def send_templated_email(to_email: str, subject: str, template_path: str, context: Dict[str, Any]) -> None:
    """Render a template and send email via existing send_email path."""
    body = render_template(template_path, context)
    send_email(to_email, subject, body)


def _send_email_direct(to_email: str, subject: str, body: str) -> None:
    """Direct email sending fallback"""
    if not settings.SMTP_PASSWORD or settings.SMTP_PASSWORD == "your-gmail-app-password":
        logger.info("SMTP not configured, email to %s not sent: %s", to_email, subject)
        return

    try:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = settings.SMTP_FROM or settings.SMTP_USERNAME
        msg["To"] = to_email
        msg.set_content(body)

        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
            server.starttls()
            if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.send_message(msg)

        logger.info("email sent to %s", to_email)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("email sending to %s failed: %s", to_email, exc)


class EmailNotifier:
    """Buyer and seller notifications raised by billing events."""

    def payment_received(self, main_order) -> None:
        send_templated_email(
            main_order.email,
            f"Payment received for order {main_order.order_number}",
            "emails/payment_received.txt",
            {
                "order_number": main_order.order_number,
                "amount": main_order.grand_total,
                "reference": main_order.reference,
            },
        )

    def subscription_downgraded(self, store, previous_plan: str) -> None:
        if not store.email:
            return
        send_templated_email(
            store.email,
            "Your subscription has expired",
            "emails/subscription_downgraded.txt",
            {
                "store_name": store.name,
                "previous_plan": previous_plan,
                "product_limit": store.product_limit,
            },
        )
