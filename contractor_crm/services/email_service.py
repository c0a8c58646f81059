"""
Email service for the contractor CRM.

Uses SMTP (Google Workspace by default) to send transactional emails.
Currently used to notify the business when the website form captures a
new lead.

Usage:
    from contractor_crm.services.email_service import send_email

    send_email(
        to="office@example.com",
        subject="New lead",
        template="emails/lead_notification.html",
        context={"lead": lead},
    )
"""

import logging
import smtplib
import threading
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app, render_template

from contractor_crm.errors import StoreError
from contractor_crm.services import crm_service
from contractor_crm.services.unit_of_work import atomic

logger = logging.getLogger(__name__)


def _send_smtp(app, msg):
    """Send an email via SMTP in a background thread (non-blocking)."""
    with app.app_context():
        host = app.config.get("MAIL_SMTP_HOST", "smtp.gmail.com")
        port = app.config.get("MAIL_SMTP_PORT", 587)
        username = app.config.get("MAIL_USERNAME")
        password = app.config.get("MAIL_PASSWORD")

        if not username or not password:
            logger.warning("Email not sent — MAIL_USERNAME or MAIL_PASSWORD not configured.")
            return

        try:
            with smtplib.SMTP(host, port, timeout=30) as server:
                server.ehlo()
                server.starttls()
                server.ehlo()
                server.login(username, password)
                server.send_message(msg)
            logger.info(f"Email sent to {msg['To']} — {msg['Subject']}")
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {msg['To']}: {e}")


def _build_message(app, to, subject, template, context, reply_to):
    from_name = app.config.get("MAIL_FROM_NAME", "Contractor CRM")
    from_email = app.config.get("MAIL_FROM_ADDRESS") or app.config.get("MAIL_USERNAME", "")

    html_body = render_template(template, **context)

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{from_name} <{from_email}>"
    msg["To"] = to if isinstance(to, str) else ", ".join(to)
    if reply_to:
        msg["Reply-To"] = reply_to

    msg.attach(MIMEText(html_body, "html"))
    return msg


def send_email(to, subject, template, context=None, reply_to=None):
    """
    Send a templated HTML email without blocking the request.

    Args:
        to:        Recipient email address (str or list).
        subject:   Email subject line.
        template:  Path to Jinja2 HTML template (relative to templates/).
        context:   Dict of variables to pass to the template.
        reply_to:  Optional reply-to address.
    """
    app = current_app._get_current_object()
    msg = _build_message(app, to, subject, template, context or {}, reply_to)

    # Send in background thread so the request doesn't block
    thread = threading.Thread(target=_send_smtp, args=(app, msg))
    thread.daemon = True
    thread.start()


def notify_new_lead(lead):
    """Email the office about a website lead and log it on the lead's timeline.

    Returns:
        True if a notification was queued, False if none is configured.
    """
    recipients = current_app.config.get("MAIL_LEAD_NOTIFY_TO")
    if not recipients:
        return False

    send_email(
        to=[r.strip() for r in recipients.split(",") if r.strip()],
        subject=f"New lead: {lead.full_name}",
        template="emails/lead_notification.html",
        context={
            "lead": lead,
            "admin_url": current_app.config.get("APP_BASE_URL", ""),
        },
        reply_to=lead.email or None,
    )

    # The lead is already committed; a missing timeline entry must not fail the form.
    try:
        with atomic():
            crm_service.record_activity(
                "notification_sent",
                "New lead notification emailed to the office",
                crm_service.SYSTEM_ACTOR,
                lead_id=lead.id,
            )
    except StoreError:
        logger.warning(f"Could not record notification activity for lead {lead.id}")
    return True
