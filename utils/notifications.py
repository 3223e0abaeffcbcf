"""SMTP-backed notification sink, called by the HTTP layer after an engine call succeeds."""
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import List, Optional

from flask import current_app

from extensions import db
from models import Account, Complaint, EmailAuditLog

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when email dispatch fails."""


def _dispatch_email(subject: str, text_body: str, sender: str, recipients: List[str]) -> None:
    if not recipients:
        raise EmailDeliveryError("No recipients resolved for email dispatch")

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = ", ".join(recipients)
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid()
    msg.set_content(text_body)

    host = current_app.config.get("MAIL_SERVER")
    port = int(current_app.config.get("MAIL_PORT", 25))
    username = current_app.config.get("MAIL_USERNAME")
    password = current_app.config.get("MAIL_PASSWORD")
    use_tls = bool(current_app.config.get("MAIL_USE_TLS"))
    use_ssl = bool(current_app.config.get("MAIL_USE_SSL"))

    try:
        if use_ssl:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(host, port, context=context) as server:
                if username and password:
                    server.login(username, password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(host, port) as server:
                server.ehlo()
                if use_tls:
                    server.starttls(context=ssl.create_default_context())
                if username and password:
                    server.login(username, password)
                server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:  # pragma: no cover - external I/O
        raise EmailDeliveryError(str(exc)) from exc


def _persist_audit(template: str, recipient: str, subject: str, status: str,
                   complaint_id: Optional[str] = None, error: Optional[str] = None) -> None:
    db.session.add(
        EmailAuditLog(
            complaint_id=complaint_id,
            template=template,
            recipient_email=recipient,
            subject=subject[:255],
            delivery_status=status,
            error_message=(error or "")[:500] or None,
        )
    )
    db.session.commit()


def _send(template: str, recipient: str, subject: str, body: str, complaint_id: Optional[str] = None) -> str:
    """Deliver one message and audit the outcome; failures never propagate to the caller."""
    if not current_app.config.get("MAIL_SERVER"):
        logger.info("Email delivery skipped (MAIL_SERVER not configured)", extra={"template": template, "recipient": recipient})
        status, error = "SKIPPED", None
    else:
        sender = current_app.config.get("MAIL_DEFAULT_SENDER") or ""
        try:
            _dispatch_email(subject, body, sender, [recipient])
            status, error = "SENT", None
        except EmailDeliveryError as exc:
            logger.warning("Email delivery failed", extra={"template": template, "recipient": recipient, "error": str(exc)})
            status, error = "FAILED", str(exc)
    _persist_audit(template, recipient, subject, status, complaint_id=complaint_id, error=error)
    return status


def send_registration_email(account: Account) -> str:
    subject = "Welcome to the campus grievance desk"
    body = (
        f"Hello {account.full_name},\n\n"
        f"Your {account.role} account has been created.\n"
        f"Account id: {account.id}\n"
    )
    if account.role == "student":
        body += "Each complaint you raise holds a refundable deposit in escrow until it is resolved.\n"
    return _send("registration", account.email, subject, body)


def send_resolution_email(student: Account, complaint: Complaint) -> str:
    subject = f"Complaint resolved: {complaint.title}"
    body = (
        f"Hello {student.full_name},\n\n"
        f"Your {complaint.category} complaint \"{complaint.title}\" ({complaint.id}) has been marked resolved"
        f" by {complaint.assigned_vendor_name or 'the assigned vendor'}.\n"
        f"Proof of resolution: {complaint.proof_ref}\n\n"
        "Please confirm the resolution and rate the work.\n"
    )
    return _send("resolution", student.email, subject, body, complaint_id=complaint.id)
