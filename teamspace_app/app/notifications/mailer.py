"""Outbound email for invitations and direct-add notices.

Delivery is best-effort: the ``send_*`` helpers raise ``DeliveryError`` and the
engines turn that into a soft warning on an already committed result.
"""
from __future__ import annotations
import smtplib
from email.message import EmailMessage
import requests
from flask import current_app


class DeliveryError(Exception):
    pass


def is_mail_configured() -> bool:
    provider = current_app.config.get("EMAIL_PROVIDER", "smtp")
    if provider == "resend":
        return bool(current_app.config.get("RESEND_API_KEY"))
    return all(
        current_app.config.get(key)
        for key in ("MAIL_SERVER", "MAIL_USERNAME", "MAIL_PASSWORD")
    )


def send_email(subject: str, recipient: str, body: str, html: str | None = None) -> bool:
    provider = current_app.config.get("EMAIL_PROVIDER", "smtp")
    # Resend (API) provider
    if provider == "resend":
        try:
            api_key = current_app.config.get("RESEND_API_KEY")
            if not api_key:
                current_app.logger.error("RESEND_API_KEY not configured")
                return False
            payload = {
                "from": current_app.config.get("MAIL_DEFAULT_SENDER"),
                "to": [recipient],
                "subject": subject,
                "text": body,
            }
            if html:
                payload["html"] = html
            resp = requests.post(
                "https://api.resend.com/emails",
                headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
                json=payload,
                timeout=10,
            )
            if resp.status_code in (200, 202):
                return True
            current_app.logger.error("Resend API returned non-success: %s %s", resp.status_code, resp.text)
            return False
        except requests.RequestException:
            current_app.logger.exception("Failed to send email via Resend API")
            return False

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = current_app.config.get("MAIL_DEFAULT_SENDER")
    msg["To"] = recipient
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")
    try:
        mail_server: str = str(current_app.config.get("MAIL_SERVER"))
        mail_port: int = int(current_app.config.get("MAIL_PORT") or 0)
        with smtplib.SMTP(mail_server, mail_port, timeout=10) as server:
            if bool(current_app.config.get("MAIL_USE_TLS")):
                server.starttls()
            username = str(current_app.config.get("MAIL_USERNAME") or "")
            password = str(current_app.config.get("MAIL_PASSWORD") or "")
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        return True
    except (smtplib.SMTPException, OSError):
        current_app.logger.exception("Failed to send email via SMTP")
        return False


def _deliver(subject: str, recipient: str, body: str) -> None:
    if not is_mail_configured():
        raise DeliveryError("Email service is not configured")
    if not send_email(subject, recipient, body):
        raise DeliveryError(f"Email delivery to {recipient} failed")


def send_invitation_email(
    to_address: str,
    *,
    inviter_name: str,
    entity_name: str,
    entity_type: str,
    role: str,
    invitation_url: str,
    expires_at: str,
) -> None:
    subject = f"{inviter_name} invited you to join {entity_name}"
    body = (
        f"{inviter_name} has invited you to join the {entity_type} \"{entity_name}\" as {role}.\n\n"
        f"Accept the invitation here:\n\n{invitation_url}\n\n"
        f"This invitation expires on {expires_at}."
    )
    _deliver(subject, to_address, body)


def send_direct_add_notification_email(
    to_address: str,
    *,
    inviter_name: str,
    entity_name: str,
    entity_type: str,
    role: str,
    entity_url: str,
    organization_name: str | None = None,
) -> None:
    subject = f"You were added to {entity_name}"
    where = f" in {organization_name}" if organization_name else ""
    body = (
        f"{inviter_name} added you to the {entity_type} \"{entity_name}\"{where} as {role}.\n\n"
        f"Open it here:\n\n{entity_url}"
    )
    _deliver(subject, to_address, body)
