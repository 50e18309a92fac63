"""
Outbound email

Provider is picked from EMAIL_PROVIDER, else Mailgun when its key/domain are
set, else SMTP when real-looking credentials are set, else "disabled". A
disabled provider logs and reports the message as skipped unless EMAIL_STRICT
is on.
"""

import smtplib
from email.message import EmailMessage
from typing import Any, Dict, Iterable, Optional

import requests
import structlog

import config

logger = structlog.get_logger(__name__)

PLACEHOLDER_MARKERS = ("your-email", "example", "your-app-password", "password")


class MailError(Exception):
    pass


MAIL_ERRORS = (MailError, requests.RequestException, smtplib.SMTPException, OSError)


def get_defaults() -> Dict[str, str]:
    return {
        "store_name": config.STORE_NAME,
        "owner_email": config.STORE_OWNER_EMAIL,
        "frontend_url": config.FRONTEND_URL,
        "from": config.MAIL_FROM,
    }


def _smtp_configured() -> bool:
    return bool(config.SMTP_HOST and config.SMTP_PORT and config.SMTP_USER and config.SMTP_PASS)


def get_provider() -> str:
    if config.EMAIL_PROVIDER:
        return config.EMAIL_PROVIDER
    if config.MAILGUN_API_KEY and config.MAILGUN_DOMAIN:
        return "mailgun"
    credentials = f"{config.SMTP_USER} {config.SMTP_PASS}".lower()
    if _smtp_configured() and not any(marker in credentials for marker in PLACEHOLDER_MARKERS):
        return "smtp"
    return "disabled"


def _skip(provider: str, to: str, subject: str, reason: str) -> Dict[str, Any]:
    if config.EMAIL_STRICT:
        raise MailError(reason)
    logger.warning("email_skipped", provider=provider, to=to, subject=subject, reason=reason)
    return {"skipped": True, "provider": provider, "to": to, "subject": subject}


def _send_mailgun(message: Dict[str, str]) -> Dict[str, Any]:
    response = requests.post(
        f"{config.MAILGUN_BASE_URL}/v3/{config.MAILGUN_DOMAIN}/messages",
        auth=("api", config.MAILGUN_API_KEY),
        data=message,
        timeout=15,
    )
    response.raise_for_status()
    return {"skipped": False, "provider": "mailgun", "id": response.json().get("id")}


def _send_smtp(message: Dict[str, str]) -> Dict[str, Any]:
    email = EmailMessage()
    email["From"] = message["from"]
    email["To"] = message["to"]
    email["Subject"] = message["subject"]
    email.set_content(message.get("text") or "")
    if message.get("html"):
        email.add_alternative(message["html"], subtype="html")

    use_ssl = config.SMTP_SECURE or config.SMTP_PORT == 465
    smtp_cls = smtplib.SMTP_SSL if use_ssl else smtplib.SMTP
    with smtp_cls(config.SMTP_HOST, config.SMTP_PORT, timeout=15) as server:
        if not use_ssl:
            server.starttls()
        server.login(config.SMTP_USER, config.SMTP_PASS)
        server.send_message(email)
    return {"skipped": False, "provider": "smtp"}


def send_mail(to: str, subject: str, text: Optional[str] = None, html: Optional[str] = None,
              from_: Optional[str] = None) -> Dict[str, Any]:
    if not to:
        raise MailError('send_mail: "to" is required')
    if not subject:
        raise MailError('send_mail: "subject" is required')

    provider = get_provider()
    message = {"from": from_ or config.MAIL_FROM, "to": to, "subject": subject}
    if text:
        message["text"] = text
    if html:
        message["html"] = html

    if provider in ("disabled", "console"):
        return _skip(provider, to, subject, "Email provider is disabled/unconfigured (set MAILGUN_* or SMTP_* or EMAIL_PROVIDER)")

    if provider == "mailgun":
        if not (config.MAILGUN_API_KEY and config.MAILGUN_DOMAIN):
            return _skip(provider, to, subject, "Mailgun not configured (set MAILGUN_API_KEY and MAILGUN_DOMAIN)")
        return _send_mailgun(message)

    if provider == "smtp":
        if not _smtp_configured():
            return _skip(provider, to, subject, "SMTP not configured (set SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS)")
        return _send_smtp(message)

    raise MailError(f"Unknown EMAIL_PROVIDER: {provider}")


def send_many(messages: Iterable[Dict[str, Any]]):
    """Send a batch in the background; one failure never stops the rest."""
    for message in messages:
        try:
            send_mail(**message)
        except MAIL_ERRORS as exc:
            logger.warning("email_failed", to=message.get("to"), subject=message.get("subject"), error=str(exc))
