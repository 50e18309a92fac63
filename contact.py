from html import escape

import structlog
from fastapi import APIRouter, BackgroundTasks, HTTPException

import config
from helpers import ok
from mailer import MAIL_ERRORS, get_defaults, send_mail, send_many
from schemas import ContactMessage

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/contact", tags=["contact"])


def render(msg: ContactMessage, store_name: str):
    lines = [f"New contact message ({store_name})", "", f"Name: {msg.name}", f"Email: {msg.email}"]
    if msg.phone:
        lines.append(f"Phone: {msg.phone}")
    if msg.subject:
        lines.append(f"Subject: {msg.subject}")
    lines += ["", msg.message]

    rows = [f"<li><b>Name:</b> {escape(msg.name)}</li>", f"<li><b>Email:</b> {escape(msg.email)}</li>"]
    if msg.phone:
        rows.append(f"<li><b>Phone:</b> {escape(msg.phone)}</li>")
    if msg.subject:
        rows.append(f"<li><b>Subject:</b> {escape(msg.subject)}</li>")
    html = (
        f"<h2>New contact message ({escape(store_name)})</h2><ul>{''.join(rows)}</ul>"
        f'<pre style="white-space:pre-wrap;font-family:inherit">{escape(msg.message)}</pre>'
    )
    return "\n".join(lines), html


@router.post("")
def send_contact(msg: ContactMessage, background: BackgroundTasks):
    defaults = get_defaults()
    to = config.CONTACT_TO_EMAIL
    if not to:
        raise HTTPException(
            status_code=500,
            detail="Contact email is not configured on the server. Set CONTACT_TO_EMAIL or STORE_OWNER_EMAIL.",
        )

    subject = f"Support: {msg.subject}" if msg.subject else f"Support message from {msg.name}"
    text, html = render(msg, defaults["store_name"])
    try:
        result = send_mail(to=to, subject=subject, text=text, html=html)
    except MAIL_ERRORS as exc:
        logger.error("contact_message_failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to send message")

    if config.CONTACT_AUTO_REPLY:
        background.add_task(send_many, [{
            "to": msg.email,
            "subject": f"We received your message - {defaults['store_name']}",
            "text": f"Hi {msg.name},\n\nThanks for reaching out. We received your message and will get back "
                    f"to you shortly.\n\n{defaults['store_name']}",
        }])

    logger.info("contact_message", delivered=not result.get("skipped"), provider=result.get("provider"))
    return ok(
        {"delivered": not result.get("skipped"), "provider": result.get("provider") or "disabled"},
        "Message received",
    )
