import logging
import os
import smtplib
import sys
from email.message import EmailMessage
from typing import NamedTuple, Sequence

from .shared.mail_utils import normalize_recipients

logger = logging.getLogger("certengine.mailer")
if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)


class Attachment(NamedTuple):
    filename: str
    data: bytes
    maintype: str
    subtype: str


def _smtp_settings() -> dict:
    return {
        "host": os.getenv("SMTP_HOST"),
        "port": os.getenv("SMTP_PORT"),
        "user": os.getenv("SMTP_USER"),
        "password": os.getenv("SMTP_PASS"),
        "from_addr": os.getenv("SMTP_FROM_DEFAULT"),
        "from_name": os.getenv("SMTP_FROM_NAME", ""),
    }


def send(
    recipients: Sequence[str] | str | None,
    subject: str,
    body: str,
    attachments: Sequence[Attachment] = (),
) -> dict:
    settings = _smtp_settings()
    host = settings["host"]
    port = settings["port"]
    from_addr = settings["from_addr"]
    envelope = normalize_recipients(recipients)

    if not host or not port or not from_addr:
        logger.info(
            "[MAIL-OUT] mode=stub to=%s subject=\"%s\" result=stub",
            ", ".join(envelope),
            subject,
        )
        return {"ok": False, "detail": "stub: missing config"}

    if not envelope:
        logger.warning("[MAIL-NO-RECIPIENTS] subject=\"%s\" host=%s", subject, host)
        return {"ok": False, "detail": "no valid recipients"}

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["To"] = ", ".join(envelope)
    from_name = settings["from_name"]
    msg["From"] = f"{from_name} <{from_addr}>" if from_name else from_addr
    msg.set_content(body)
    for attachment in attachments:
        msg.add_attachment(
            attachment.data,
            maintype=attachment.maintype,
            subtype=attachment.subtype,
            filename=attachment.filename,
        )

    try:
        port_int = int(port)
        if port_int == 465:
            server = smtplib.SMTP_SSL(host, port_int)
        else:
            server = smtplib.SMTP(host, port_int)
            if port_int == 587:
                server.starttls()
        if settings["user"] and settings["password"]:
            server.login(settings["user"], settings["password"])
        server.send_message(msg, from_addr=from_addr, to_addrs=envelope)
        server.quit()
    except (smtplib.SMTPException, OSError, ValueError) as exc:
        logger.info(
            "[MAIL-OUT] mode=real to=%s subject=\"%s\" host=%s result=%s",
            msg["To"],
            subject,
            host,
            exc,
        )
        return {"ok": False, "detail": str(exc)}

    logger.info(
        "[MAIL-OUT] mode=real to=%s subject=\"%s\" host=%s result=sent",
        msg["To"],
        subject,
        host,
    )
    return {"ok": True, "detail": "sent"}
