import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from typing import List, Optional, Sequence

logger = logging.getLogger("trip_notifier.mailer")


class DeliveryError(RuntimeError):
    """The mail transport refused or failed to send a message."""


@dataclass
class Attachment:
    filename: str
    content: bytes
    maintype: str = "application"
    subtype: str = "pdf"


def build_message(
    sender: str,
    to_addrs: Sequence[str],
    subject: str,
    text_body: str,
    html_body: Optional[str] = None,
    attachments: Sequence[Attachment] = (),
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = ", ".join(to_addrs)
    msg["Subject"] = subject
    msg.set_content(text_body)
    if html_body:
        msg.add_alternative(html_body, subtype="html")
    for attachment in attachments:
        msg.add_attachment(
            attachment.content,
            maintype=attachment.maintype,
            subtype=attachment.subtype,
            filename=attachment.filename,
        )
    return msg


class SmtpMailer:
    """
    STARTTLS SMTP transport.

    A new connection is opened per message so the mailer can be shared by
    the delivery worker threads.
    """

    def __init__(self, host: str, port: int = 587, user: str = "", password: str = "",
                 sender: str = "", timeout: float = 15.0):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.host and self.sender)

    def send(self, to_addrs: List[str], subject: str, text_body: str,
             html_body: Optional[str] = None, attachments: Sequence[Attachment] = ()) -> bool:
        """
        Send one message. Returns False when email is not configured;
        raises DeliveryError when the transport fails.
        """
        to_addrs = [a.strip() for a in (to_addrs or []) if a and a.strip()]
        if not to_addrs:
            raise DeliveryError("No recipients")
        if not self.enabled:
            logger.warning(f"Email disabled (SMTP_HOST/SMTP_FROM unset); not sending '{subject}' to {to_addrs}")
            return False

        msg = build_message(self.sender, to_addrs, subject, text_body, html_body, attachments)

        context = ssl.create_default_context()
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.ehlo()
                server.starttls(context=context)
                server.ehlo()
                if self.user:
                    server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"Failed to send '{subject}' to {to_addrs}: {e}") from e
        return True
