"""Failure notification by mail.

Two transports: the local ``mailx`` command (the default on our hosts) and
a plain SMTP relay. A notification failure is logged and never raised: it
runs from cleanup paths that must finish.
"""

import logging
import smtplib
from email.message import EmailMessage

from ..__util__ import CommandError, run_command

logger = logging.getLogger(__name__)

TRANSPORTS = ("mailx", "smtp")


class MailxTransport:
    def __init__(self, mailx: str = "mailx") -> None:
        self.mailx = mailx

    def send(self, sender: str, recipient: str, subject: str, body: str) -> None:
        run_command(
            [self.mailx, "-r", sender, "-s", subject, recipient], input_text=body
        )


class SmtpTransport:
    def __init__(self, host: str = "localhost", port: int = 25) -> None:
        self.host = host
        self.port = port

    def send(self, sender: str, recipient: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.set_content(body)
        with smtplib.SMTP(self.host, self.port) as server:
            server.send_message(msg)


class Notifier:
    """Send the diagnostic log of a failed job to the operator."""

    def __init__(self, recipient: str | None, sender: str | None, subject: str, transport) -> None:
        self.recipient = recipient
        self.sender = sender
        self.subject = subject
        self.transport = transport
        self.sent = 0

    def notify(self, body: str) -> bool:
        """Send ``body``; return whether the message was handed off."""
        if not self.recipient:
            logger.warning("No notification recipient configured; not sending mail")
            return False
        try:
            self.transport.send(
                self.sender or self.recipient, self.recipient, self.subject, body
            )
        except (CommandError, OSError, smtplib.SMTPException) as e:
            logger.error("Failed to send failure notification to %s: %s", self.recipient, e)
            return False
        self.sent += 1
        logger.info("Sent failure notification to %s", self.recipient)
        return True


def create_transport(notify_config):
    if notify_config.transport == "smtp":
        return SmtpTransport(notify_config.smtp_host, notify_config.smtp_port)
    return MailxTransport()


def create_notifier(notify_config, subject: str) -> Notifier:
    return Notifier(
        notify_config.mail_to,
        notify_config.mail_from,
        subject,
        create_transport(notify_config),
    )
