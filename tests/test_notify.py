"""Tests for failure notification."""

import smtplib
import subprocess
from unittest.mock import MagicMock, patch

from b2_backup.__util__ import CommandError
from b2_backup.config import NotifyConfig
from b2_backup.core.notify import (
    MailxTransport,
    Notifier,
    SmtpTransport,
    create_notifier,
)


class TestMailxTransport:
    """Tests for MailxTransport."""

    def test_command_line(self):
        """Test that the body is passed on stdin."""
        with patch(
            "b2_backup.__util__.subprocess.run",
            return_value=subprocess.CompletedProcess([], 0),
        ) as mock_run:
            MailxTransport().send("from@x", "to@x", "B2 backup failure: web1", "log body")

        assert mock_run.call_args.args[0] == [
            "mailx",
            "-r",
            "from@x",
            "-s",
            "B2 backup failure: web1",
            "to@x",
        ]
        assert mock_run.call_args.kwargs["input"] == "log body"


class TestSmtpTransport:
    """Tests for SmtpTransport."""

    def test_sends_message(self):
        """Test the message headers and relay."""
        with patch("b2_backup.core.notify.smtplib.SMTP") as mock_smtp:
            SmtpTransport("relay", 2525).send("from@x", "to@x", "subject", "body")

        mock_smtp.assert_called_once_with("relay", 2525)
        server = mock_smtp.return_value.__enter__.return_value
        msg = server.send_message.call_args.args[0]
        assert msg["From"] == "from@x"
        assert msg["To"] == "to@x"
        assert msg["Subject"] == "subject"
        assert msg.get_content().strip() == "body"


class TestNotifier:
    """Tests for Notifier."""

    def test_sends(self):
        """Test a successful notification."""
        transport = MagicMock()
        notifier = Notifier("ops@x", "backups@x", "subject", transport)

        assert notifier.notify("log") is True
        transport.send.assert_called_once_with("backups@x", "ops@x", "subject", "log")
        assert notifier.sent == 1

    def test_sender_defaults_to_recipient(self):
        """Test that mail_to is used as sender when none is configured."""
        transport = MagicMock()
        Notifier("ops@x", None, "subject", transport).notify("log")
        assert transport.send.call_args.args[0] == "ops@x"

    def test_no_recipient(self):
        """Test that nothing is sent without a recipient."""
        transport = MagicMock()
        assert Notifier(None, None, "subject", transport).notify("log") is False
        transport.send.assert_not_called()

    def test_transport_failure_is_swallowed(self):
        """Test that a failing transport is reported through the return value."""
        for error in (
            CommandError(["mailx"], 1),
            OSError("connection refused"),
            smtplib.SMTPException("rejected"),
        ):
            transport = MagicMock()
            transport.send.side_effect = error
            notifier = Notifier("ops@x", None, "subject", transport)

            assert notifier.notify("log") is False
            assert notifier.sent == 0


class TestCreateNotifier:
    """Tests for create_notifier."""

    def test_mailx_default(self):
        """Test that mailx is the default transport."""
        notifier = create_notifier(NotifyConfig(mail_to="ops@x"), "subject")
        assert isinstance(notifier.transport, MailxTransport)
        assert notifier.subject == "subject"

    def test_smtp(self):
        """Test selecting the SMTP transport."""
        config = NotifyConfig(mail_to="ops@x", transport="smtp", smtp_host="relay")
        notifier = create_notifier(config, "subject")
        assert isinstance(notifier.transport, SmtpTransport)
        assert notifier.transport.host == "relay"
