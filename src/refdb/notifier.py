"""Mail failure reports to the maintainers."""

import smtplib
import socket
import sys
from email.message import EmailMessage
from email.utils import formatdate

from refdb.config import SMTPSettings
from refdb.errors import NotifyError
from refdb.ledger import ErrorRecord

SUBJECT_PREFIX = "[build error] "


class SMTPReporter:
    """Send one plain-text message per reported error through an SMTP relay.

    Without a relay host the report goes to stderr instead.
    """

    def __init__(self, settings: SMTPSettings):
        self.settings = settings

    def report_error(self, record: ErrorRecord) -> None:
        lines = record.message.splitlines()
        subject = SUBJECT_PREFIX + (lines[0] if lines else "")
        self.send_message(subject, record.serialize())

    def build_message(self, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Date"] = formatdate(localtime=True)
        msg["From"] = self.settings.sender
        msg["To"] = self.settings.recipient
        msg["Subject"] = subject
        msg.set_content(body + "\n")
        return msg

    def send_message(self, subject: str, body: str) -> None:
        if not self.settings.host:
            print(f"[notify] No SMTP host configured, report follows:\n{subject}\n\n{body}", file=sys.stderr)
            return
        if not self.settings.sender or not self.settings.recipient:
            raise NotifyError("both --from and --to are required to mail a report")

        msg = self.build_message(subject, body)
        try:
            with smtplib.SMTP(
                self.settings.host,
                self.settings.port,
                local_hostname=socket.gethostname(),
                timeout=self.settings.timeout,
            ) as smtp:
                smtp.send_message(msg, from_addr=self.settings.sender, to_addrs=[self.settings.recipient])
        except (smtplib.SMTPException, OSError) as e:
            raise NotifyError(f"cannot send report via {self.settings.host}:{self.settings.port}: {e}") from e
        print(f"[notify] Reported to {self.settings.recipient}: {subject}")
