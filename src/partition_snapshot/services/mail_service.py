from __future__ import annotations

import logging
import shutil
import subprocess

LOGGER = logging.getLogger(__name__)

MAIL_TIMEOUT_S = 60


class MailService:
    """Sends mail through the host's ``mail`` command when one is installed."""

    def __init__(self, recipient: str, mail_cmd: str = "mail") -> None:
        self.recipient = recipient
        self.mail_cmd = mail_cmd

    def send(self, subject: str, body: str) -> bool:
        if not self.recipient:
            return False
        exe = shutil.which(self.mail_cmd)
        if exe is None:
            LOGGER.error("%s command not found; cannot send email. Subject: %s", self.mail_cmd, subject)
            return False
        try:
            subprocess.run(
                [exe, "-s", subject, self.recipient],
                input=body if body.endswith("\n") else body + "\n",
                text=True,
                check=True,
                capture_output=True,
                timeout=MAIL_TIMEOUT_S,
            )
        except (OSError, subprocess.SubprocessError) as e:
            LOGGER.error("mail send failed: %s", e)
            return False
        LOGGER.info("Successfully sent email to `%s` with subject `%s`.", self.recipient, subject)
        return True
