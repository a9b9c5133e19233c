from __future__ import annotations

import logging
import smtplib
import subprocess
from collections.abc import Callable, Sequence
from email.message import EmailMessage

from .config import NotificationSettings
from .errors import NotificationError
from .results import RunResult

logger = logging.getLogger(__name__)

EXCERPT_LIMIT = 2000


def excerpt(output: str, limit: int = EXCERPT_LIMIT) -> str:
    text = output.strip()
    if len(text) <= limit:
        return text
    return "...\n" + text[-limit:]


class EmailNotifier:
    def __init__(
        self,
        settings: NotificationSettings,
        hostname: str,
        *,
        runner: Callable[..., subprocess.CompletedProcess[str]] = subprocess.run,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ) -> None:
        self._settings = settings
        self._hostname = hostname
        self._runner = runner
        self._smtp_factory = smtp_factory

    def compose(self, failures: Sequence[RunResult]) -> EmailMessage:
        names = ", ".join(result.name for result in failures)
        lines = [
            f"Borg backup failed on {self._hostname}.",
            "",
            f"Failed: {names}",
        ]
        for result in failures:
            lines.extend(
                [
                    "",
                    f"== {result.name} ==",
                    f"Exit status: {result.status}",
                    f"Duration: {result.duration:.1f}s",
                ]
            )
            if result.archive:
                lines.append(f"Archive: {result.archive}")
            diagnostic = excerpt(result.output)
            lines.extend(["Output:", diagnostic or "(no output captured)"])

        message = EmailMessage()
        message["Subject"] = f"Backup Failure on {self._hostname}"
        message["From"] = self._settings.sender or f"borg-timemachine@{self._hostname}"
        message["To"] = self._settings.email
        message.set_content("\n".join(lines) + "\n")
        return message

    def notify(self, failures: Sequence[RunResult]) -> bool:
        if not self._settings.enabled or not failures:
            return False

        try:
            message = self.compose(failures)
            if self._settings.transport == "smtp":
                self._send_smtp(message)
            else:
                self._send_mail_command(message)
        # ValueError covers bad header values and UnicodeEncodeError on the mail stdin
        except (OSError, ValueError, smtplib.SMTPException, subprocess.SubprocessError) as exc:
            raise NotificationError(f"Failed to send notification: {exc}") from exc
        logger.info("Failure notification sent to %s", self._settings.email)
        return True

    def _send_mail_command(self, message: EmailMessage) -> None:
        process = self._runner(
            ["mail", "-s", str(message["Subject"]), self._settings.email],
            input=message.get_content(),
            text=True,
            capture_output=True,
            check=False,
        )
        if process.returncode != 0:
            detail = (process.stderr or "").strip() or f"exit code {process.returncode}"
            raise NotificationError(f"mail command failed: {detail}")

    def _send_smtp(self, message: EmailMessage) -> None:
        settings = self._settings
        with self._smtp_factory(settings.smtp_host, settings.smtp_port) as server:
            if settings.smtp_starttls:
                server.starttls()
            if settings.smtp_username:
                server.login(settings.smtp_username, self._smtp_password())
            server.send_message(message)

    def _smtp_password(self) -> str:
        password_file = self._settings.smtp_password_file
        if password_file is None:
            return ""
        return password_file.read_text(encoding="utf-8").strip()
