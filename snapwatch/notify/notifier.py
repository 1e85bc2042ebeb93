"""Notifiers — deliver alert batches and baseline notices to recipients."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Mapping, Optional, Protocol

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from snapwatch.models.config import Recipient, SmtpConfig
from snapwatch.models.outcome import AlertBatch, BaselineNotice
from snapwatch.storage.base import StorageError
from snapwatch.storage.image_store import LocalImageStore

from .email_body import RenderedEmail, render_alert_email, render_baseline_email

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, batches: Mapping[Recipient, AlertBatch]) -> int: ...

    def notify_baselines(self, notices: Mapping[Recipient, BaselineNotice]) -> int: ...


class SmtpNotifier:
    """Sends one HTML email per recipient over SMTP."""

    def __init__(self, smtp: SmtpConfig, image_store: LocalImageStore):
        self.smtp = smtp
        self.image_store = image_store

    def _load_image(self, ref: str) -> Optional[bytes]:
        try:
            return self.image_store.resolve(ref).read_bytes()
        except (StorageError, OSError) as e:
            logger.warning("Could not attach image %s: %s", ref, e)
            return None

    def build_message(self, to: str, email: RenderedEmail) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = email.subject
        msg["From"] = f"snapwatch <{self.smtp.sender}>"
        msg["To"] = to
        msg.set_content(email.text)
        msg.add_alternative(email.html, subtype="html")
        html_part = msg.get_payload()[1]
        for image in email.images:
            html_part.add_related(
                image.payload, maintype="image", subtype="png",
                cid=f"<{image.cid}>", filename=image.filename,
            )
        return msg

    def _send(self, messages: list[EmailMessage]) -> int:
        if not messages:
            return 0
        smtp_cls = smtplib.SMTP_SSL if self.smtp.use_ssl else smtplib.SMTP
        sent = 0
        try:
            with smtp_cls(self.smtp.host, self.smtp.port) as server:
                if not self.smtp.use_ssl:
                    server.starttls()
                if self.smtp.username:
                    server.login(self.smtp.username, self.smtp.password)
                for msg in messages:
                    try:
                        server.send_message(msg)
                        sent += 1
                        logger.info("Email sent to %s -- %s", msg["To"], msg["Subject"])
                    except (smtplib.SMTPRecipientsRefused, smtplib.SMTPResponseException) as e:
                        logger.error("Failed to send email to %s: %s", msg["To"], e)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP delivery to %s:%d failed after %d of %d message(s): %s",
                         self.smtp.host, self.smtp.port, sent, len(messages), e)
        return sent

    def notify(self, batches: Mapping[Recipient, AlertBatch]) -> int:
        messages = [
            self.build_message(recipient.email, render_alert_email(batch, self._load_image))
            for recipient, batch in batches.items()
        ]
        return self._send(messages)

    def notify_baselines(self, notices: Mapping[Recipient, BaselineNotice]) -> int:
        messages = [
            self.build_message(recipient.email, render_baseline_email(notice, self._load_image))
            for recipient, notice in notices.items()
        ]
        return self._send(messages)


class ConsoleNotifier:
    """Prints alert batches instead of sending them (dry runs)."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def notify(self, batches: Mapping[Recipient, AlertBatch]) -> int:
        for recipient, batch in batches.items():
            table = Table(title=f"Alerts for {escape(recipient.email)}")
            table.add_column("URL", style="bold")
            table.add_column("Viewport")
            table.add_column("Mismatch")
            table.add_column("Diagnostics")
            for o in batch.outcomes:
                mismatch = "-" if o.mismatch_percent is None else f"{o.mismatch_percent:.2f}% / {o.tolerance_percent}%"
                table.add_row(escape(o.target_url), o.viewport.label, mismatch, escape("\n".join(o.diagnostics)))
            self.console.print(table)
        return len(batches)

    def notify_baselines(self, notices: Mapping[Recipient, BaselineNotice]) -> int:
        for recipient, notice in notices.items():
            for o in notice.outcomes:
                self.console.print(
                    f"[green]Baseline v{o.baseline_version}[/green] {escape(o.target_url)} "
                    f"({o.viewport.label}) for {escape(recipient.email)}",
                    highlight=False,
                )
        return len(notices)
