"""Mismatch summary notifications sent once per tick after the drain."""

from __future__ import annotations

import logging
import smtplib
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from typing import Protocol

from fixity_sweep.storage.common import utc_now
from fixity_sweep.sweep.models import ChecksumMismatchView

logger = logging.getLogger(__name__)


class MismatchSource(Protocol):
    def list_mismatches(
        self,
        *,
        include_resolved: bool = False,
        limit: int | None = None,
    ) -> list[ChecksumMismatchView]:
        raise NotImplementedError


class Notifier(Protocol):
    def send_mismatch_summary(self) -> None:
        raise NotImplementedError


@dataclass(slots=True)
class SmtpTarget:
    """Where and how to deliver the mismatch report."""

    host: str
    port: int = 25
    sender: str = "fixity-sweep@localhost"
    recipients: tuple[str, ...] = ()
    starttls: bool = False
    username: str | None = None
    password: str | None = None
    timeout_seconds: float = 30.0


def render_mismatch_report(
    mismatches: list[ChecksumMismatchView],
    *,
    generated_at: datetime,
) -> str:
    lines = [
        f"Checksum mismatch report generated at {generated_at.isoformat()}",
        f"Unresolved mismatches: {len(mismatches)}",
        "",
    ]
    for mismatch in mismatches:
        lines.append(
            f"- {mismatch.object_id} datastream={mismatch.datastream_id} "
            f"type={mismatch.checksum_type or '-'} "
            f"checksum={mismatch.expected_checksum or '-'} "
            f"first_seen={mismatch.first_detected_at.isoformat()} "
            f"last_seen={mismatch.last_detected_at.isoformat()} "
            f"occurrences={mismatch.occurrences}",
        )
    return "\n".join(lines) + "\n"


class LogMismatchNotifier:
    """Write the summary to the log when no mail transport is configured."""

    def __init__(self, *, mismatches: MismatchSource) -> None:
        self.mismatches = mismatches

    def send_mismatch_summary(self) -> None:
        open_mismatches = self.mismatches.list_mismatches()
        if not open_mismatches:
            logger.info("No unresolved checksum mismatches")
            return
        logger.warning(
            "%d unresolved checksum mismatch(es):\n%s",
            len(open_mismatches),
            render_mismatch_report(open_mismatches, generated_at=utc_now()),
        )


class SmtpMismatchNotifier:
    """Email unresolved mismatches through an SMTP relay."""

    def __init__(
        self,
        *,
        target: SmtpTarget,
        mismatches: MismatchSource,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ) -> None:
        self.target = target
        self.mismatches = mismatches
        self._smtp_factory = smtp_factory

    def send_mismatch_summary(self) -> None:
        open_mismatches = self.mismatches.list_mismatches()
        if not open_mismatches:
            logger.info("No unresolved checksum mismatches; skipping email")
            return
        if not self.target.recipients:
            logger.warning(
                "Skipping mismatch email: no recipients configured (%d mismatches)",
                len(open_mismatches),
            )
            return

        message = build_mismatch_email(
            open_mismatches,
            sender=self.target.sender,
            recipients=self.target.recipients,
            generated_at=utc_now(),
        )
        with self._smtp_factory(
            self.target.host,
            self.target.port,
            timeout=self.target.timeout_seconds,
        ) as smtp:
            if self.target.starttls:
                smtp.starttls()
            if self.target.username:
                smtp.login(self.target.username, self.target.password or "")
            smtp.send_message(message)
        logger.info(
            "Sent mismatch report (%d mismatches) to %s",
            len(open_mismatches),
            ", ".join(self.target.recipients),
        )


def build_mismatch_email(
    mismatches: list[ChecksumMismatchView],
    *,
    sender: str,
    recipients: tuple[str, ...],
    generated_at: datetime,
) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = f"[fixity-sweep] {len(mismatches)} unresolved checksum mismatch(es)"
    message["From"] = sender
    message["To"] = ", ".join(recipients)
    message.set_content(render_mismatch_report(mismatches, generated_at=generated_at))
    return message
