"""Recipient cleanup and message text for certificate notifications."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence

logger = logging.getLogger("certengine.mailer")

_SPLIT_RE = re.compile(r"[;,]")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _tokens(recipients: Sequence[str] | str | None) -> Iterable[str]:
    if recipients is None:
        return ()
    if isinstance(recipients, str):
        return _SPLIT_RE.split(recipients)
    return (str(value) for value in recipients)


def normalize_recipients(recipients: Sequence[str] | str | None) -> list[str]:
    """Drop blank, malformed and duplicate (case-insensitive) addresses."""

    seen: set[str] = set()
    kept: list[str] = []
    for raw in _tokens(recipients):
        candidate = (raw or "").strip()
        if not candidate:
            continue
        if not _EMAIL_RE.match(candidate):
            logger.warning("[MAIL-INVALID-RECIPIENT] token=%s", candidate)
            continue
        lowered = candidate.lower()
        if lowered in seen:
            continue
        seen.add(lowered)
        kept.append(candidate)
    return kept


def certificate_subject(event_title: str) -> str:
    return f"Your certificate for {event_title}"


def certificate_body(
    participant_name: str,
    event_title: str,
    verification_code: str,
    verify_url: str,
    message: str | None = None,
) -> str:
    intro = message or f"Congratulations! Your certificate for {event_title} is ready."
    return (
        f"Hello {participant_name},\n\n"
        f"{intro}\n\n"
        f"Verification code: {verification_code}\n"
        f"Verify online: {verify_url}\n\n"
        "Your certificate is attached to this message.\n"
    )
