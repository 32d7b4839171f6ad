"""Outbound mail.

No mail service is wired up; messages are written to the log instead.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def send_password_reset(email: str, reset_link: str) -> None:
    logger.info("Password reset requested for %s: %s", email, reset_link)


def send_feedback(user_id: int, email: str | None, content: str) -> None:
    logger.info(
        "Feedback from user %s (%s):\n%s", user_id, email or "Unknown Email", content
    )
