"""
Reset-link delivery.

Email delivery itself lives outside this service. ``ResetNotifier`` is what
the API calls once a reset secret exists; deployments plug in their mailer.
``LoggingResetNotifier`` is the development fallback and never logs the link.
"""

import logging
from typing import Protocol
from urllib.parse import urlencode

from roadbook_auth.core.security import mask_email

logger = logging.getLogger(__name__)


class ResetNotifier(Protocol):
    async def send_reset_link(self, to_email: str, reset_link: str) -> bool: ...


def build_reset_link(base_url: str, token: str) -> str:
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode({'token': token})}"


class LoggingResetNotifier:
    """Records that a link was issued, without its contents."""

    def __init__(self):
        self.sent = 0

    async def send_reset_link(self, to_email: str, reset_link: str) -> bool:
        self.sent += 1
        logger.info(f"[EMAIL] Password reset link issued to {mask_email(to_email)}")
        return True
