"""
Log notifier - no transport.
Writes each message to the structured log instead of sending it.
"""

from typing import Any

from natours.core.logging import get_logger
from natours.services.interfaces.notifier import Notifier

logger = get_logger(__name__)


class LogNotifier(Notifier):
    """
    Use when:
    - Developing locally
    - Running tests
    - No mail transport is configured
    """

    def __init__(self, sender: str):
        self.sender = sender

    async def send(self, user: Any, template: str, subject: str, url: str) -> None:
        first_name = (user.name or "").split(" ")[0]
        logger.info(
            "notification_sent",
            template=template,
            sender=self.sender,
            to=user.email,
            first_name=first_name,
            subject=subject,
            url=url,
        )
