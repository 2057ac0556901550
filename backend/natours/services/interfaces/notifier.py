"""
Notifier interface.
Lets the auth flows send mail without knowing the transport.
"""

from abc import ABC, abstractmethod
from typing import Any


class NotificationError(Exception):
    """The transport could not deliver a message."""


class Notifier(ABC):
    """
    Interface for outbound user notifications.

    Implementations:
    - LogNotifier: record the dispatch in the structured log
    """

    @abstractmethod
    async def send(self, user: Any, template: str, subject: str, url: str) -> None:
        """
        Deliver one message.

        Args:
            user: Recipient, anything with `email` and `name`
            template: Template name (welcome, passwordReset)
            subject: Subject line
            url: Link the message points the user to

        Raises:
            NotificationError if the message could not be delivered
        """

    async def send_welcome(self, user: Any, url: str) -> None:
        await self.send(user, "welcome", "Welcome to the Natours Family!", url)

    async def send_password_reset(self, user: Any, url: str) -> None:
        await self.send(
            user,
            "passwordReset",
            "Your password reset token (valid for only 10 minutes)",
            url,
        )
