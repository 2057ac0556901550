"""
Notifier factory.
Configures which notification transport to use.
"""

from fastapi import Request

from natours.core.config import Settings
from natours.services.interfaces import LogNotifier, Notifier


def build_notifier(settings: Settings) -> Notifier:
    """
    Build the notifier named by NOTIFIER.

    Only "log" ships with the application; delivery transports plug in here.
    """
    if settings.NOTIFIER == "log":
        return LogNotifier(sender=settings.EMAIL_FROM)
    raise ValueError(f"Unknown notifier: {settings.NOTIFIER}")


def get_notifier(request: Request) -> Notifier:
    """The app's notifier, built once from the settings the app was created with."""
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier = build_notifier(request.app.state.settings)
        request.app.state.notifier = notifier
    return notifier
