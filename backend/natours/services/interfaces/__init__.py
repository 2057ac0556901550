"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .notifier import Notifier, NotificationError
from .log_notifier import LogNotifier

__all__ = ['Notifier', 'NotificationError', 'LogNotifier']
