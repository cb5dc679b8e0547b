"""Site Watcher Alerting Package

Discord notifications and per-site error throttling.
"""

from .error_throttle import ErrorThrottle
from .notifier import DeliveryError, DiscordNotifier, NotificationKind, NotificationPayload, Notifier

__all__ = [
    "ErrorThrottle",
    "DeliveryError",
    "DiscordNotifier",
    "NotificationKind",
    "NotificationPayload",
    "Notifier",
]
