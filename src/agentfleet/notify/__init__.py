"""Orchestrator notifications."""

from agentfleet.notify.notifier import LogNotifier, TerminalNotifier
from agentfleet.notify.protocol import NOTIFICATION_TYPES, NotificationType, Notifier

__all__ = [
    "NOTIFICATION_TYPES",
    "LogNotifier",
    "NotificationType",
    "Notifier",
    "TerminalNotifier",
]
