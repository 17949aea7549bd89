"""Enforcement notification channels."""

from .providers import (
    DisabledNotifier,
    NotificationError,
    Notifier,
    WebhookNotifier,
    create_notifier,
)
from .renderer import describe_action, render_enforcement_embed, render_webhook_payload

__all__ = [
    "DisabledNotifier",
    "NotificationError",
    "Notifier",
    "WebhookNotifier",
    "create_notifier",
    "describe_action",
    "render_enforcement_embed",
    "render_webhook_payload",
]
