"""Notification channels for enforcement actions."""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional
from urllib import error as urllib_error, request as urllib_request

from ..app.errors import NotificationError
from ..app.schemas.notifications import EnforcementReport
from ..config import DaemonConfig
from .renderer import describe_action, render_webhook_payload

logger = logging.getLogger(__name__)

DEFAULT_WEBHOOK_TIMEOUT_SECONDS = 5.0


class Notifier:
    """Base channel for outbound enforcement notifications."""

    name = "base"

    def notify(self, report: EnforcementReport) -> bool:
        """Deliver ``report``; returns whether anything was sent."""

        raise NotImplementedError

    def describe(self) -> Dict[str, str]:
        return {"notifier": self.name}


class DisabledNotifier(Notifier):
    """Used when no webhook is configured; only logs the outcome."""

    name = "disabled"

    def notify(self, report: EnforcementReport) -> bool:
        logger.info(
            "Notification skipped (no webhook configured) for volume %s: %s",
            report.volume_id,
            describe_action(report).replace("\n", " "),
            extra={"volume_id": report.volume_id, "reason": report.reason.value},
        )
        return False


class WebhookNotifier(Notifier):
    """Posts a Discord-style embed to an incoming webhook URL."""

    name = "webhook"

    def __init__(
        self,
        *,
        url: str,
        timeout_seconds: float = DEFAULT_WEBHOOK_TIMEOUT_SECONDS,
        opener: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._urlopen = opener or urllib_request.urlopen

    def notify(self, report: EnforcementReport) -> bool:
        payload = json.dumps(render_webhook_payload(report)).encode("utf-8")
        request = urllib_request.Request(
            self.url,
            data=payload,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with self._urlopen(request, timeout=self.timeout_seconds) as response:
                response.read()
        except urllib_error.HTTPError as exc:
            raise NotificationError(message=f"Webhook returned HTTP {exc.code}", detail={"status_code": exc.code}) from exc
        except (urllib_error.URLError, TimeoutError, OSError) as exc:
            raise NotificationError(message=f"Webhook delivery failed: {getattr(exc, 'reason', exc)}") from exc
        return True

    def describe(self) -> Dict[str, str]:
        host = self.url.split("/")[2] if "://" in self.url else self.url
        return {"notifier": self.name, "webhook_host": host}


def create_notifier(config: DaemonConfig) -> Notifier:
    if config.webhook_url:
        return WebhookNotifier(url=config.webhook_url, timeout_seconds=config.http_timeout_seconds)
    return DisabledNotifier()


__all__ = [
    "DisabledNotifier",
    "NotificationError",
    "Notifier",
    "WebhookNotifier",
    "create_notifier",
]
