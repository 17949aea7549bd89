"""Rendering helpers for enforcement notifications."""
from __future__ import annotations

from typing import Dict, List

from ..app.detection.classifier import AbuseReason
from ..app.schemas.notifications import Embed, EmbedField, EnforcementReport, WebhookMessage

EMBED_TITLE = "⚠️ Volume Abuse Detection"
COLOR_ENFORCED = 0xFF0000
COLOR_PARTIAL = 0xFFA500
COLOR_DRY_RUN = 0x3498DB

# Discord caps embed field values at 1024 characters.
_FIELD_LIMIT = 1024
_CODE_FENCE_OVERHEAD = len("```fix\n\n```")


def _code_block(value: str) -> str:
    text = value or "-"
    budget = _FIELD_LIMIT - _CODE_FENCE_OVERHEAD
    if len(text) > budget:
        text = text[: budget - 1] + "…"
    return f"```fix\n{text}\n```"


def describe_action(report: EnforcementReport) -> str:
    """Human readable summary of the enforcement outcome."""

    if report.dry_run:
        return "Dry run: no files were deleted and the server was not suspended."

    lines: List[str] = []
    if report.killed:
        lines.append("Server process was killed.")
    lines.append("All files have been deleted." if report.wiped else "Files were NOT deleted.")
    lines.append("Volume has been suspended." if report.suspended else "Suspension FAILED.")
    for error in report.errors:
        lines.append(f"Error: {error}")
    return "\n".join(lines)


def _color_for(report: EnforcementReport) -> int:
    if report.dry_run:
        return COLOR_DRY_RUN
    if report.suspended:
        return COLOR_ENFORCED
    return COLOR_PARTIAL


def render_enforcement_embed(report: EnforcementReport) -> WebhookMessage:
    reason_label = report.reason.label if isinstance(report.reason, AbuseReason) else str(report.reason)
    fields = [
        EmbedField(name="Volume", value=_code_block(report.volume_id)),
        EmbedField(name="Name", value=_code_block(report.tenant_name)),
        EmbedField(name="Reason", value=_code_block(reason_label)),
        EmbedField(name="Details", value=_code_block(report.details)),
        EmbedField(name="Action Taken", value=_code_block(describe_action(report))),
    ]
    embed = Embed(
        title=EMBED_TITLE,
        color=_color_for(report),
        fields=fields,
        timestamp=report.occurred_at,
    )
    return WebhookMessage(embeds=[embed])


def render_webhook_payload(report: EnforcementReport) -> Dict[str, object]:
    return render_enforcement_embed(report).model_dump(mode="json", exclude_none=True)


__all__ = [
    "COLOR_DRY_RUN",
    "COLOR_ENFORCED",
    "COLOR_PARTIAL",
    "EMBED_TITLE",
    "describe_action",
    "render_enforcement_embed",
    "render_webhook_payload",
]
