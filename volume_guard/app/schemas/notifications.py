from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from ..detection.classifier import AbuseReason


class EnforcementReport(BaseModel):
    """What happened to one flagged volume, as handed to a notifier."""

    volume_id: str = Field(alias="volumeId")
    tenant_name: str = Field(default="", alias="tenantName")
    reason: AbuseReason
    details: str = ""
    killed: bool = False
    wiped: bool = False
    suspended: bool = False
    dry_run: bool = Field(default=False, alias="dryRun")
    errors: List[str] = Field(default_factory=list)
    occurred_at: datetime = Field(alias="occurredAt")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class EmbedField(BaseModel):
    name: str
    value: str
    inline: bool = False


class Embed(BaseModel):
    title: str
    color: int
    fields: List[EmbedField] = Field(default_factory=list)
    timestamp: datetime

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return value.isoformat()


class WebhookMessage(BaseModel):
    content: Optional[str] = None
    embeds: List[Embed] = Field(default_factory=list)
