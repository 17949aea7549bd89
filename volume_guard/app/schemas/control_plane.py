from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ServerLimits(BaseModel):
    # Disk limit in MiB as reported by the panel; 0 means unlimited.
    disk: int = 0

    model_config = ConfigDict(extra="ignore")


class ServerAttributes(BaseModel):
    id: int
    uuid: str
    identifier: Optional[str] = None
    name: str = ""
    suspended: bool = False
    limits: ServerLimits = Field(default_factory=ServerLimits)

    model_config = ConfigDict(extra="ignore")

    @property
    def quota_gb(self) -> float:
        return max(self.limits.disk, 0) / 1024

    @property
    def client_identifier(self) -> str:
        return self.identifier or self.uuid


class ServerObject(BaseModel):
    object: str = "server"
    attributes: ServerAttributes

    model_config = ConfigDict(extra="ignore")


class Pagination(BaseModel):
    total: int = 0
    count: int = 0
    per_page: int = 0
    current_page: int = 1
    total_pages: int = 1

    model_config = ConfigDict(extra="ignore")


class ListMeta(BaseModel):
    pagination: Pagination = Field(default_factory=Pagination)

    model_config = ConfigDict(extra="ignore")


class ServerListPage(BaseModel):
    object: str = "list"
    data: List[ServerObject] = Field(default_factory=list)
    meta: ListMeta = Field(default_factory=ListMeta)

    model_config = ConfigDict(extra="ignore")


class PowerSignalRequest(BaseModel):
    signal: str = "kill"


class SuspendRequest(BaseModel):
    suspended: bool = True
