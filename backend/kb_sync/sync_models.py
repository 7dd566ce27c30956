"""Pydantic models for sync tasks, resolved handles and processor results."""

from __future__ import annotations

import time
import uuid
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

UpsertAction = Literal["patched", "created", "exists"]


def new_task_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"


class SyncTask(BaseModel):
    id: str = Field(default_factory=new_task_id)
    user_id: str
    payload: Any = None
    retry_count: int = Field(default=0, ge=0)


class KbHandle(BaseModel):
    kbid: str
    slug: Optional[str] = None
    created: bool = False
    from_default: bool = True


class UpsertResult(BaseModel):
    action: UpsertAction
    resource: Any = None
    resource_id: str


class ResourceLink(BaseModel):
    """Cross-service record of which remote resource backs a file or user."""

    model_config = ConfigDict(populate_by_name=True)

    file_id: Optional[str] = Field(default=None, alias="fileId")
    clerk_id: Optional[str] = Field(default=None, alias="clerkId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    nuclia_resource_id: str = Field(alias="nucliaResourceId")
    slug: Optional[str] = None

    def as_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class FileSyncSummary(BaseModel):
    total: int = 0
    synced: int = 0
    failed: int = 0


class SyncResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: UpsertAction
    resource: Any = None
    text_field: Any = Field(default=None, alias="textField")
    resource_id: str = Field(alias="resourceId")
    kbid: str
    files: FileSyncSummary = Field(default_factory=FileSyncSummary)
    links: List[ResourceLink] = Field(default_factory=list)

    def as_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(by_alias=True, exclude={"links"})
        payload["links"] = [link.as_payload() for link in self.links]
        return payload


class SyncRequest(BaseModel):
    """Body accepted by the sync endpoints; validated by hand to keep 400 semantics."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    payload: Any = None
    user_profile: Optional[Dict[str, Any]] = Field(default=None, alias="userProfile")

    def merged_payload(self) -> Any:
        if self.user_profile and isinstance(self.payload, dict) and not self.payload.get("userProfile"):
            return {**self.payload, "userProfile": self.user_profile}
        return self.payload


__all__ = [
    "FileSyncSummary",
    "KbHandle",
    "ResourceLink",
    "SyncRequest",
    "SyncResult",
    "SyncTask",
    "UpsertAction",
    "UpsertResult",
    "new_task_id",
]
