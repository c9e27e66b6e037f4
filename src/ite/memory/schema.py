"""Typed records tracked by the edit ledger."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False)


class EditStatus(str, Enum):
    """Lifecycle states for a recorded edit."""

    PENDING = "pending"
    PROCESSING = "processing"
    APPLIED = "applied"
    FAILED = "failed"
    CONFLICT = "conflict"


# Statuses a batch run picks up unless every edit is requested.
RECONCILABLE_STATUSES = (EditStatus.PENDING, EditStatus.PROCESSING, EditStatus.FAILED)


class LinkReference(RecordModel):
    """Anchor extracted from edited markup."""

    href: str
    text: str


class LinkMetadata(RecordModel):
    """Summary of the anchors carried by an edit."""

    links: List[LinkReference] = Field(default_factory=list)
    link_count: int = 0


class EditRecord(RecordModel):
    """One edit submitted from the live preview."""

    id: Optional[int] = None
    original_text: str
    new_text: str
    status: EditStatus = EditStatus.PENDING
    page_url: str
    element_id: str
    component_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    contains_html_links: bool = False
    link_metadata: Optional[LinkMetadata] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
