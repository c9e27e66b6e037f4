"""Request and response payloads for the text editor API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ApiModel(BaseModel):
    """Accept camelCase wire names while exposing snake_case attributes."""

    model_config = ConfigDict(populate_by_name=True)


class EditRequest(ApiModel):
    """Edit captured by the live preview"""

    original_text: str = Field(alias="originalText")
    new_text: str = Field(alias="newText")  # may contain anchor markup
    herokit_id: str = Field(alias="herokitId")
    component_id: Optional[str] = Field(default=None, alias="componentId")
    element_tag: str = Field(alias="elementTag")
    page_url: str = Field(alias="pageUrl")
    page_title: Optional[str] = Field(default=None, alias="pageTitle")
    contains_html_links: Optional[bool] = Field(default=None, alias="containsHtmlLinks")
    link_metadata: Optional[Dict[str, Any]] = Field(default=None, alias="linkMetadata")


class EditResponse(ApiModel):
    success: bool
    edit_id: int = Field(serialization_alias="editId")
    message: str
    status: str
    is_production: bool = Field(serialization_alias="isProduction")


class OriginalTextRequest(ApiModel):
    page_url: str = Field(alias="pageUrl")
    herokit_id: str = Field(alias="herokitId")


class OriginalTextResponse(ApiModel):
    success: bool = True
    original_text: str = Field(serialization_alias="originalText")


class HistoryEntry(ApiModel):
    """Ledger entry as shown to the editor UI"""

    id: int
    original_text: str = Field(serialization_alias="originalText")
    new_text: str = Field(serialization_alias="newText")
    status: str
    page_url: str = Field(serialization_alias="pageUrl")
    herokit_id: str = Field(serialization_alias="herokitId")
    component_id: Optional[str] = Field(default=None, serialization_alias="componentId")
    created_at: str = Field(serialization_alias="createdAt")
    updated_at: str = Field(serialization_alias="updatedAt")


class HistoryResponse(ApiModel):
    success: bool = True
    edits: List[HistoryEntry] = Field(default_factory=list)
