"""Detect anchors in edited markup so the ledger can describe inserted links."""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from .memory.schema import LinkMetadata, LinkReference

_HAS_LINK = re.compile(r"<a\s+[^>]*href\s*=", re.IGNORECASE)
_ANCHOR = re.compile(
    r"<a\s+[^>]*href\s*=\s*[\"']([^\"']+)[\"'][^>]*>(.*?)</a>",
    re.IGNORECASE | re.DOTALL,
)


def contains_html_links(text: str) -> bool:
    return bool(_HAS_LINK.search(text or ""))


def extract_link_metadata(text: str) -> Optional[LinkMetadata]:
    """Collect ``href``/text pairs from anchors in ``text``; ``None`` without anchors."""
    links = [LinkReference(href=href, text=label) for href, label in _ANCHOR.findall(text or "")]
    if not links:
        return None
    return LinkMetadata(links=links, link_count=len(links))


def resolve_link_metadata(
    new_text: str,
    *,
    declared_links: Optional[bool] = None,
    supplied: Optional[Mapping[str, Any]] = None,
) -> tuple[bool, Optional[LinkMetadata]]:
    """Combine client-supplied link hints with what the markup actually contains."""
    has_links = declared_links if declared_links is not None else contains_html_links(new_text)
    if supplied:
        links = [
            LinkReference(href=str(item.get("href", "")), text=str(item.get("text", "")))
            for item in supplied.get("links") or []
            if isinstance(item, Mapping)
        ]
        count = supplied.get("link_count", supplied.get("linkCount"))
        return has_links, LinkMetadata(links=links, link_count=int(count) if count is not None else len(links))
    if has_links:
        return has_links, extract_link_metadata(new_text)
    return has_links, None
