"""HTTP surface for submitting and looking up inline text edits."""

from .app import clean_page_url, create_app

__all__ = ["clean_page_url", "create_app"]
