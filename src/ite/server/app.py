"""
Inline Text Editor API - FastAPI application factory
"""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Mapping, Optional

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import copy_config_template, resolve_project_root, search_settings, server_settings
from ..errors import StorageUnavailable, WriteFailure
from ..links import resolve_link_metadata
from ..memory.schema import EditRecord, EditStatus
from ..memory.store import EditLedger
from ..reconcile import Reconciler
from .models import (
    EditRequest,
    EditResponse,
    HistoryEntry,
    HistoryResponse,
    OriginalTextRequest,
    OriginalTextResponse,
)

LOGGER = logging.getLogger(__name__)

_EDITOR_QUERY = re.compile(r"\?editor(?:=true)?$")

router = APIRouter()


def clean_page_url(page_url: str) -> str:
    """Drop the ``?editor`` switch the live preview appends to page URLs."""
    return _EDITOR_QUERY.sub("", page_url.strip())


def _reconciler(request: Request) -> Reconciler:
    return request.app.state.reconciler


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@router.post("/api/text-editor")
def submit_edit(payload: EditRequest, request: Request) -> JSONResponse:
    """Record an edit and, outside production mode, apply it to the source files"""
    reconciler = _reconciler(request)
    is_production: bool = request.app.state.is_production

    has_links, link_metadata = resolve_link_metadata(
        payload.new_text,
        declared_links=payload.contains_html_links,
        supplied=payload.link_metadata,
    )
    edit = EditRecord(
        original_text=payload.original_text,
        new_text=payload.new_text,
        page_url=clean_page_url(payload.page_url),
        element_id=payload.herokit_id,
        component_id=payload.component_id,
        contains_html_links=has_links,
        link_metadata=link_metadata,
        metadata={
            "userAgent": request.headers.get("user-agent"),
            "origin": request.headers.get("origin") or "unknown",
            "componentId": payload.component_id,
            "elementTag": payload.element_tag,
            "pageTitle": payload.page_title,
            "cssSelector": f'[herokit-id="{payload.herokit_id}"]',
        },
    )

    try:
        edit_id, outcome = reconciler.submit(edit, record_only=is_production)
    except WriteFailure as error:
        LOGGER.error("Edit for %s could not be written: %s", edit.page_url, error)
        return _error(str(error), 500)

    if not outcome.success:
        message = outcome.message or "Edit failed"
    elif is_production:
        message = outcome.message
    else:
        message = "Text successfully updated"
    response = EditResponse(
        success=outcome.success,
        edit_id=edit_id,
        message=message,
        status=(outcome.status or EditStatus.FAILED).value,
        is_production=is_production,
    )
    return JSONResponse(
        status_code=200 if outcome.success else 400,
        content=response.model_dump(by_alias=True),
    )


def _original_text_response(request: Request, page_url: str, herokit_id: str) -> JSONResponse:
    ledger = _reconciler(request).ledger
    original = ledger.lookup_original(clean_page_url(page_url), herokit_id)
    if original is None:
        return _error("No original text found in database", 404)
    return JSONResponse(content=OriginalTextResponse(original_text=original).model_dump(by_alias=True))


@router.get("/api/text-editor/original")
def get_original_text(
    request: Request,
    page_url: str = Query(..., alias="pageUrl"),
    herokit_id: str = Query(..., alias="herokitId"),
) -> JSONResponse:
    """Most recent recorded original text for an element"""
    return _original_text_response(request, page_url, herokit_id)


@router.post("/api/text-editor/original")
def post_original_text(payload: OriginalTextRequest, request: Request) -> JSONResponse:
    return _original_text_response(request, payload.page_url, payload.herokit_id)


@router.get("/api/text-editor/history")
def edit_history(
    request: Request,
    page_url: Optional[str] = Query(default=None, alias="pageUrl"),
    limit: int = Query(default=50, ge=1, le=500),
) -> JSONResponse:
    """Newest-first edit history, optionally for one page"""
    ledger = _reconciler(request).ledger
    records = ledger.history(clean_page_url(page_url) if page_url else None, limit)
    response = HistoryResponse(
        edits=[
            HistoryEntry(
                id=record.id or 0,
                original_text=record.original_text,
                new_text=record.new_text,
                status=record.status.value,
                page_url=record.page_url,
                herokit_id=record.element_id,
                component_id=record.component_id,
                created_at=record.created_at.isoformat(),
                updated_at=record.updated_at.isoformat(),
            )
            for record in records
        ]
    )
    return JSONResponse(content=response.model_dump(by_alias=True))


@router.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint"""
    return {"status": "healthy", "service": "inline-text-editor"}


async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    issues = ", ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()) if part != 'body')}: {error.get('msg')}"
        for error in exc.errors()
    )
    return _error(f"Invalid data format: {issues}", 400)


async def _storage_error(_request: Request, exc: StorageUnavailable) -> JSONResponse:
    LOGGER.error("Edit ledger unavailable: %s", exc)
    return _error(str(exc), 500)


def create_app(
    config: Mapping[str, Any] | None = None,
    *,
    config_path: Optional[Path] = None,
    ledger: Optional[EditLedger] = None,
    project_root: Optional[Path] = None,
) -> FastAPI:
    """Build the API around an explicit ledger and project root."""
    config_data = dict(config) if config is not None else copy_config_template()
    settings = server_settings(config_data)
    root = project_root or resolve_project_root(config_data, config_path)
    owns_ledger = ledger is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        LOGGER.info("Serving text edits for %s (%s mode)", root, settings.mode)
        yield
        if owns_ledger:
            app.state.reconciler.ledger.close()

    app = FastAPI(
        title="Inline Text Editor",
        description="Records live-preview text edits and reconciles them into site sources",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.reconciler = Reconciler(
        ledger if ledger is not None else EditLedger.from_config(config_data),
        root,
        search_settings(config_data),
    )
    app.state.is_production = settings.is_production

    if settings.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.allowed_origins),
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )

    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(StorageUnavailable, _storage_error)
    app.include_router(router)
    return app
