"""
HTTP server implementation for AppData.

This module exposes the boundary commands as a small REST API, used by
the desktop UI's webview and handy for manual testing:

    GET    /v1/appdata/ids
    GET    /v1/appdata/schemas
    GET    /v1/appdata/{id}/schema
    GET    /v1/appdata/{id}/records/{key}
    PUT    /v1/appdata/{id}/records
    DELETE /v1/appdata/{id}/records/{key}
    GET    /v1/appdata/{id}/records/{key}/exists
    GET    /v1/appdata/{id}/next-key?start=N
    GET    /v1/appdata/{id}/export
    POST   /v1/appdata/{id}/import
    GET    /v1/config
    PUT    /v1/config
    GET    /v1/config/schema
    POST   /v1/config/reload
    GET    /v1/health

Invariants:
    - Record bodies are passed through as bytes; the façade validates them
    - Every AppDataError becomes {"error", "error_code", "details"}
    - Endpoints have the same semantics as AppDataCommands

How to change safely:
    - Add a command to AppDataCommands first, then route it here
    - Keep status codes in ERROR_STATUS in sync with errors.py
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from ..errors import (
    AlreadyInitializedError,
    AppDataError,
    DecodingError,
    EncodingError,
    InvalidKeyError,
    KeyOverflowError,
    NotFoundError,
    StoreError,
)
from .commands import AppDataCommands

logger = logging.getLogger(__name__)

router = APIRouter(tags=["AppData"])

# Most specific first; ValidationError is a DecodingError.
ERROR_STATUS: tuple[tuple[type[AppDataError], int], ...] = (
    (NotFoundError, 404),
    (DecodingError, 400),
    (InvalidKeyError, 400),
    (KeyOverflowError, 409),
    (AlreadyInitializedError, 409),
    (EncodingError, 500),
    (StoreError, 500),
)

JSON_MEDIA_TYPE = "application/json"


# --- Response Models ---


class SaveResponse(BaseModel):
    """Result of a record save."""

    key: int = Field(..., description="Key the record was saved under")


class ExistsResponse(BaseModel):
    """Result of an existence check."""

    exists: bool


class NextKeyResponse(BaseModel):
    """Result of a free key search."""

    key: int = Field(..., description="Smallest free key >= start")


class ImportResponse(BaseModel):
    """Result of a bulk import."""

    imported: int


class HealthResponse(BaseModel):
    """Health check response."""

    healthy: bool
    registered_types: int
    config_initialized: bool


# --- Dependencies ---


def get_commands(request: Request) -> AppDataCommands:
    """Get the command handler from app state."""
    return request.app.state.commands


# --- Record Routes ---


@router.get("/v1/appdata/ids", response_model=list[str])
async def list_identifiers(request: Request) -> list[str]:
    """List registered identifiers, sorted."""
    return await get_commands(request).list_identifiers()


@router.get("/v1/appdata/schemas")
async def list_schemas(request: Request) -> list[dict[str, Any]]:
    """List schemas of all registered types, in identifier order."""
    return await get_commands(request).list_schemas()


@router.get("/v1/appdata/{id}/schema")
async def get_schema(id: str, request: Request) -> dict[str, Any]:
    """Get the schema of one type."""
    return await get_commands(request).get_schema(id)


@router.get("/v1/appdata/{id}/records/{key}")
async def get_record(id: str, key: int, request: Request) -> Response:
    """Get one record in the boundary encoding."""
    data = await get_commands(request).get_record(id, key)
    if data is None:
        raise NotFoundError(f"{id} record not found: {key}", id=id)
    return Response(content=data, media_type=JSON_MEDIA_TYPE)


@router.put("/v1/appdata/{id}/records", response_model=SaveResponse)
async def save_record(id: str, request: Request) -> SaveResponse:
    """Save one record; the body is the encoded record."""
    body = await request.body()
    key = await get_commands(request).save_record(id, body)
    return SaveResponse(key=key)


@router.delete("/v1/appdata/{id}/records/{key}", status_code=204)
async def remove_record(id: str, key: int, request: Request) -> Response:
    """Delete one record."""
    await get_commands(request).remove_record(id, key)
    return Response(status_code=204)


@router.get("/v1/appdata/{id}/records/{key}/exists", response_model=ExistsResponse)
async def exists_record(id: str, key: int, request: Request) -> ExistsResponse:
    """Check whether a record exists."""
    return ExistsResponse(exists=await get_commands(request).exists_record(id, key))


@router.get("/v1/appdata/{id}/next-key", response_model=NextKeyResponse)
async def find_next_key(id: str, request: Request, start: int = 0) -> NextKeyResponse:
    """Find the smallest free key >= start."""
    return NextKeyResponse(key=await get_commands(request).find_next_key(id, start))


@router.get("/v1/appdata/{id}/export")
async def export_records(id: str, request: Request) -> Response:
    """Download every record of a type as an export document."""
    data = await get_commands(request).export_records(id)
    return Response(
        content=data,
        media_type=JSON_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{id}.json"'},
    )


@router.post("/v1/appdata/{id}/import", response_model=ImportResponse)
async def import_records(id: str, request: Request) -> ImportResponse:
    """Merge an export document into the store."""
    body = await request.body()
    return ImportResponse(imported=await get_commands(request).import_records(id, body))


# --- Config Routes ---


@router.get("/v1/config/schema")
async def get_config_schema(request: Request) -> dict[str, Any]:
    """Get the AppConfig schema."""
    return await get_commands(request).get_config_schema()


@router.get("/v1/config")
async def get_config(request: Request) -> Response:
    """Get the live configuration."""
    config = await get_commands(request).get_config()
    return Response(content=config.model_dump_json(by_alias=True), media_type=JSON_MEDIA_TYPE)


@router.put("/v1/config")
async def save_config(request: Request) -> Response:
    """Replace the configuration; the body is the whole AppConfig."""
    body = await request.body()
    config = await get_commands(request).save_config(body)
    return Response(content=config.model_dump_json(by_alias=True), media_type=JSON_MEDIA_TYPE)


@router.post("/v1/config/reload")
async def reload_config(request: Request) -> Response:
    """Re-read the configuration from the store."""
    config = await get_commands(request).reload_config()
    return Response(content=config.model_dump_json(by_alias=True), media_type=JSON_MEDIA_TYPE)


@router.get("/v1/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Health check."""
    commands = get_commands(request)
    return HealthResponse(
        healthy=True,
        registered_types=len(commands.registry),
        config_initialized=commands.config_cell.initialized,
    )


# --- Application ---


def error_status(exc: AppDataError) -> int:
    """HTTP status for an AppDataError."""
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


async def handle_appdata_error(request: Request, exc: AppDataError) -> JSONResponse:
    """Translate an AppDataError into a JSON error response."""
    status = error_status(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    else:
        logger.debug(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(exc.to_dict(), status_code=status)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler for bugs."""
    logger.error(f"HTTP handler error: {exc}", exc_info=exc)
    return JSONResponse(
        {"error": str(exc), "error_code": "INTERNAL", "details": {}},
        status_code=500,
    )


def create_http_app(
    commands: AppDataCommands | None = None,
    cors_origins: list[str] | None = None,
    **kwargs: Any,
) -> FastAPI:
    """Create the HTTP application.

    Args:
        commands: Command handler (one over the global registry if omitted)
        cors_origins: Allowed CORS origins
        **kwargs: Passed to FastAPI (e.g. lifespan)

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="Craft AppData",
        description="Typed record storage addressed by identifier, plus live app configuration.",
        version="1.0.0",
        **kwargs,
    )
    app.state.commands = commands or AppDataCommands()

    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(AppDataError, handle_appdata_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.include_router(router)
    return app
