"""FastAPI handler for privileged settings writes and public reads."""

import contextlib
import logging
from datetime import datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from ..config import Config
from ..errors import ConfigurationError, ConflictError, NotFoundError, StoreError
from ..remote import RemoteStoreAdapter

logger = logging.getLogger(__name__)

UPDATE_PATH = "/api/update-settings"
DOCUMENT_PATH = "/settings.json"

SUCCESS_MESSAGE = (
    "Settings updated successfully. Changes will be live in 1-2 minutes after rebuild."
)


def _cors_headers(preflight: bool = False) -> dict[str, str]:
    headers = {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Expose-Headers": "ETag",
    }
    if preflight:
        headers["Access-Control-Allow-Headers"] = "Content-Type, If-Match"
        headers["Access-Control-Allow-Methods"] = "POST, OPTIONS"
    return headers


def _json(body: Any, status_code: int = 200, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        body,
        status_code=status_code,
        headers={**_cors_headers(), **(headers or {})},
    )


def _parse_if_match(value: str | None) -> str | None:
    """Extract a version from an If-Match header; '*' means any.

    Only one version can guard a write, so of a list of tags the first
    one is used.
    """
    if not value:
        return None
    value = value.split(",", 1)[0].strip()
    if value == "*":
        return None
    if value.startswith("W/"):
        value = value[2:]
    return value.strip('"') or None


def create_app(config: Config, adapter: RemoteStoreAdapter | None = None) -> FastAPI:
    """Create the settings handler application.

    Args:
        config: Application configuration.
        adapter: Optional pre-built adapter (tests inject one backed by a
            mock content host).

    Returns:
        Configured FastAPI application.
    """
    if adapter is None:
        adapter = RemoteStoreAdapter(config.contents)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await adapter.close()

    app = FastAPI(
        title="storesync",
        description="Versioned storage of storefront settings",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.adapter = adapter

    def _configuration_error() -> JSONResponse:
        missing = config.contents.missing()
        logger.error(f"Missing content host configuration: {', '.join(missing)}")
        return _json({"error": "Server configuration error"}, status_code=500)

    # ==================== Update handler ====================

    @app.post(UPDATE_PATH)
    async def update_settings(request: Request) -> JSONResponse:
        """Commit a new settings document to the content host."""
        if not config.contents.is_complete:
            return _configuration_error()

        try:
            payload = await request.json()
        except ValueError as e:
            return _json(
                {"error": "Invalid settings payload", "message": str(e)},
                status_code=400,
            )
        if not isinstance(payload, dict):
            return _json(
                {"error": "Invalid settings payload", "message": "Expected a JSON object"},
                status_code=400,
            )

        expected_version = _parse_if_match(request.headers.get("if-match"))

        try:
            result = await adapter.update(payload, expected_version=expected_version)
        except ConfigurationError:
            return _configuration_error()
        except ConflictError as e:
            return _json(
                {"error": "Version conflict", "message": e.message},
                status_code=409,
            )
        except StoreError as e:
            logger.error(f"Settings update failed: {e}")
            status_code = e.status_code if e.status_code and e.status_code >= 400 else 500
            return _json(
                {"error": "Failed to update settings", "message": e.message},
                status_code=status_code,
            )

        return _json(
            {
                "success": True,
                "message": SUCCESS_MESSAGE,
                "commit": result.commit,
                "version": result.version,
            },
            headers={"ETag": f'"{result.version}"'},
        )

    @app.options(UPDATE_PATH)
    async def update_settings_preflight() -> Response:
        """CORS preflight for cross-origin admin panels."""
        return Response(status_code=200, headers=_cors_headers(preflight=True))

    @app.api_route(UPDATE_PATH, methods=["GET", "PUT", "PATCH", "DELETE"])
    async def update_settings_not_allowed() -> JSONResponse:
        return _json({"error": "Method not allowed"}, status_code=405)

    # ==================== Public document ====================

    @app.get(DOCUMENT_PATH)
    async def public_settings(t: str | None = None) -> JSONResponse:
        """Current settings document; ``t`` is a cache buster and ignored."""
        if not config.contents.is_complete:
            return _configuration_error()

        try:
            document = await adapter.read()
        except NotFoundError as e:
            return _json({"error": "Settings not found", "message": e.message}, status_code=404)
        except StoreError as e:
            logger.error(f"Settings read failed: {e}")
            return _json(
                {"error": "Failed to read settings", "message": e.message},
                status_code=502,
            )

        return _json(
            document.content,
            headers={
                "ETag": f'"{document.version}"',
                "Cache-Control": "no-store",
            },
        )

    @app.get("/api/health")
    async def api_health() -> JSONResponse:
        """Health check; always 200 even when misconfigured."""
        contents = config.contents
        return _json({
            "status": "ok" if contents.is_complete else "misconfigured",
            "timestamp": datetime.now().isoformat(),
            "contents": {
                "configured": contents.is_complete,
                "missing": contents.missing(),
                "repository": f"{contents.owner}/{contents.repo}",
                "branch": contents.branch,
                "path": contents.path,
            },
        })

    return app
