"""FastAPI app creation, CORS, global state, and helper functions."""

import logging
import os
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import APIKeyHeader

from ..app import AgentBase
from ..orchestrator.provenance import (
    HEADER_AGENT_ID,
    HEADER_CLIENT_ORGANIZATION_ID,
    HEADER_CLIENT_USER_ID,
    HEADER_PLATFORM_API_KEY,
    HEADER_PLATFORM_USER_ID,
    IdentityContext,
)

logger = logging.getLogger(__name__)

_config_path = os.getenv("AGENTBASE_CONFIG", "config.yaml")

_app: Optional[AgentBase] = None


def _try_load_app():
    """Attempt to load AgentBase from config. Silent if config missing."""
    global _app
    try:
        if os.path.exists(_config_path):
            _app = AgentBase(_config_path)
            logger.info(f"AgentBase loaded from {_config_path}")
        else:
            logger.warning(f"Config not found: {_config_path}")
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to load config: {e}")
        _app = None


def require_app() -> AgentBase:
    """Raise 503 if app is not configured. Lazy-loads on first call."""
    global _app
    if _app is None:
        _try_load_app()
    if _app is None:
        raise HTTPException(503, f"Not configured. Provide a config file at {_config_path}.")
    return _app


def set_app(new_app: Optional[AgentBase]):
    """Set the global _app instance."""
    global _app
    _app = new_app


def get_app_instance() -> Optional[AgentBase]:
    """Get the current global _app instance (may be None)."""
    return _app


# ── Optional API key authentication ──

_API_KEY = os.getenv("AGENTBASE_API_KEY")
_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(
    request: Request,
    api_key_header_value: Optional[str] = Security(_api_key_header),
):
    """Verify API key from Authorization: Bearer <key> or X-API-Key header.

    When AGENTBASE_API_KEY is not set, all requests are allowed (dev mode).
    """
    if _API_KEY is None:
        return None

    if api_key_header_value and api_key_header_value == _API_KEY:
        return api_key_header_value

    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:]
        if token == _API_KEY:
            return token

    raise HTTPException(401, "Invalid or missing API key")


_REQUIRED_IDENTITY_HEADERS = (
    HEADER_CLIENT_USER_ID,
    HEADER_CLIENT_ORGANIZATION_ID,
    HEADER_PLATFORM_USER_ID,
    HEADER_PLATFORM_API_KEY,
)


def identity_from_headers(request: Request) -> IdentityContext:
    """Build the run identity from the headers set by the upstream gateway."""
    missing = [h for h in _REQUIRED_IDENTITY_HEADERS if not request.headers.get(h)]
    if missing:
        raise HTTPException(400, f"Missing identity header(s): {', '.join(missing)}")
    return IdentityContext(
        user_id=request.headers[HEADER_CLIENT_USER_ID],
        organization_id=request.headers[HEADER_CLIENT_ORGANIZATION_ID],
        platform_user_id=request.headers[HEADER_PLATFORM_USER_ID],
        platform_credential=request.headers[HEADER_PLATFORM_API_KEY],
        agent_id=request.headers.get(HEADER_AGENT_ID) or None,
    )


# --- FastAPI app creation (after all helpers are defined to avoid circular imports) ---

def _create_api() -> FastAPI:
    """Create and configure the FastAPI app with routes."""
    _api = FastAPI(title="AgentBase", version="0.1.0")

    allowed_origins_str = os.getenv(
        "AGENTBASE_ALLOWED_ORIGINS",
        "http://localhost:3000,http://localhost:5173",
    )
    allowed_origins = [o.strip() for o in allowed_origins_str.split(",") if o.strip()]
    _api.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if _API_KEY is None:
        logger.warning(
            "AGENTBASE_API_KEY is not set. API endpoints are unauthenticated. "
            "Set AGENTBASE_API_KEY environment variable to enable authentication."
        )

    @_api.on_event("shutdown")
    async def _shutdown():
        if _app is not None:
            await _app.shutdown()

    from .routes import register_routes
    register_routes(_api)
    return _api


api = _create_api()
