"""FastAPI application for the claude-fig settings dashboard."""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from claudefig import __version__
from claudefig.api.watchers import settings_watch_loop
from claudefig.api.websocket import WebSocketRegistry, parse_topics
from claudefig.context import AppContext
from claudefig.errors import FigError

logger = logging.getLogger(__name__)

WS_KEEPALIVE_INTERVAL = 30  # seconds between WebSocket pings


def _build_allowed_origins(host: str, port: int) -> list[str]:
    """Build the CORS / WebSocket allowed origins list.

    >>> _build_allowed_origins("127.0.0.1", 8765)
    ['http://127.0.0.1:8765', 'http://localhost:8765']
    >>> _build_allowed_origins("0.0.0.0", 8765)
    ['*']
    """
    if host == "0.0.0.0":
        return ["*"]
    return [f"http://127.0.0.1:{port}", f"http://localhost:{port}"]


def _error_response(status_code: int, message: str, code: str, **extra) -> JSONResponse:
    error = {"message": message, "code": code}
    error.update(extra)
    return JSONResponse(status_code=status_code, content={"error": error})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the settings watcher; on shutdown stop it and close every editor."""
    ctx: AppContext = app.state.ctx
    if ctx.config.host == "0.0.0.0":
        logger.warning(
            "Dashboard exposed to network; anyone who can reach it can edit your settings"
        )

    watch_task = asyncio.create_task(
        settings_watch_loop(app, interval=ctx.config.poll_interval)
    )
    logger.info("Started settings watcher (every %ss)", ctx.config.poll_interval)

    yield

    watch_task.cancel()
    try:
        await watch_task
    except asyncio.CancelledError:
        pass
    await ctx.editors.close_all()


def create_app(ctx: Optional[AppContext] = None) -> FastAPI:
    """Build the dashboard app around ``ctx`` (a fresh context by default)."""
    ctx = ctx or AppContext.create()

    app = FastAPI(
        title="claude-fig dashboard",
        description="Local editor for Claude Code settings, MCP servers and CLAUDE.md files.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.ctx = ctx
    app.state.allowed_origins = _build_allowed_origins(ctx.config.host, ctx.config.port)

    origins = app.state.allowed_origins
    # allow_credentials must be False when origins is ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Exception handlers ---

    @app.exception_handler(FigError)
    async def fig_error_handler(request: Request, exc: FigError):
        return _error_response(
            exc.status_code,
            exc.message,
            exc.code,
            recovery=exc.recovery_suggestion,
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error_response(
            status.HTTP_400_BAD_REQUEST, str(exc), "VALIDATION_ERROR"
        )

    @app.exception_handler(IndexError)
    async def index_error_handler(request: Request, exc: IndexError):
        return _error_response(status.HTTP_404_NOT_FOUND, str(exc), "NOT_FOUND")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception: %s", exc)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An internal error occurred",
            "INTERNAL_ERROR",
        )

    # --- WebSocket event bus ---

    @app.websocket("/api/ws")
    async def websocket_endpoint(ws: WebSocket):
        """Event bus for toasts and settings changes.

        ``/api/ws?topics=toast,settings_changed``; default is ``*``.
        """
        allowed = app.state.allowed_origins
        if "*" not in allowed:
            origin = ws.headers.get("origin", "")
            # Non-browser clients send no Origin header
            if origin and origin not in allowed:
                await ws.close(code=4003, reason="Origin not allowed")
                return

        await ws.accept()
        topics = parse_topics(ws.query_params.get("topics"))
        registry: WebSocketRegistry = ctx.ws_registry
        await registry.connect(ws, topics)
        logger.debug(
            "WebSocket client connected (topics=%s, total=%d)",
            topics,
            registry.client_count,
        )

        async def _keepalive():
            while True:
                await asyncio.sleep(WS_KEEPALIVE_INTERVAL)
                try:
                    await ws.send_text(json.dumps({"type": "ping"}))
                except Exception:
                    break

        keepalive_task = asyncio.create_task(_keepalive())
        try:
            while True:
                # Nothing is expected from clients; reading detects disconnects
                await ws.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            keepalive_task.cancel()
            try:
                await keepalive_task
            except asyncio.CancelledError:
                pass
            registry.disconnect(ws)
            logger.debug("WebSocket client disconnected (total=%d)", registry.client_count)

    # --- Routes ---

    from claudefig.api.routes import claude_md, editors, mcp, projects, system

    app.include_router(system.router, prefix="/api", tags=["system"])
    app.include_router(editors.router, prefix="/api", tags=["editors"])
    app.include_router(claude_md.router, prefix="/api", tags=["claude-md"])
    app.include_router(mcp.router, prefix="/api", tags=["mcp"])
    app.include_router(projects.router, prefix="/api", tags=["projects"])

    return app
