"""ASGI application serving registered queries over HTTP."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable
from typing import Any, Callable
from urllib.parse import parse_qs

from loguru import logger

from querygate.dispatch import QueryDispatcher
from querygate.engines.base import QueryEngine
from querygate.errors import EngineExecutionError, ProjectionError, QueryGateError
from querygate.query import QueryRegistry
from querygate.serializers import encode_rows

# ASGI types
Scope = dict[str, Any]
Message = dict[str, Any]
ASGIReceive = Callable[[], Awaitable[Message]]
ASGISend = Callable[[Message], Awaitable[None]]

EngineFactory = Callable[[], Awaitable[QueryEngine]]

ALLOWED_METHODS = ("GET", "HEAD")


class Request:
    """HTTP request view over an ASGI scope."""

    def __init__(self, scope: Scope, receive: ASGIReceive):
        self.scope = scope
        self._receive = receive

    @property
    def method(self) -> str:
        """HTTP method."""
        return self.scope["method"]

    @property
    def path(self) -> str:
        """Request path."""
        return self.scope["path"]

    @property
    def query_string(self) -> bytes:
        """Raw query string."""
        return self.scope.get("query_string", b"")

    @property
    def headers(self) -> dict[str, str]:
        """Request headers as a dict."""
        headers = {}
        for name, value in self.scope.get("headers", []):
            headers[name.decode("latin-1").lower()] = value.decode("latin-1")
        return headers

    @property
    def query_params(self) -> dict[str, list[str]]:
        """Query-string values by name, in order of appearance.

        Blank values are kept, so ``?id=`` yields ``{"id": [""]}``.
        """
        return parse_qs(self.query_string.decode("latin-1"), keep_blank_values=True)


class QueryGateApp:
    """ASGI 3.0 application exposing a query registry.

    ``GET <url_path><name>?param=value`` runs the query registered as
    ``name`` and answers with a JSON array of row objects.

    Example:
        app = QueryGateApp(registry, engine_factory=lambda: create_engine("duckdb"))
        # Run with: uvicorn.run(app)
    """

    def __init__(
        self,
        registry: QueryRegistry,
        *,
        engine: QueryEngine | None = None,
        engine_factory: EngineFactory | None = None,
        url_path: str = "/",
    ):
        """Initialize the application.

        Args:
            registry: Read-only query registry
            engine: Ready engine; takes precedence over ``engine_factory``
            engine_factory: Coroutine function creating the engine at startup
            url_path: Path prefix all query names live under
        """
        if engine is None and engine_factory is None:
            raise ValueError("Either engine or engine_factory is required")

        self.registry = registry
        self.url_path = url_path
        self._engine_factory = engine_factory
        self._dispatcher = QueryDispatcher(registry, engine) if engine is not None else None
        self._start_lock = asyncio.Lock()

    @property
    def dispatcher(self) -> QueryDispatcher | None:
        """Dispatcher in use, None before startup."""
        return self._dispatcher

    async def startup(self) -> QueryDispatcher:
        """Create the engine if needed and return the dispatcher."""
        async with self._start_lock:
            if self._dispatcher is None:
                engine = await self._engine_factory()
                self._dispatcher = QueryDispatcher(self.registry, engine)
                logger.info(
                    f"Serving {len(self.registry)} queries under {self.url_path} "
                    f"on {engine.dialect}"
                )
        return self._dispatcher

    async def shutdown(self) -> None:
        """Close the engine."""
        if self._dispatcher is not None:
            await self._dispatcher.engine.close()
            if self._engine_factory is not None:
                self._dispatcher = None

    async def __call__(self, scope: Scope, receive: ASGIReceive, send: ASGISend) -> None:
        """ASGI 3.0 application interface."""
        if scope["type"] == "lifespan":
            await self.handle_lifespan(scope, receive, send)
        elif scope["type"] == "http":
            await self.handle_http(scope, receive, send)
        else:
            raise RuntimeError(f"Unknown scope type: {scope['type']}")

    async def handle_lifespan(self, scope: Scope, receive: ASGIReceive, send: ASGISend) -> None:
        """Handle ASGI lifespan protocol."""
        while True:
            message = await receive()

            if message["type"] == "lifespan.startup":
                try:
                    await self.startup()
                    await send({"type": "lifespan.startup.complete"})
                except Exception as exc:
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    raise

            elif message["type"] == "lifespan.shutdown":
                try:
                    await self.shutdown()
                    await send({"type": "lifespan.shutdown.complete"})
                except Exception as exc:
                    await send({"type": "lifespan.shutdown.failed", "message": str(exc)})
                    raise
                return

    async def handle_http(self, scope: Scope, receive: ASGIReceive, send: ASGISend) -> None:
        """Handle HTTP requests."""
        request = Request(scope, receive)
        head_only = request.method == "HEAD"

        if request.method not in ALLOWED_METHODS:
            await self.send_error(
                send, 405, "Method Not Allowed", headers=[(b"allow", b"GET, HEAD")]
            )
            return

        name = self.query_name(request.path)
        if name is None:
            await self.send_error(send, 404, "Not Found", head_only=head_only)
            return

        try:
            # Unknown names are rejected before the engine is touched
            self.registry.lookup(name)
            dispatcher = await self.startup()
            rows = await dispatcher.dispatch(name, request.query_params)
            content = encode_rows(rows)
        except QueryGateError as exc:
            status = getattr(exc, "status_code", 500)
            # The dispatcher has already logged engine and projection failures
            if status >= 500 and not isinstance(exc, (EngineExecutionError, ProjectionError)):
                logger.error(f"Error serving query {name!r}: {exc}")
            message = str(exc) if status < 500 else "Internal Server Error"
            await self.send_error(send, status, message, head_only=head_only)
            return
        except Exception:
            logger.exception(f"Unhandled error serving query {name!r}")
            await self.send_error(send, 500, "Internal Server Error", head_only=head_only)
            return

        await self.send_response(send, 200, content, head_only=head_only)

    def query_name(self, path: str) -> str | None:
        """Extract the query name from a request path.

        Returns:
            The path below ``url_path``, None when the path is outside it
        """
        if not path.startswith(self.url_path):
            return None
        return path[len(self.url_path):]

    async def send_response(
        self,
        send: ASGISend,
        status: int,
        content: bytes,
        *,
        content_type: str = "application/json",
        headers: list[tuple[bytes, bytes]] | None = None,
        head_only: bool = False,
    ) -> None:
        """Send a complete HTTP response."""
        await send(
            {
                "type": "http.response.start",
                "status": status,
                "headers": [
                    (b"content-type", content_type.encode("latin-1")),
                    (b"content-length", str(len(content)).encode("latin-1")),
                    *(headers or []),
                ],
            }
        )

        await send(
            {
                "type": "http.response.body",
                "body": b"" if head_only else content,
            }
        )

    async def send_error(
        self,
        send: ASGISend,
        status: int,
        message: str,
        *,
        headers: list[tuple[bytes, bytes]] | None = None,
        head_only: bool = False,
    ) -> None:
        """Send an error response."""
        content = json.dumps({"error": message}).encode("utf-8")
        await self.send_response(send, status, content, headers=headers, head_only=head_only)
