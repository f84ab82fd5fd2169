"""Loopback HTTP server receiving hook callbacks from spawned agents.

Spawned CLIs run a hook command that POSTs the tool's native JSON
payload to ``/hook/{agent_id}`` or ``/hook/{agent_id}/{event_hint}``
with the agent's nonce in the ``X-Clubhouse-Nonce`` header.

Every routable request gets an empty 200 as soon as the body has been
read. Authentication, normalization and fan-out happen afterwards in
the same handler, so a hook process never waits on (or learns about)
internal processing. Events for unknown agents or with a bad nonce are
dropped.
"""
from __future__ import annotations

import asyncio
import json
import logging
import secrets
import time
import uuid
from typing import Callable

from aiohttp import web

from clubhouse.adapters.event_bus import EventBus
from clubhouse.adapters.surfaces import HOOK_EVENT_CHANNEL, SurfaceRegistry
from clubhouse.engine.errors import HookServerError, OrchestrationError
from clubhouse.engine.hook_config import NONCE_HEADER
from clubhouse.engine.providers.base import Provider
from clubhouse.engine.providers.types import NormalizedHookEvent
from clubhouse.engine.registrations import AgentRegistry

logger = logging.getLogger(__name__)

HOOK_PREFIX = "/hook/"
EVENT_NAME_FIELD = "hook_event_name"

# (workspace_path, provider_id) -> Provider
ProviderLookup = Callable[[str, str | None], Provider]


class HookServer:
    """Hook ingestion service with an explicit start/stop lifecycle."""

    def __init__(
        self,
        registrations: AgentRegistry,
        resolve_provider: ProviderLookup,
        event_bus: EventBus | None = None,
        surfaces: SurfaceRegistry | None = None,
        host: str = "127.0.0.1",
        port: int = 0,
    ) -> None:
        self._registrations = registrations
        self._resolve_provider = resolve_provider
        self._event_bus = event_bus
        self._surfaces = surfaces if surfaces is not None else SurfaceRegistry()
        self._host = host
        self._requested_port = port
        self._port = 0
        self._runner: web.AppRunner | None = None
        self._starting: asyncio.Future[int] | None = None

    # ── Application ──

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[self._request_logging_middleware])
        # Catch-all so wrong methods and paths get 404 rather than 405
        app.router.add_route("*", "/{tail:.*}", self._handle_request)
        return app

    @web.middleware
    async def _request_logging_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        req_id = str(uuid.uuid4())[:8]
        request["req_id"] = req_id
        start = time.monotonic()
        try:
            response = await handler(request)
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.debug(
                "HTTP %s %s req=%s status=%s duration_ms=%.1f",
                request.method, request.path, req_id,
                getattr(response, "status", "?"), elapsed_ms,
            )
            return response
        except Exception:
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.exception(
                "HTTP %s %s req=%s failed duration_ms=%.1f",
                request.method, request.path, req_id, elapsed_ms,
            )
            raise

    # ── Request handling ──

    @staticmethod
    def parse_hook_path(path: str) -> tuple[str, str | None] | None:
        """Split ``/hook/{agent}[/{hint}]``; None when not a hook path."""
        if not path.startswith(HOOK_PREFIX):
            return None
        rest = path[len(HOOK_PREFIX):]
        agent_id, sep, hint = rest.partition("/")
        return agent_id, (hint if sep and hint else None)

    async def _handle_request(self, request: web.Request) -> web.StreamResponse:
        route = self.parse_hook_path(request.path)
        if request.method != "POST" or route is None:
            return web.Response(status=404)
        agent_id, event_hint = route
        if not agent_id:
            return web.Response(status=400)

        body = await request.read()
        nonce = request.headers.get(NONCE_HEADER)

        # Acknowledge delivery before any processing
        response = web.Response(status=200)
        await response.prepare(request)
        await response.write_eof()

        await self.process_hook(agent_id, event_hint, body, nonce)
        return response

    async def process_hook(
        self,
        agent_id: str,
        event_hint: str | None,
        body: bytes,
        nonce: str | None,
    ) -> bool:
        """Authenticate, normalize and fan out one delivery.

        Returns True when an event was fanned out. Never raises for bad
        input; every rejection is a silent (logged) drop.
        """
        try:
            raw = json.loads(body.decode("utf-8")) if body else None
        except (UnicodeDecodeError, ValueError) as exc:
            logger.error("Failed to parse hook event for agent %s: %s", agent_id, exc)
            return False

        if event_hint and isinstance(raw, dict) and not raw.get(EVENT_NAME_FIELD):
            raw[EVENT_NAME_FIELD] = event_hint

        registration = self._registrations.get(agent_id)
        if registration is None:
            # Agent already exited, or a caller we never spawned
            return False

        # Non-UTF-8 header bytes arrive surrogate-escaped
        if nonce is None or not secrets.compare_digest(
            nonce.encode("utf-8", errors="surrogateescape"),
            registration.nonce.encode("utf-8"),
        ):
            logger.warning("Rejected hook event with invalid nonce for agent %s", agent_id)
            return False

        try:
            provider = self._resolve_provider(
                registration.workspace_path, registration.provider_id,
            )
        except OrchestrationError as exc:
            logger.error("No provider for agent %s: %s", agent_id, exc)
            return False

        event = provider.parse_hook_event(raw)
        if event is None:
            logger.debug("Ignoring unrecognized hook payload for agent %s", agent_id)
            return False

        await self.publish(agent_id, event, provider)
        return True

    async def publish(
        self,
        agent_id: str,
        event: NormalizedHookEvent,
        provider: Provider | None = None,
    ) -> None:
        """Fan a normalized event out to every live surface and the bus.

        Fills in ``tool_verb`` (falling back to "Using <tool>") and the
        millisecond timestamp. Also used for events derived from
        headless output, which never pass through HTTP.
        """
        if event.tool_name and not event.tool_verb:
            verb = provider.tool_verb(event.tool_name) if provider else None
            event.tool_verb = verb or f"Using {event.tool_name}"
        event.timestamp = int(time.time() * 1000)

        self._surfaces.broadcast(HOOK_EVENT_CHANNEL, agent_id, event.to_dict())
        if self._event_bus is not None:
            await self._event_bus.emit_hook_event(agent_id, event)

    # ── Lifecycle ──

    @property
    def port(self) -> int:
        """Bound port, or 0 when not listening."""
        return self._port

    @property
    def hook_url(self) -> str:
        if not self._port:
            raise HookServerError("Hook server not started")
        return f"http://{self._host}:{self._port}/hook"

    @property
    def surfaces(self) -> SurfaceRegistry:
        return self._surfaces

    async def start(self) -> int:
        """Bind the listener and return its port.

        Concurrent callers share one startup and get the same port. A
        bind failure propagates to every waiting caller.
        """
        if self._port:
            return self._port
        if self._starting is None:
            self._starting = asyncio.ensure_future(self._bind())
        starting = self._starting
        try:
            return await asyncio.shield(starting)
        except Exception:
            if self._starting is starting:
                self._starting = None
            raise

    async def _bind(self) -> int:
        runner = web.AppRunner(self.build_app(), access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._requested_port)
        try:
            await site.start()
        except OSError as exc:
            await runner.cleanup()
            logger.error("Hook server failed to bind %s:%s: %s", self._host, self._requested_port, exc)
            raise HookServerError(f"Failed to bind hook server: {exc}") from exc

        port = self._resolve_port(site, runner)
        if port is None:
            await runner.cleanup()
            raise HookServerError("Hook server started but no listening socket was reported.")

        self._runner = runner
        self._port = port
        logger.info("Hook server listening on %s:%d", self._host, port)
        return port

    async def wait_ready(self) -> int:
        """Port of the running server, waiting for an in-flight start.

        Raises HookServerError if start() was never called.
        """
        if self._port:
            return self._port
        if self._starting is not None:
            return await asyncio.shield(self._starting)
        raise HookServerError("Hook server not started")

    async def stop(self) -> None:
        """Release the socket and reset so start() can run again."""
        starting, self._starting = self._starting, None
        if starting is not None and not starting.done():
            try:
                await starting
            except Exception as exc:
                logger.debug("Hook server start was still failing at stop: %s", exc)
        runner, self._runner = self._runner, None
        self._port = 0
        if runner is not None:
            await runner.cleanup()
            logger.info("Hook server stopped")

    @staticmethod
    def _resolve_port(site, runner) -> int | None:
        sockets = getattr(getattr(site, "_server", None), "sockets", None) or ()
        if sockets:
            return sockets[0].getsockname()[1]
        addresses = getattr(runner, "addresses", None) or ()
        if addresses:
            first = addresses[0]
            if isinstance(first, tuple) and len(first) >= 2:
                return int(first[1])
        return None
