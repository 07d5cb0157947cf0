"""HTTP + WebSocket server for agentbridge.

Clients connect to ``/ws`` and send ``claude-command`` messages to run
the agent CLI, ``abort-session`` to cancel one, and ``claude-input``
to feed an interactive session. Every session event is pushed back
over the same socket. Sessions outlive the socket that started them
and can be aborted from any connection or over HTTP.

Usage:
    agentbridge --server [--port PORT]
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import time
import uuid
from typing import Any

import aiohttp
from aiohttp import web

from agentbridge.adapters.event_bus import EventBus
from agentbridge.engine.config import BridgeConfig, EventCallback
from agentbridge.engine.errors import SessionExitError, SessionSpawnError
from agentbridge.engine.events import (
    ProtocolError,
    SessionAborted,
    event_to_dict,
)
from agentbridge.engine.models import SessionRequest
from agentbridge.engine.orchestrator import SessionOrchestrator

logger = logging.getLogger(__name__)

# Image attachments travel inline as base64 data URIs.
_MAX_WS_MESSAGE_BYTES = 64 * 1024 * 1024


class BridgeServer:
    """HTTP + WebSocket front end over a SessionOrchestrator.

    Thin adapter: all session state lives in the orchestrator and its
    registry. This class only handles routing, per-connection event
    fan-out, and background session tasks.
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        orchestrator: SessionOrchestrator | None = None,
    ) -> None:
        self._config = config or BridgeConfig()
        self._orchestrator = orchestrator or SessionOrchestrator(self._config)
        self._host = self._config.host
        self._port = self._config.port
        self._started_at = time.time()
        self._session_tasks: set[asyncio.Task] = set()
        self._connections = 0
        self._app = web.Application(middlewares=[self._request_logging_middleware])
        self._setup_routes()
        logger.info(
            "BridgeServer init host=%s port=%s command=%s pid=%s",
            self._host, self._port, self._config.command, os.getpid(),
        )

    @property
    def app(self) -> web.Application:
        return self._app

    @property
    def orchestrator(self) -> SessionOrchestrator:
        return self._orchestrator

    @web.middleware
    async def _request_logging_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        req_id = request.headers.get("x-agentbridge-request-id", str(uuid.uuid4())[:8])
        request["req_id"] = req_id
        start = time.monotonic()
        logger.info("HTTP %s %s req=%s from=%s", request.method, request.path_qs, req_id, request.remote)
        try:
            response = await handler(request)
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.info(
                "HTTP %s %s req=%s status=%s duration_ms=%.1f",
                request.method, request.path_qs, req_id,
                getattr(response, "status", "?"), elapsed_ms,
            )
            return response
        except Exception:
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.exception("HTTP %s %s req=%s failed duration_ms=%.1f", request.method, request.path_qs, req_id, elapsed_ms)
            raise

    # ── Route setup ──

    def _setup_routes(self) -> None:
        r = self._app.router
        r.add_get("/health", self._handle_health)
        r.add_get("/ws", self._handle_ws)
        r.add_get("/sessions", self._handle_list_sessions)
        r.add_post("/sessions/{id}/abort", self._handle_abort_session)

    # ── HTTP handlers ──

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "pid": os.getpid(),
            "uptime_seconds": round(max(0.0, time.time() - self._started_at), 3),
            "command": self._config.command,
            "active_sessions": len(self._orchestrator.registry),
            "connections": self._connections,
        })

    async def _handle_list_sessions(self, request: web.Request) -> web.Response:
        return web.json_response({"sessions": self._orchestrator.active_sessions()})

    async def _handle_abort_session(self, request: web.Request) -> web.Response:
        session_id = request.match_info["id"]
        success = self._orchestrator.abort(session_id)
        return web.json_response(
            {"sessionId": session_id, "success": success},
            status=200 if success else 404,
        )

    # ── WebSocket ──

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=30.0, max_msg_size=_MAX_WS_MESSAGE_BYTES)
        await ws.prepare(request)

        bus = EventBus()
        sender = asyncio.create_task(self._send_loop(ws, bus))
        self._connections += 1
        req_id = request.get("req_id", "unknown")
        logger.info("WebSocket client connected req=%s active_clients=%d", req_id, self._connections)

        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self._dispatch(msg.data, bus)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.warning("WebSocket error req=%s: %s", req_id, ws.exception())
        finally:
            bus.close()
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
            self._connections -= 1
            logger.info("WebSocket client disconnected req=%s active_clients=%d", req_id, self._connections)
        return ws

    async def _send_loop(self, ws: web.WebSocketResponse, bus: EventBus) -> None:
        async for event in bus.consume():
            if ws.closed:
                logger.debug("WebSocket closed, dropping %s", event.type)
                break
            try:
                await ws.send_json(event_to_dict(event))
            except (ConnectionResetError, RuntimeError) as exc:
                logger.debug("Cannot send %s to client: %s", event.type, exc)
                break

    async def _dispatch(self, raw: str, bus: EventBus) -> None:
        try:
            data = json.loads(raw)
        except ValueError:
            await bus.emit(ProtocolError(error="invalid JSON payload"))
            return
        if not isinstance(data, dict):
            await bus.emit(ProtocolError(error="payload must be an object"))
            return

        msg_type = data.get("type")
        if msg_type == "claude-command":
            request = SessionRequest.from_options(data.get("command"), data.get("options"))
            logger.info(
                "claude-command session_id=%s resume=%s cwd=%s images=%d",
                request.session_id, request.resume, request.cwd, len(request.images),
            )
            self._start_session(request, bus.emit)
        elif msg_type == "abort-session":
            session_id = data.get("sessionId")
            success = bool(session_id) and self._orchestrator.abort(str(session_id))
            await bus.emit(SessionAborted(session_id=session_id, success=success))
        elif msg_type == "claude-input":
            await self._handle_input(data, bus)
        else:
            logger.warning("Unknown WebSocket message type: %s", msg_type)
            await bus.emit(ProtocolError(error=f"unknown message type: {msg_type}"))

    async def _handle_input(self, data: dict[str, Any], bus: EventBus) -> None:
        session_id = str(data.get("sessionId") or "")
        try:
            if data.get("close"):
                found = self._orchestrator.close_input(session_id)
            else:
                found = await self._orchestrator.write_input(
                    session_id, str(data.get("data", "")),
                )
        except (RuntimeError, ConnectionResetError, BrokenPipeError) as exc:
            await bus.emit(ProtocolError(session_id=session_id, error=str(exc)))
            return
        if not found:
            await bus.emit(ProtocolError(
                session_id=session_id, error=f"no active session {session_id}",
            ))

    # ── Session tasks ──

    def _start_session(self, request: SessionRequest, emit: EventCallback) -> asyncio.Task:
        task = asyncio.create_task(self._run_session(request, emit))
        self._session_tasks.add(task)
        task.add_done_callback(self._session_tasks.discard)
        return task

    async def _run_session(self, request: SessionRequest, emit: EventCallback) -> None:
        try:
            await self._orchestrator.run_session(request, emit)
        except SessionSpawnError as exc:
            logger.error("Session spawn failed: %s", exc)
        except SessionExitError as exc:
            logger.warning("%s", exc)
        except Exception:
            logger.exception("Session task failed session_id=%s", request.session_id)

    # ── Lifecycle ──

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

    async def shutdown(self) -> None:
        """Abort all sessions and wait for their tasks to settle."""
        self._orchestrator.shutdown()
        tasks = list(self._session_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def start(self) -> None:
        """Start the server and print the port to stdout."""
        runner = web.AppRunner(self._app)
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._port)
        await site.start()

        actual_port = self._resolve_port(site, runner)
        if actual_port is None:
            raise RuntimeError("agentbridge server started but no listening socket was reported.")
        self._port = actual_port

        sys.stdout.write(json.dumps({"port": actual_port}) + "\n")
        sys.stdout.flush()
        logger.info("agentbridge server listening on %s:%d", self._host, actual_port)

        try:
            await asyncio.Event().wait()
        except (KeyboardInterrupt, asyncio.CancelledError):
            logger.info("Server shutting down")
        finally:
            await self.shutdown()
            await runner.cleanup()
