"""Async HTTP server for the chat API.

Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop.  The RAG
pipeline and session store are long-lived objects built in the startup hook
(or injected by tests) and released in the cleanup hook.
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import Any

from aiohttp import web

from f1gpt.config import settings
from f1gpt.errors import CollectionUnavailableError, GenerationError, InvalidRequestError
from f1gpt.models import ChatSession
from f1gpt.rag.embeddings import EmbeddingClient
from f1gpt.rag.generation import create_generator
from f1gpt.rag.pipeline import RagPipeline, parse_chat_request
from f1gpt.rag.vector_store import VectorStoreGateway
from f1gpt.sessions import SessionStore
from f1gpt.streaming import get_encoder

logger = logging.getLogger(__name__)

PIPELINE_KEY = web.AppKey("pipeline", RagPipeline)
SESSION_STORE_KEY = web.AppKey("session_store", SessionStore)

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

GENERIC_STREAM_ERROR = "An error occurred while generating the answer."


def build_pipeline() -> RagPipeline:
    """Construct the pipeline and its gateways from settings."""
    return RagPipeline(
        embedder=EmbeddingClient(),
        store=VectorStoreGateway(),
        generator=create_generator(),
    )


# -- Chat ---------------------------------------------------------------------


async def _handle_chat(request: web.Request) -> web.StreamResponse:
    """POST /api/chat — stream an answer for the posted conversation."""
    try:
        payload: Any = await request.json()
    except ValueError:
        logger.warning("Chat bad request: invalid JSON")
        return web.json_response({"error": "invalid JSON"}, status=400)

    try:
        messages = parse_chat_request(payload)
    except InvalidRequestError as exc:
        logger.warning("Chat bad request: %s", exc)
        return web.json_response({"error": str(exc)}, status=400)

    pipeline = request.app[PIPELINE_KEY]
    try:
        prepared = await pipeline.prepare(messages)
    except CollectionUnavailableError:
        return web.json_response(
            {"error": "Vector store error fetching collection"}, status=500
        )

    encoder = get_encoder(settings.stream_protocol)
    response = web.StreamResponse(
        status=200,
        headers={**STREAM_HEADERS, **encoder.headers, "Content-Type": encoder.content_type},
    )
    await response.prepare(request)

    try:
        async with aclosing(pipeline.stream(prepared)) as chunks:
            await response.write(encoder.start())
            async for chunk in chunks:
                await response.write(encoder.text(chunk))
        await response.write(encoder.finish("stop"))
    except GenerationError as exc:
        logger.error("Generation failed mid-stream: %s", exc)
        await response.write(encoder.error(GENERIC_STREAM_ERROR))
    except ConnectionResetError:
        logger.info("Client disconnected, generation cancelled")
        return response
    except Exception:
        logger.exception("Error streaming answer")
        await response.write(encoder.error(GENERIC_STREAM_ERROR))

    await response.write_eof()
    return response


async def _health(request: web.Request) -> web.Response:
    """GET /health — basic liveness check."""
    return web.json_response({"status": "ok"})


# -- Sessions -----------------------------------------------------------------


def _session_json(session: ChatSession) -> dict[str, Any]:
    return session.model_dump(mode="json", by_alias=True)


async def _read_json_object(request: web.Request) -> dict[str, Any] | None:
    try:
        payload = await request.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


async def _list_sessions(request: web.Request) -> web.Response:
    sessions = await request.app[SESSION_STORE_KEY].list_sessions()
    return web.json_response({"sessions": [_session_json(s) for s in sessions]})


async def _create_session(request: web.Request) -> web.Response:
    payload = await _read_json_object(request) if request.can_read_body else {}
    if payload is None:
        return web.json_response({"error": "invalid JSON"}, status=400)
    name = payload.get("name")
    if name is not None and not isinstance(name, str):
        return web.json_response({"error": "name must be a string"}, status=400)
    session = await request.app[SESSION_STORE_KEY].create(name)
    return web.json_response(_session_json(session), status=201)


async def _get_session(request: web.Request) -> web.Response:
    session = await request.app[SESSION_STORE_KEY].get(request.match_info["session_id"])
    if session is None:
        return web.json_response({"error": "session not found"}, status=404)
    return web.json_response(_session_json(session))


async def _rename_session(request: web.Request) -> web.Response:
    payload = await _read_json_object(request)
    if payload is None or not isinstance(payload.get("name"), str) or not payload["name"].strip():
        return web.json_response({"error": "name is required"}, status=400)
    session = await request.app[SESSION_STORE_KEY].rename(
        request.match_info["session_id"], payload["name"].strip()
    )
    if session is None:
        return web.json_response({"error": "session not found"}, status=404)
    return web.json_response(_session_json(session))


async def _update_session_messages(request: web.Request) -> web.Response:
    payload = await _read_json_object(request)
    if payload is None:
        return web.json_response({"error": "invalid JSON"}, status=400)
    try:
        messages = parse_chat_request(payload)
    except InvalidRequestError as exc:
        return web.json_response({"error": str(exc)}, status=400)
    session = await request.app[SESSION_STORE_KEY].update_messages(
        request.match_info["session_id"], messages
    )
    if session is None:
        return web.json_response({"error": "session not found"}, status=404)
    return web.json_response(_session_json(session))


async def _delete_session(request: web.Request) -> web.Response:
    removed = await request.app[SESSION_STORE_KEY].delete(request.match_info["session_id"])
    if not removed:
        return web.json_response({"error": "session not found"}, status=404)
    return web.json_response({"ok": True})


async def _clear_sessions(request: web.Request) -> web.Response:
    session = await request.app[SESSION_STORE_KEY].clear()
    return web.json_response({"sessions": [_session_json(session)]})


# -- Application ----------------------------------------------------------------


def create_app(
    pipeline: RagPipeline | None = None,
    session_store: SessionStore | None = None,
) -> web.Application:
    """Build the aiohttp Application with routes.

    Objects that are not injected are created on startup from settings.
    Whatever the app builds itself, it also closes on cleanup.
    """
    app = web.Application()

    async def _on_startup(app: web.Application) -> None:
        if pipeline is None:
            app[PIPELINE_KEY] = build_pipeline()
            logger.info(
                "RAG pipeline ready (provider=%s, collection=%s)",
                settings.completion_provider,
                settings.collection_name,
            )
        if session_store is None:
            app[SESSION_STORE_KEY] = SessionStore()

    async def _on_cleanup(app: web.Application) -> None:
        if pipeline is None and PIPELINE_KEY in app:
            await app[PIPELINE_KEY].close()

    if pipeline is not None:
        app[PIPELINE_KEY] = pipeline
    if session_store is not None:
        app[SESSION_STORE_KEY] = session_store
    app.on_startup.append(_on_startup)
    app.on_cleanup.append(_on_cleanup)

    app.router.add_get("/health", _health)
    app.router.add_post("/api/chat", _handle_chat)
    app.router.add_get("/api/sessions", _list_sessions)
    app.router.add_post("/api/sessions", _create_session)
    app.router.add_delete("/api/sessions", _clear_sessions)
    app.router.add_get("/api/sessions/{session_id}", _get_session)
    app.router.add_patch("/api/sessions/{session_id}", _rename_session)
    app.router.add_delete("/api/sessions/{session_id}", _delete_session)
    app.router.add_put("/api/sessions/{session_id}/messages", _update_session_messages)
    return app


class ChatServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(self, host: str | None = None, port: int | None = None) -> None:
        self.host = host or settings.host
        self.port = port or settings.port
        self._runner: web.AppRunner | None = None

    async def start(self, app: web.Application | None = None) -> None:
        """Start listening for chat requests."""
        # A client disconnect cancels its handler, which closes the provider stream.
        self._runner = web.AppRunner(app or create_app(), handler_cancellation=True)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Chat server listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Chat server stopped")
