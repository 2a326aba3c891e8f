"""
HTTP routes and the WebSocket event channel.
"""

import asyncio
import json
import logging
from functools import partial
from typing import Any, AsyncIterator, Callable, Dict, Optional, Set

from aiohttp import WSMsgType, web

from archive import ArchivePackager
from catalog import MediaCatalog
from config import CANCEL_ON_DISCONNECT, CORS_ALLOW_ORIGIN, ITEM_URL_TEMPLATE
from errors import ArchiveNotFoundError, FormatListError, MetadataFetchError, error_manager
from managers import DownloadOrchestrator, EventEmitter, ExtractionRunner
from models import Session, StartDownloadCommand, TargetKind
from selection import select_default_variant
from sessions import SessionReaper, SessionStore
from utils import has_transcoder, sanitize_user_input, validate_url_input

logger = logging.getLogger(__name__)


class WebHandlers:
    """Registers HTTP endpoints and the download event channel."""

    def __init__(
        self,
        app: web.Application,
        store: SessionStore,
        catalog: MediaCatalog,
        runner: Optional[ExtractionRunner] = None,
        cancel_on_disconnect: bool = CANCEL_ON_DISCONNECT,
        transcoder_check: Callable[[], bool] = has_transcoder,
        item_url_template: str = ITEM_URL_TEMPLATE,
    ):
        self.app = app
        self.store = store
        self.catalog = catalog
        self.packager = ArchivePackager(store)
        self.runner = runner
        self.cancel_on_disconnect = cancel_on_disconnect
        self.transcoder_check = transcoder_check
        self.item_url_template = item_url_template
        self.runs: Set[asyncio.Task] = set()
        self._register_handlers()

    def _register_handlers(self) -> None:
        router = self.app.router
        router.add_get("/health", self.handle_health)
        router.add_get("/health-transcoder", self.handle_transcoder_health)
        router.add_get("/info", self.handle_info)
        router.add_get("/formats/{item_id}", self.handle_formats)
        router.add_get("/download/{session_id}", self.handle_download)
        router.add_get("/ws", self.handle_events)
        self.app.on_response_prepare.append(self._add_cors_headers)
        self.app.on_cleanup.append(self._cancel_runs)

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def handle_transcoder_health(self, request: web.Request) -> web.Response:
        return web.json_response({"available": bool(self.transcoder_check())})

    async def handle_info(self, request: web.Request) -> web.Response:
        url = sanitize_user_input(request.query.get("url", ""))
        valid, error = validate_url_input(url)
        if not valid:
            return web.json_response({"error": error}, status=400)

        try:
            items = await self.catalog.fetch_items(url)
        except MetadataFetchError as error:
            return web.json_response(
                {
                    "error": "Failed to fetch playlist info",
                    "details": error_manager.to_user_message(error, url=url),
                },
                status=500,
            )
        return web.json_response([item.to_dict() for item in items])

    async def handle_formats(self, request: web.Request) -> web.Response:
        item_id = request.match_info["item_id"]
        try:
            target = TargetKind(request.query.get("target", TargetKind.VIDEO.value))
        except ValueError:
            return web.json_response({"error": "target must be audio or video"}, status=400)

        try:
            variants = await self.catalog.fetch_variants(item_id)
        except FormatListError as error:
            return web.json_response(
                {
                    "error": "Failed to fetch video formats",
                    "details": error_manager.to_user_message(error),
                },
                status=500,
            )

        default_id = select_default_variant(variants, target)
        return web.json_response(
            [variant.to_dict(is_default=variant.id == default_id) for variant in variants]
        )

    async def handle_download(self, request: web.Request) -> web.StreamResponse:
        session_id = request.match_info["session_id"]
        try:
            return await self.packager.stream(request, session_id)
        except ArchiveNotFoundError:
            raise web.HTTPNotFound(text="Expired or invalid")

    async def handle_events(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=30)
        await ws.prepare(request)

        session = self.store.create()
        connection_runs: Set[asyncio.Task] = set()

        async def emit(event: str, data: Dict[str, Any]) -> None:
            if ws.closed:
                return
            await ws.send_json({"event": event, "data": data})

        await emit("session", {"sessionId": session.id})
        try:
            async for message in ws:
                if message.type == WSMsgType.TEXT:
                    await self._dispatch(message.data, session, emit, connection_runs)
                elif message.type == WSMsgType.ERROR:
                    logger.warning("Event channel error for session %s: %s", session.id, ws.exception())
        finally:
            logger.info(
                "Client for session %s disconnected with %s run(s) in flight",
                session.id,
                len(connection_runs),
            )
            if self.cancel_on_disconnect:
                for task in list(connection_runs):
                    task.cancel()
        return ws

    async def _dispatch(
        self,
        raw: str,
        session: Session,
        emit: EventEmitter,
        connection_runs: Set[asyncio.Task],
    ) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            await emit("error", {"message": "Malformed message"})
            return

        if not isinstance(message, dict):
            await emit("error", {"message": "Malformed message"})
            return

        event = message.get("event")
        if event != "start_download":
            await emit("error", {"message": f"Unknown event: {event!r}"})
            return

        try:
            command = StartDownloadCommand.from_payload(message.get("data"))
        except ValueError as error:
            await emit("error", {"message": str(error)})
            return

        self.start_run(command, session, emit, connection_runs)

    def start_run(
        self,
        command: StartDownloadCommand,
        session: Session,
        emit: EventEmitter,
        connection_runs: Optional[Set[asyncio.Task]] = None,
    ) -> asyncio.Task:
        """Launch an orchestration run for a session in the background."""
        session_dir = self.store.ensure(session.id)
        orchestrator = DownloadOrchestrator(
            command,
            session_dir,
            emit,
            runner=self.runner,
            download_url=f"/download/{session.id}",
            item_url_template=self.item_url_template,
        )
        task = asyncio.create_task(orchestrator.run())
        self.runs.add(task)
        if connection_runs is not None:
            connection_runs.add(task)
        task.add_done_callback(partial(self._run_done, connection_runs))
        return task

    def _run_done(self, connection_runs: Optional[Set[asyncio.Task]], task: asyncio.Task) -> None:
        self.runs.discard(task)
        if connection_runs is not None:
            connection_runs.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Orchestration run failed", exc_info=error)

    async def _add_cors_headers(self, request: web.Request, response: web.StreamResponse) -> None:
        response.headers["Access-Control-Allow-Origin"] = CORS_ALLOW_ORIGIN

    async def _cancel_runs(self, app: web.Application) -> None:
        runs = list(self.runs)
        for task in runs:
            task.cancel()
        if runs:
            await asyncio.gather(*runs, return_exceptions=True)


def create_app(
    store: SessionStore,
    catalog: Optional[MediaCatalog] = None,
    runner: Optional[ExtractionRunner] = None,
    reaper: Optional[SessionReaper] = None,
    **handler_options: Any,
) -> web.Application:
    """Build the web application; the reaper runs for the app's lifetime."""
    app = web.Application()
    WebHandlers(
        app,
        store=store,
        catalog=catalog or MediaCatalog(),
        runner=runner,
        **handler_options,
    )

    if reaper is not None:

        async def reaper_context(app: web.Application) -> AsyncIterator[None]:
            reaper.start()
            yield
            await reaper.stop()

        app.cleanup_ctx.append(reaper_context)

    return app
