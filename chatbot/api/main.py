"""FastAPI entrypoint - thin layer that wires the pipeline to HTTP/WebSocket.

  • GET  /messages  - current transcript view
  • POST /messages  - submit one user message
  • WS   /ws        - live transcript pushes + submissions
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable, List

import anyio
from fastapi import Depends, FastAPI, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware

from ..exceptions import PipelineBusyError
from ..models import ChatMessage, Session, SubmitRequest, SubmitResponse
from ..services.pipeline import MessagePipeline
from ..settings import Settings, settings
from ..utils.logging import configure_logging
from .deps import current_pipeline, get_pipeline

logger = logging.getLogger(__name__)


def _transcript_event(messages: List[ChatMessage]) -> dict:
    return {"type": "transcript", "messages": [m.model_dump(mode="json") for m in messages]}


def create_app(
    pipeline_factory: Callable[[], MessagePipeline] = get_pipeline,
    app_settings: Settings = settings,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(app_settings.log_level)
        pipeline = pipeline_factory()
        session = await pipeline.start()
        if not session.identity:
            logger.warning("Running without an authenticated session; submissions are ignored")
        app.state.pipeline = pipeline
        try:
            yield
        finally:
            pipeline.close()

    app = FastAPI(title="Teachable Chat Backend", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ──────────────────────────────────────────────────────────────────────────
    # Routes
    # ──────────────────────────────────────────────────────────────────────────
    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    @app.get("/session", response_model=Session)
    async def get_session(pipeline: MessagePipeline = Depends(current_pipeline)):
        return pipeline.session

    @app.get("/messages", response_model=List[ChatMessage])
    async def get_messages(pipeline: MessagePipeline = Depends(current_pipeline)):
        return pipeline.view.messages

    @app.post("/messages", response_model=SubmitResponse)
    async def send_message(body: SubmitRequest, pipeline: MessagePipeline = Depends(current_pipeline)):
        try:
            outcome = await pipeline.submit(body.text)
        except PipelineBusyError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
        return SubmitResponse(status=outcome.value if outcome else "ignored")

    @app.websocket("/ws")
    async def transcript_socket(websocket: WebSocket):
        pipeline: MessagePipeline = websocket.app.state.pipeline
        await websocket.accept()

        # View listeners may fire on the Firestore listener thread.
        loop = asyncio.get_running_loop()
        updates: asyncio.Queue = asyncio.Queue()
        unsubscribe = pipeline.view.listen(
            lambda messages: loop.call_soon_threadsafe(updates.put_nowait, messages)
        )

        async def forward(cancel_scope: anyio.CancelScope) -> None:
            try:
                while True:
                    messages = await updates.get()
                    await websocket.send_json(_transcript_event(messages))
            except (WebSocketDisconnect, RuntimeError):
                cancel_scope.cancel()

        try:
            await websocket.send_json(_transcript_event(pipeline.view.messages))
            async with anyio.create_task_group() as tg:
                tg.start_soon(forward, tg.cancel_scope)
                try:
                    while True:
                        text = await websocket.receive_text()
                        try:
                            await pipeline.submit(text)
                        except PipelineBusyError as exc:
                            await websocket.send_json({"type": "error", "detail": str(exc)})
                except WebSocketDisconnect:
                    logger.debug("Transcript socket disconnected")
                tg.cancel_scope.cancel()
        finally:
            unsubscribe()

    return app


app = create_app()
