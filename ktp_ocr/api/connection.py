"""Per-client handling of the OCR WebSocket protocol.

Every frame is a JSON envelope ``{"event": ..., "data": ...}``. Chunk
intake happens inline; OCR for a completed upload runs as a task owned by
the connection, and tasks still running when the client goes away are
cancelled.
"""

import asyncio
import uuid

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from ktp_ocr import PROTOCOL_VERSION
from ktp_ocr.exceptions import KtpOcrError
from ktp_ocr.pipeline import OCRPipeline
from ktp_ocr.utils.logger import get_logger

from .schemas import ChunkAck, Envelope, OCRErrorMessage, SetupResponse

logger = get_logger(__name__)


class OCRConnection:
    """Serves one WebSocket client.

    Args:
        websocket: Client connection.
        pipeline: Shared upload processing pipeline.
    """

    def __init__(self, websocket: WebSocket, pipeline: OCRPipeline) -> None:
        self.websocket = websocket
        self.pipeline = pipeline
        self.id = uuid.uuid4().hex[:12]
        self._tasks: set[asyncio.Task] = set()
        self._send_lock = asyncio.Lock()

    async def run(self) -> None:
        """Accept the connection and serve frames until it closes."""
        await self.websocket.accept()
        logger.info("Client connected: %s", self.id)
        try:
            while True:
                message = await self.websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                frame = message.get("text")
                if frame is None:
                    logger.warning("%s: ignoring non-text frame", self.id)
                    await self.send("error", ChunkAck())
                    continue
                await self.dispatch(frame)
        finally:
            for task in list(self._tasks):
                task.cancel()
            logger.info("Client disconnected: %s", self.id)

    async def dispatch(self, frame: str) -> None:
        try:
            envelope = Envelope.model_validate_json(frame)
        except ValidationError as exc:
            logger.warning("%s: invalid frame: %s", self.id, exc.errors()[0]["msg"])
            await self.send("error", ChunkAck())
            return

        if envelope.event == "setup":
            await self.send("setup", SetupResponse(version=PROTOCOL_VERSION))
        elif envelope.event == "ocr":
            await self._handle_chunk(envelope.data)
        else:
            logger.warning("%s: ignoring unknown event '%s'", self.id, envelope.event)

    async def _handle_chunk(self, data: object) -> None:
        outcome = self.pipeline.receive(data)
        if outcome.completed:
            accepted = outcome.accept
            logger.info("%s: performing OCR for %s...", self.id, accepted.upload_id)
            task = asyncio.create_task(
                self._complete(accepted.upload_id, outcome.doc_type, accepted.payload)
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        await self.send("ocr", outcome.ack)
        if outcome.error is not None:
            await self.send("ocr-err", outcome.error)

    async def _complete(self, upload_id: str, doc_type: str, payload: bytes) -> None:
        try:
            result = await self.pipeline.process(upload_id, doc_type, payload)
        except KtpOcrError as exc:
            logger.error("%s: OCR %s failed: %s", self.id, upload_id, exc)
            await self.send("ocr-err", OCRErrorMessage(id=upload_id, error=str(exc)))
            return
        except Exception as exc:
            logger.exception("%s: unexpected failure processing %s", self.id, upload_id)
            await self.send("ocr-err", OCRErrorMessage(id=upload_id, error=str(exc)))
            return
        logger.info("%s: OCR %s is completed...", self.id, upload_id)
        await self.send("ocr-res", result)

    async def send(self, event: str, payload: BaseModel) -> None:
        message = {"event": event, "data": payload.model_dump(exclude_none=True)}
        async with self._send_lock:
            try:
                await self.websocket.send_json(message)
            except (WebSocketDisconnect, RuntimeError) as exc:
                logger.debug("%s: dropping '%s' event: %s", self.id, event, exc)
