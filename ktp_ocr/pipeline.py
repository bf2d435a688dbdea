"""Upload processing pipeline.

Feeds chunk messages into the upload store and, once an upload is
complete, runs OCR on the assembled image and maps the recognized text
with the extractor selected by the upload's type.
"""

import asyncio
import io
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError

from ktp_ocr.api.schemas import (
    ChunkAck,
    ChunkMessage,
    OCRErrorMessage,
    OCRResultMessage,
)
from ktp_ocr.exceptions import MalformedChunkError
from ktp_ocr.extraction.registry import ExtractorRegistry
from ktp_ocr.ocr.scheduler import OCRScheduler
from ktp_ocr.upload.reassembler import AcceptResult, AcceptStatus, UploadStore
from ktp_ocr.utils.config import AppConfig
from ktp_ocr.utils.logger import get_logger

logger = get_logger(__name__)

_IMAGE_SUFFIXES = {
    "JPEG": ".jpg",
    "PNG": ".png",
    "TIFF": ".tif",
    "BMP": ".bmp",
    "GIF": ".gif",
    "WEBP": ".webp",
}


@dataclass
class ChunkOutcome:
    """What came of one inbound chunk message."""

    ack: ChunkAck
    accept: AcceptResult | None = None
    doc_type: str | None = None

    @property
    def completed(self) -> bool:
        return self.accept is not None and self.accept.status == AcceptStatus.COMPLETE

    @property
    def error(self) -> OCRErrorMessage | None:
        if self.accept is None or self.accept.status not in (
            AcceptStatus.OVERSIZED,
            AcceptStatus.REJECTED,
        ):
            return None
        return OCRErrorMessage(
            id=self.accept.upload_id,
            error=self.accept.reason or str(self.accept.status),
        )


class OCRPipeline:
    """Coordinates upload reassembly, OCR and field extraction.

    Args:
        store: Upload session store.
        scheduler: OCR worker pool.
        extractors: Field mappers by upload type.
        images_dir: Directory to save completed uploads in, or ``None``
            to keep them in memory only.
    """

    def __init__(
        self,
        store: UploadStore,
        scheduler: OCRScheduler,
        extractors: ExtractorRegistry,
        images_dir: Path | None = None,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self.extractors = extractors
        self.images_dir = images_dir

    @classmethod
    def from_config(cls, config: AppConfig) -> "OCRPipeline":
        store = UploadStore(
            idle_timeout=config.uploads.idle_timeout_seconds,
            closed_retention=config.uploads.closed_retention_seconds,
            max_upload_bytes=config.uploads.max_upload_bytes,
        )
        rulesets_path = config.extraction.rulesets_path
        extractors = ExtractorRegistry(Path(rulesets_path) if rulesets_path else None)
        images_dir = (
            Path(config.storage.images_dir) if config.storage.save_uploads else None
        )
        return cls(store, OCRScheduler.from_config(config.ocr), extractors, images_dir)

    def receive(self, message: Any) -> ChunkOutcome:
        """Accept one chunk message.

        Malformed messages are acknowledged with an empty ack and leave
        the store untouched.
        """
        try:
            chunk = parse_chunk(message)
            data = chunk.decode()
        except MalformedChunkError as exc:
            logger.warning("Ignoring malformed chunk: %s", exc)
            return ChunkOutcome(ack=ChunkAck())

        accepted = self.store.accept(chunk.id, chunk.seq, chunk.tot, chunk.size, data)
        ack = ChunkAck(seq=chunk.seq, tot=chunk.tot, recv=accepted.received)
        return ChunkOutcome(ack=ack, accept=accepted, doc_type=chunk.type)

    async def process(
        self, upload_id: str, doc_type: str, payload: bytes
    ) -> OCRResultMessage:
        """Run OCR and extraction for a completed upload.

        Raises:
            OcrEngineError: If the image cannot be recognized.
        """
        path = self.upload_path(upload_id, payload)
        if path is not None:
            await asyncio.to_thread(self.save_upload, payload, path)
        result = await self.scheduler.recognize(payload)
        return OCRResultMessage(
            id=upload_id, res=self.extractors.extract(doc_type, result.text)
        )

    def upload_path(self, upload_id: str, payload: bytes) -> Path | None:
        """Return the file an upload is saved to, named after its id."""
        if self.images_dir is None:
            return None
        name = re.sub(r"[^A-Za-z0-9_.-]", "_", upload_id).lstrip(".") or "upload"
        return self.images_dir / f"{name}{_guess_suffix(payload)}"

    @staticmethod
    def save_upload(data: bytes, filename: Path) -> bool:
        """Write an upload to disk.

        Returns:
            ``True`` on success, ``False`` if the file could not be written.
        """
        try:
            filename.parent.mkdir(parents=True, exist_ok=True)
            filename.write_bytes(data)
        except OSError as exc:
            logger.error("Write file %s failed with %s", filename, exc)
            return False
        logger.debug("Saved %d bytes to %s", len(data), filename)
        return True

    def shutdown(self) -> None:
        self.scheduler.shutdown()


def parse_chunk(message: Any) -> ChunkMessage:
    """Validate an inbound chunk message.

    Raises:
        MalformedChunkError: If required fields are missing or invalid.
    """
    try:
        return ChunkMessage.model_validate(message)
    except ValidationError as exc:
        fields = ", ".join(
            ".".join(str(part) for part in error["loc"]) or "message"
            for error in exc.errors()
        )
        raise MalformedChunkError(f"invalid fields: {fields}") from exc


def _guess_suffix(payload: bytes) -> str:
    try:
        with Image.open(io.BytesIO(payload)) as image:
            return _IMAGE_SUFFIXES.get(image.format or "", ".bin")
    except (UnidentifiedImageError, OSError):
        return ".bin"
