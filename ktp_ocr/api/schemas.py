"""Pydantic message schemas for the OCR WebSocket protocol and REST endpoints."""

import base64
import binascii
from typing import Any

from pydantic import BaseModel, Field

from ktp_ocr.exceptions import MalformedChunkError


class Envelope(BaseModel):
    """A single WebSocket frame: an event name and its payload."""

    event: str
    data: Any = None


class ChunkMessage(BaseModel):
    """One chunk of an upload, as sent by the client."""

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    seq: int | None = None
    tot: int | None = None
    size: int = Field(ge=0)
    data: str = Field(min_length=1)

    def decode(self) -> bytes:
        """Decode the base64 chunk payload.

        Raises:
            MalformedChunkError: If ``data`` is not valid base64.
        """
        try:
            return base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise MalformedChunkError(f"Chunk data is not base64: {exc}") from exc


class ChunkAck(BaseModel):
    """Acknowledgement of one chunk; empty for a malformed chunk."""

    seq: int | None = None
    tot: int | None = None
    recv: int | None = None


class OCRResultMessage(BaseModel):
    """Result of a completed upload: extracted fields or raw OCR text."""

    id: str
    res: dict[str, str] | str


class OCRErrorMessage(BaseModel):
    """Failure of a single upload."""

    id: str
    error: str


class SetupResponse(BaseModel):
    """Protocol handshake response."""

    version: str


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
    active_uploads: int
    workers: int
    extractors: list[str]
