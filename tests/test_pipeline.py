"""Tests for the upload processing pipeline."""

import asyncio
import base64
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from ktp_ocr.exceptions import MalformedChunkError, OcrEngineError
from ktp_ocr.extraction.registry import ExtractorRegistry
from ktp_ocr.ocr.scheduler import OCRScheduler
from ktp_ocr.ocr.tesseract_engine import OCRResult
from ktp_ocr.pipeline import OCRPipeline, parse_chunk
from ktp_ocr.upload.reassembler import AcceptStatus, UploadStore
from ktp_ocr.utils.config import AppConfig, StorageConfig


def _chunk(
    upload_id: str,
    data: bytes,
    size: int,
    seq: int = 1,
    tot: int = 1,
    doc_type: str = "ktp",
) -> dict[str, object]:
    return {
        "id": upload_id,
        "type": doc_type,
        "seq": seq,
        "tot": tot,
        "size": size,
        "data": base64.b64encode(data).decode(),
    }


class TestParseChunk:
    """Tests for chunk message validation."""

    def test_valid_message(self) -> None:
        chunk = parse_chunk(_chunk("up", b"abc", 3))
        assert chunk.id == "up"
        assert chunk.decode() == b"abc"

    @pytest.mark.parametrize("missing", ["id", "type", "data", "size"])
    def test_missing_field(self, missing: str) -> None:
        message = _chunk("up", b"abc", 3)
        del message[missing]
        with pytest.raises(MalformedChunkError, match=missing):
            parse_chunk(message)

    def test_not_a_mapping(self) -> None:
        with pytest.raises(MalformedChunkError):
            parse_chunk("hello")

    def test_bad_base64(self) -> None:
        message = _chunk("up", b"abc", 3)
        message["data"] = "!!not base64!!"
        with pytest.raises(MalformedChunkError, match="base64"):
            parse_chunk(message).decode()


class TestOCRPipeline:
    """Tests for the OCRPipeline coordinator."""

    def setup_method(self) -> None:
        self.engine = MagicMock()
        self.engine.recognize.return_value = OCRResult(
            text="NIK: 3171234567890001\nNama: ANI", language="ind"
        )
        self.scheduler = OCRScheduler(self.engine, workers=1)
        self.pipeline = OCRPipeline(UploadStore(), self.scheduler, ExtractorRegistry())

    def teardown_method(self) -> None:
        self.scheduler.shutdown()

    def test_malformed_chunk_gets_empty_ack(self) -> None:
        outcome = self.pipeline.receive({"id": "up", "data": "YWJj"})
        assert outcome.ack.model_dump(exclude_none=True) == {}
        assert outcome.accept is None
        assert outcome.error is None
        assert len(self.pipeline.store) == 0

    def test_chunks_acknowledged_until_complete(self) -> None:
        first = self.pipeline.receive(_chunk("up", b"abc", 5, seq=1, tot=2))
        second = self.pipeline.receive(_chunk("up", b"de", 5, seq=2, tot=2))

        assert first.ack.model_dump() == {"seq": 1, "tot": 2, "recv": 3}
        assert not first.completed
        assert second.ack.model_dump() == {"seq": 2, "tot": 2, "recv": 5}
        assert second.completed
        assert second.accept.payload == b"abcde"
        assert second.doc_type == "ktp"

    def test_oversized_reports_error(self) -> None:
        outcome = self.pipeline.receive(_chunk("up", b"abcdef", 4))
        assert outcome.accept.status == AcceptStatus.OVERSIZED
        assert not outcome.completed
        assert outcome.error.id == "up"
        assert "declared 4" in outcome.error.error

    def test_refused_upload_ack_omits_received(self) -> None:
        self.pipeline.store.max_upload_bytes = 4
        oversized = self.pipeline.receive(_chunk("big", b"ab", 10))
        assert oversized.accept.status == AcceptStatus.OVERSIZED
        assert oversized.ack.model_dump(exclude_none=True) == {"seq": 1, "tot": 1}

        late = self.pipeline.receive(_chunk("big", b"ab", 2))
        assert late.accept.status == AcceptStatus.REJECTED
        assert late.ack.model_dump(exclude_none=True) == {"seq": 1, "tot": 1}
        assert late.error.id == "big"

    def test_process_extracts_fields(self) -> None:
        result = asyncio.run(self.pipeline.process("up", "ktp", b"image"))
        assert result.id == "up"
        assert result.res == {"nik": "3171234567890001", "nama": "ANI"}
        self.engine.recognize.assert_called_once_with(b"image")

    def test_process_unknown_type_returns_raw_text(self) -> None:
        result = asyncio.run(self.pipeline.process("up", "passport", b"image"))
        assert result.res == "NIK: 3171234567890001\nNama: ANI"

    def test_process_ocr_failure(self) -> None:
        self.engine.recognize.side_effect = OcrEngineError("Cannot decode image")
        with pytest.raises(OcrEngineError):
            asyncio.run(self.pipeline.process("up", "ktp", b"image"))

    def test_process_saves_upload(self, tmp_path: Path, png_bytes: bytes) -> None:
        self.pipeline.images_dir = tmp_path / "images"
        asyncio.run(self.pipeline.process("../ktp 1", "ktp", png_bytes))
        saved = tmp_path / "images" / "_ktp_1.png"
        assert saved.read_bytes() == png_bytes

    def test_upload_path_without_images_dir(self) -> None:
        assert self.pipeline.upload_path("up", b"image") is None

    def test_upload_path_unknown_format(self, tmp_path: Path) -> None:
        self.pipeline.images_dir = tmp_path
        assert self.pipeline.upload_path("up", b"image") == tmp_path / "up.bin"


class TestSaveUpload:
    """Tests for writing uploads to disk."""

    def test_save_success(self, tmp_path: Path) -> None:
        target = tmp_path / "nested" / "up.png"
        assert OCRPipeline.save_upload(b"data", target) is True
        assert target.read_bytes() == b"data"

    def test_save_failure_returns_false(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x")
        assert OCRPipeline.save_upload(b"data", blocker / "up.png") is False


class TestFromConfig:
    """Tests for building the pipeline from configuration."""

    def test_defaults(self) -> None:
        pipeline = OCRPipeline.from_config(AppConfig())
        try:
            assert pipeline.images_dir is None
            assert pipeline.store.max_upload_bytes == 20 * 1024 * 1024
            assert pipeline.scheduler.workers == 2
            assert pipeline.extractors.types == ["ktp"]
        finally:
            pipeline.shutdown()

    def test_save_uploads_enabled(self, tmp_path: Path) -> None:
        config = AppConfig(
            storage=StorageConfig(images_dir=str(tmp_path), save_uploads=True)
        )
        pipeline = OCRPipeline.from_config(config)
        try:
            assert pipeline.images_dir == tmp_path
        finally:
            pipeline.shutdown()
