"""Tests for the command-line interface."""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import yaml

from ktp_ocr.cli import main, recognize_file
from ktp_ocr.exceptions import OcrEngineError
from ktp_ocr.ocr.tesseract_engine import OCRResult
from ktp_ocr.utils.config import AppConfig

OCR_TEXT = "NIK : 3171234567890001\nNama : BUDI SANTOSO"


def _mock_engine(mock_engine_cls: MagicMock, text: str = OCR_TEXT) -> MagicMock:
    engine = MagicMock()
    engine.recognize.return_value = OCRResult(text=text, language="ind")
    mock_engine_cls.return_value = engine
    return engine


class TestRecognizeFile:
    """Tests for single-file OCR."""

    @patch("ktp_ocr.cli.TesseractEngine")
    def test_extracts_ktp_fields(
        self, mock_engine_cls: MagicMock, png_file: Path
    ) -> None:
        engine = _mock_engine(mock_engine_cls)
        result = recognize_file(png_file, AppConfig())

        assert result == {"nik": "3171234567890001", "nama": "BUDI SANTOSO"}
        engine.recognize.assert_called_once_with(png_file.read_bytes())
        _, kwargs = mock_engine_cls.call_args
        assert kwargs["language"] == "ind"

    @patch("ktp_ocr.cli.TesseractEngine")
    def test_unknown_type_returns_text(
        self, mock_engine_cls: MagicMock, png_file: Path
    ) -> None:
        _mock_engine(mock_engine_cls)
        assert recognize_file(png_file, AppConfig(), "passport") == OCR_TEXT


class TestMain:
    """Tests for CLI argument parsing and dispatch."""

    @patch("ktp_ocr.cli.setup_logging")
    @patch("ktp_ocr.cli.TesseractEngine")
    def test_test_command_prints_json(
        self,
        mock_engine_cls: MagicMock,
        mock_setup_logging: MagicMock,
        png_file: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        _mock_engine(mock_engine_cls)
        main(["test", str(png_file)])

        output = json.loads(capsys.readouterr().out)
        assert output["nik"] == "3171234567890001"

    @patch("ktp_ocr.cli.TesseractEngine")
    def test_test_command_writes_output(
        self, mock_engine_cls: MagicMock, png_file: Path, tmp_path: Path
    ) -> None:
        _mock_engine(mock_engine_cls)
        out = tmp_path / "out" / "result.json"
        main(["test", str(png_file), "-o", str(out)])

        assert json.loads(out.read_text())["nama"] == "BUDI SANTOSO"

    def test_test_command_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["test", str(tmp_path / "missing.png")])
        assert exc_info.value.code == 1

    @patch("ktp_ocr.cli.TesseractEngine")
    def test_test_command_ocr_failure(
        self, mock_engine_cls: MagicMock, png_file: Path
    ) -> None:
        engine = _mock_engine(mock_engine_cls)
        engine.recognize.side_effect = OcrEngineError("Tesseract failed")

        with pytest.raises(SystemExit) as exc_info:
            main(["test", str(png_file)])
        assert exc_info.value.code == 1

    @patch("ktp_ocr.cli.uvicorn")
    def test_serve_command(self, mock_uvicorn: MagicMock) -> None:
        main(["serve", "--port", "9100"])

        _, kwargs = mock_uvicorn.run.call_args
        assert kwargs["port"] == 9100
        assert kwargs["host"] == "0.0.0.0"

    @patch("ktp_ocr.cli.uvicorn")
    def test_serve_uses_config_file(
        self, mock_uvicorn: MagicMock, tmp_path: Path
    ) -> None:
        config_file = tmp_path / "config.yaml"
        with open(config_file, "w") as f:
            yaml.dump({"server": {"host": "127.0.0.1", "port": 9500}}, f)

        main(["-c", str(config_file), "serve"])

        _, kwargs = mock_uvicorn.run.call_args
        assert kwargs["port"] == 9500
        assert kwargs["host"] == "127.0.0.1"

    def test_no_command_prints_help(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 0
