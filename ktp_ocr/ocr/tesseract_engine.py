"""Tesseract OCR engine wrapper for in-memory images.

Decodes uploaded image bytes with Pillow and recognizes their text
with pytesseract using a configurable language and page segmentation mode.
"""

import io
from dataclasses import dataclass

import pytesseract
from PIL import Image, UnidentifiedImageError

from ktp_ocr.exceptions import OcrEngineError
from ktp_ocr.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class OCRResult:
    """Text recognized from one image."""

    text: str
    language: str
    image_format: str | None = None


class TesseractEngine:
    """Wrapper around Tesseract OCR for document text extraction.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        language: OCR language code, ``ind`` for Indonesian.
        psm: Tesseract page segmentation mode.
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        language: str = "ind",
        psm: int = 3,
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.language = language
        self.psm = psm

    def recognize(self, image_bytes: bytes, lang: str | None = None) -> OCRResult:
        """Recognize the text in an encoded image.

        Args:
            image_bytes: Encoded image (PNG, JPEG, TIFF, ...).
            lang: OCR language code. Defaults to the engine language.

        Returns:
            OCRResult with the recognized text.

        Raises:
            OcrEngineError: If the image cannot be decoded or Tesseract fails.
        """
        lang = lang or self.language
        try:
            image = Image.open(io.BytesIO(image_bytes))
            image.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise OcrEngineError(f"Cannot decode image: {exc}") from exc

        try:
            text = pytesseract.image_to_string(
                image, lang=lang, config=f"--psm {self.psm}"
            )
        except pytesseract.TesseractError as exc:
            raise OcrEngineError(f"Tesseract failed: {exc}") from exc

        logger.info(
            "OCR recognized %d characters from %s image",
            len(text),
            image.format or "unknown",
        )
        return OCRResult(text=text, language=lang, image_format=image.format)
