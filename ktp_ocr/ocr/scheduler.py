"""Pool of OCR workers that runs recognition off the event loop."""

import asyncio
from concurrent.futures import ThreadPoolExecutor

from ktp_ocr.utils.config import OCRConfig
from ktp_ocr.utils.logger import get_logger

from .tesseract_engine import OCRResult, TesseractEngine

logger = get_logger(__name__)


class OCRScheduler:
    """Runs ``TesseractEngine.recognize`` jobs on a bounded thread pool.

    Args:
        engine: Engine used for every job.
        workers: Number of jobs that may run at once.
    """

    def __init__(self, engine: TesseractEngine, workers: int = 2) -> None:
        self.engine = engine
        self.workers = workers
        self._executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="ocr-worker"
        )
        logger.info("OCR scheduler started with %d workers", workers)

    @classmethod
    def from_config(cls, config: OCRConfig) -> "OCRScheduler":
        engine = TesseractEngine(
            tesseract_cmd=config.tesseract_cmd,
            language=config.language,
            psm=config.psm,
        )
        return cls(engine, workers=config.workers)

    async def recognize(self, image_bytes: bytes) -> OCRResult:
        """Recognize ``image_bytes`` on a worker thread.

        Raises:
            OcrEngineError: If recognition fails.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor, self.engine.recognize, image_bytes
        )

    def shutdown(self) -> None:
        """Stop accepting jobs and drop queued ones."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info("OCR scheduler stopped")
