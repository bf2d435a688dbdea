"""FastAPI application for the KTP OCR service.

Serves the chunked-upload OCR protocol on the ``/ocr`` WebSocket and a
health check over REST. Shared components are built in the app lifespan
from the loaded configuration.
"""

import asyncio
import contextlib
import shutil
from collections.abc import AsyncIterator

from fastapi import APIRouter, FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from ktp_ocr import PROTOCOL_VERSION, __version__
from ktp_ocr.pipeline import OCRPipeline
from ktp_ocr.upload.reassembler import UploadStore
from ktp_ocr.utils.config import AppConfig, load_config
from ktp_ocr.utils.logger import get_logger, install_loop_exception_logger

from .connection import OCRConnection
from .schemas import HealthResponse

logger = get_logger(__name__)

router = APIRouter()


async def _evict_periodically(store: UploadStore, interval: float) -> None:
    """Expire idle uploads every ``interval`` seconds."""
    while True:
        await asyncio.sleep(interval)
        store.evict_idle()


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the pipeline on startup and release it on shutdown."""
    config: AppConfig = app.state.config
    install_loop_exception_logger(asyncio.get_running_loop())

    pipeline = OCRPipeline.from_config(config)
    app.state.pipeline = pipeline
    evictor = asyncio.create_task(
        _evict_periodically(pipeline.store, config.uploads.eviction_interval_seconds)
    )
    logger.info("OCR service %s ready", PROTOCOL_VERSION)
    try:
        yield
    finally:
        evictor.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await evictor
        pipeline.shutdown()


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Return system health status."""
    pipeline: OCRPipeline = request.app.state.pipeline
    return HealthResponse(
        status="healthy",
        version=PROTOCOL_VERSION,
        tesseract_available=shutil.which("tesseract") is not None,
        active_uploads=len(pipeline.store),
        workers=pipeline.scheduler.workers,
        extractors=pipeline.extractors.types,
    )


@router.websocket("/ocr")
async def ocr_endpoint(websocket: WebSocket) -> None:
    """Chunked upload and OCR result channel."""
    await OCRConnection(websocket, websocket.app.state.pipeline).run()


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        config: Application configuration. Loaded from the default
            config file when ``None``.

    Returns:
        Configured application.
    """
    config = config or load_config()
    app = FastAPI(
        title="KTP OCR API",
        description="Reassemble chunked identity card images and extract KTP fields",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()
