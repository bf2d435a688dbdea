"""Configuration management for the KTP OCR service.

Loads and validates YAML configuration with sensible defaults
for the server, OCR workers, upload reassembly and extraction.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ServerConfig(BaseModel):
    """Configuration for the HTTP/WebSocket server."""

    host: str = "0.0.0.0"
    port: int = 9000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class OCRConfig(BaseModel):
    """Configuration for Tesseract OCR workers."""

    tesseract_cmd: str | None = None
    language: str = "ind"
    psm: int = 3
    workers: int = Field(default=2, ge=1)


class UploadConfig(BaseModel):
    """Configuration for chunked upload reassembly."""

    idle_timeout_seconds: float = 300.0
    closed_retention_seconds: float = 600.0
    eviction_interval_seconds: float = 30.0
    max_upload_bytes: int = 20 * 1024 * 1024


class StorageConfig(BaseModel):
    """Configuration for saving received uploads to disk."""

    images_dir: str = "images"
    save_uploads: bool = False


class ExtractionConfig(BaseModel):
    """Configuration for field extraction rulesets."""

    rulesets_path: str | None = None


class AppConfig(BaseModel):
    """Top-level application configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    uploads: UploadConfig = Field(default_factory=UploadConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
