"""Application entry point for the KTP OCR server."""

from ktp_ocr.cli import serve
from ktp_ocr.utils.config import load_config
from ktp_ocr.utils.logger import setup_logging


def main() -> None:
    """Start the OCR server with the default configuration."""
    config = load_config()
    setup_logging(config.log_level)
    serve(config)


if __name__ == "__main__":
    main()
