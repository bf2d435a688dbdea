"""Command-line interface for running the OCR server and one-off OCR tests.

Provides a ``serve`` subcommand that starts the WebSocket server and a
``test`` subcommand that recognizes a single image file and prints the
extracted fields as JSON.
"""

import argparse
import json
import sys
from pathlib import Path

import uvicorn

from ktp_ocr.exceptions import OcrEngineError
from ktp_ocr.extraction.field_mapper import FieldMapping
from ktp_ocr.extraction.registry import ExtractorRegistry
from ktp_ocr.ocr.tesseract_engine import TesseractEngine
from ktp_ocr.utils.config import AppConfig, load_config
from ktp_ocr.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def recognize_file(
    file_path: Path,
    config: AppConfig,
    doc_type: str = "ktp",
) -> FieldMapping | str:
    """Run OCR and field extraction on a single image file.

    Args:
        file_path: Image file to recognize.
        config: Application configuration.
        doc_type: Extractor type to map the text with.

    Returns:
        Extracted fields, or the raw text for an unknown type.
    """
    engine = TesseractEngine(
        tesseract_cmd=config.ocr.tesseract_cmd,
        language=config.ocr.language,
        psm=config.ocr.psm,
    )
    rulesets_path = config.extraction.rulesets_path
    extractors = ExtractorRegistry(Path(rulesets_path) if rulesets_path else None)

    logger.info("Performing OCR test on %s", file_path)
    result = engine.recognize(file_path.read_bytes())
    return extractors.extract(doc_type, result.text)


def serve(config: AppConfig, host: str | None = None, port: int | None = None) -> None:
    """Start the OCR server.

    Args:
        config: Application configuration.
        host: Interface to bind, overriding the configuration.
        port: Port to listen on, overriding the configuration.
    """
    from ktp_ocr.api.app import create_app

    app = create_app(config)
    uvicorn.run(
        app,
        host=host or config.server.host,
        port=port or config.server.port,
        log_config=None,
    )


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="KTP OCR server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c", "--config", type=Path, help="Configuration file (YAML)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the OCR server")
    serve_parser.add_argument("--host", help="Interface to bind")
    serve_parser.add_argument("-p", "--port", type=int, help="Port to listen on")

    test_parser = subparsers.add_parser("test", help="Perform OCR on an image file")
    test_parser.add_argument("file", type=Path, help="Image file to recognize")
    test_parser.add_argument(
        "-t",
        "--type",
        default="ktp",
        dest="doc_type",
        help="Extractor type (default: ktp)",
    )
    test_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "serve":
        serve(config, args.host, args.port)
    elif args.command == "test":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        try:
            result = recognize_file(args.file, config, args.doc_type)
        except OcrEngineError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        output_str = json.dumps(result, indent=2, ensure_ascii=False)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str)
            print(f"Output written to {args.output}")
        else:
            print(output_str)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
