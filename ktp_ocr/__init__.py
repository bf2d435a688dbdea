"""KTP OCR service.

Reassembles identity card images uploaded in chunks over a WebSocket,
runs them through Tesseract OCR and maps the recognized text onto the
fields of an Indonesian national ID card (KTP).
"""

__version__ = "1.0.0"

PROTOCOL_VERSION = "OCR-1.0"
