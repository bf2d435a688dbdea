"""Exception hierarchy for the KTP OCR service."""


class KtpOcrError(Exception):
    """Base class for all service errors."""


class UploadError(KtpOcrError):
    """An upload could not be accepted."""

    def __init__(self, upload_id: str, message: str) -> None:
        super().__init__(f"{upload_id}: {message}")
        self.upload_id = upload_id


class OversizedUploadError(UploadError):
    """More bytes were received than the upload declared, or allowed."""


class UploadRejectedError(UploadError):
    """A chunk referenced an upload that is no longer open."""


class MalformedChunkError(KtpOcrError):
    """An inbound chunk message lacks required fields or carries bad data."""


class OcrEngineError(KtpOcrError):
    """The OCR engine could not recognize an image."""
