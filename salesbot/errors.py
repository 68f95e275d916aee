"""
Error taxonomy shared by the engine, the config write path and the HTTP layer.

"Not found" outcomes (no identifier, no quick reply, no flow trigger) are not
exceptions: lookups return None and OCR returns a ``no_identifier`` outcome.
"""
from typing import Optional


class InfrastructureFailure(Exception):
    """OCR, media download or upstream call failed. Degrades to a fallback reply."""

    reason = "INFRASTRUCTURE_ERROR"

    def __init__(self, details: str = "", reason: Optional[str] = None):
        super().__init__(details or self.reason)
        self.details = details
        if reason:
            self.reason = reason


class OcrFailure(InfrastructureFailure):
    reason = "OCR_ERROR"


class MediaDownloadFailure(InfrastructureFailure):
    reason = "MEDIA_DOWNLOAD_ERROR"


class UpstreamFailure(InfrastructureFailure):
    reason = "UPSTREAM_ERROR"


class SendFailure(Exception):
    """The transport could not deliver a reply. The intended text is kept for audit."""

    def __init__(self, channel_id: str, text: str, details: str = ""):
        super().__init__(details or "send failed")
        self.channel_id = channel_id
        self.text = text
        self.details = details


class ValidationError(Exception):
    """Malformed config write (bad token, empty trigger, invalid variable name...)."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


class ConflictError(Exception):
    """Duplicate token/trigger/name within the same device scope."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


class SessionNotFound(Exception):
    code = "SESSION_NOT_FOUND"


class SessionNotReady(Exception):
    code = "SESSION_NOT_READY"
