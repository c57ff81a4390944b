"""
Failure kinds for a conversion request.

Each kind knows how it is surfaced: the HTTP status on the REST route and the
short code / status pair on the callable route.
"""

from typing import Optional


class ConversionError(Exception):
    http_status = 500
    code = "internal"
    status = "INTERNAL"
    default_message = "Conversion failed."

    def __init__(self, message: Optional[str] = None, details: Optional[str] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class InvalidArgument(ConversionError):
    http_status = 400
    code = "invalid-argument"
    status = "INVALID_ARGUMENT"
    default_message = "URL is required"


class ToolAcquisitionError(ConversionError):
    default_message = "yt-dlp binary is not available."


class MetadataUnavailable(ConversionError):
    http_status = 400
    code = "invalid-argument"
    status = "INVALID_ARGUMENT"
    default_message = "Could not fetch video metadata. Check the URL."


class DurationExceeded(ConversionError):
    http_status = 400
    code = "out-of-range"
    status = "OUT_OF_RANGE"

    def __init__(self, seconds: int, limit_seconds: int):
        self.seconds = seconds
        self.limit_seconds = limit_seconds
        super().__init__(
            f"Video is too long. Maximum duration is {_format_limit(limit_seconds)}."
        )


class WorkspaceError(ConversionError):
    default_message = "Could not create a scratch directory for the conversion."


class ConversionProcessError(ConversionError):
    def __init__(self, exit_code: Optional[int], details: Optional[str] = None,
                 message: Optional[str] = None):
        self.exit_code = exit_code
        super().__init__(message or f"Process exited with code {exit_code}", details)


class OutputMissing(ConversionError):
    default_message = "MP3 file not found after conversion"


class PackagingError(ConversionError):
    default_message = "Could not read the converted MP3 file."


def _format_limit(seconds: int) -> str:
    if seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds} seconds"
