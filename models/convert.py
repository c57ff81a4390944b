"""
Pydantic request/response models for the conversion endpoints.

REST      → POST /convertVideo           body {url} or {data: {url}}
Callable  → POST /callable/convertVideo  body {data: {url}}

The URL is deliberately a plain string: malformed URLs are rejected by
yt-dlp, not here.
"""

from typing import Optional

from pydantic import BaseModel


# ── Requests ──────────────────────────────────────────────────────────────────


class ConvertPayload(BaseModel):
    url: Optional[str] = None


class ConvertRequest(BaseModel):
    url: Optional[str] = None
    data: Optional[ConvertPayload] = None  # callable-style wrapper

    def resolved_url(self) -> Optional[str]:
        if self.data is not None:
            return self.data.url
        return self.url


class CallableRequest(BaseModel):
    data: Optional[ConvertPayload] = None


# ── Responses ─────────────────────────────────────────────────────────────────


class ConvertResponse(BaseModel):
    success: bool = True
    audioData: str                   # base64-encoded MP3 bytes
    fileName: str                    # named after the source title, e.g. "Song.mp3"


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None    # raw yt-dlp output, when there is any
    stack: Optional[str] = None      # only on 500s


class CallableError(BaseModel):
    status: str                      # "INVALID_ARGUMENT", "OUT_OF_RANGE", "INTERNAL"
    code: str                        # "invalid-argument", "out-of-range", "internal"
    message: str
    details: Optional[str] = None


class CallableResponse(BaseModel):
    result: ConvertResponse


class CallableErrorResponse(BaseModel):
    error: CallableError
