#!/usr/bin/env python3
"""
FastAPI server that takes a video page URL and returns the audio as an MP3,
base64-encoded inline, using a local yt-dlp binary (with ffmpeg) in a
per-request scratch directory.

Constraints:
- Sources longer than MAX_DURATION_SECONDS are rejected before any download.
- Nothing is stored; the scratch directory is removed before the response.

Usage:
    # Install dependencies:
    #   pip install -e .
    #
    # Start the server from the project root:
    #   python3 app.py
    #
    # Example request:
    #   curl -X POST "http://localhost:10000/convertVideo" \
    #        -H "Content-Type: application/json" \
    #        -d '{"url": "https://youtu.be/2fhRNk3HywI"}'
"""

import asyncio
import os
import sys
import traceback
from functools import lru_cache, partial
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from config import settings
from converter import ConversionResult, convert_video
from errors import ConversionError
from models.convert import (
    CallableError,
    CallableErrorResponse,
    CallableRequest,
    CallableResponse,
    ConvertRequest,
    ConvertResponse,
    ErrorResponse,
)
from yt_dlp_tool import YtDlpTool, build_default_tool

app = FastAPI(title="yt-dlp MP3 conversion engine")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies get the same 400 shape as a missing URL."""
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    )
    print(f"[{request.url.path.lstrip('/')}] Invalid request body: {details}", file=sys.stderr)

    if request.url.path.startswith("/callable/"):
        error = CallableError(
            status="INVALID_ARGUMENT",
            code="invalid-argument",
            message="Invalid request body",
            details=details or None,
        )
        content = CallableErrorResponse(error=error).model_dump(exclude_none=True)
    else:
        content = ErrorResponse(error="Invalid request body", details=details or None).model_dump(exclude_none=True)
    return JSONResponse(status_code=400, content=content)


@lru_cache()
def get_tool() -> YtDlpTool:
    """Shared tool instance; the yt-dlp binary is acquired on first use."""
    return build_default_tool()


async def _convert(url: Optional[str], tool: YtDlpTool) -> ConversionResult:
    """Run the blocking conversion in a thread executor so the event loop is never blocked."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(convert_video, url, tool))


def _to_response(result: ConversionResult) -> ConvertResponse:
    return ConvertResponse(audioData=result.audio_data, fileName=result.file_name)


@app.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "MP3 Conversion Engine is Online"


@app.post(
    "/convertVideo",
    response_model=ConvertResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def convert_video_endpoint(
    request: Optional[ConvertRequest] = None,
    tool: YtDlpTool = Depends(get_tool),
):
    """Convert a video URL to MP3 and return it base64-encoded."""
    url = request.resolved_url() if request else None
    print(f"[convertVideo] Received request for: {url}", file=sys.stderr)

    try:
        result = await _convert(url, tool)
    except ConversionError as e:
        print(f"[convertVideo] {type(e).__name__}: {e.message}", file=sys.stderr)
        body = ErrorResponse(error=e.message, details=e.details)
        if e.http_status >= 500:
            body.stack = traceback.format_exc()
        return JSONResponse(status_code=e.http_status, content=body.model_dump(exclude_none=True))
    except Exception as e:
        print(f"[convertVideo] FATAL ERROR for {url}:\n{traceback.format_exc()}", file=sys.stderr)
        body = ErrorResponse(error=str(e) or type(e).__name__, stack=traceback.format_exc())
        return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))

    return _to_response(result)


@app.post(
    "/callable/convertVideo",
    response_model=CallableResponse,
    responses={400: {"model": CallableErrorResponse}, 500: {"model": CallableErrorResponse}},
)
async def convert_video_callable(
    request: Optional[CallableRequest] = None,
    tool: YtDlpTool = Depends(get_tool),
):
    """RPC-style variant: {data: {url}} in, {result: ...} or {error: {code, message}} out."""
    url = request.data.url if request and request.data else None
    print(f"[callable/convertVideo] Received request for: {url}", file=sys.stderr)

    try:
        result = await _convert(url, tool)
    except ConversionError as e:
        print(f"[callable/convertVideo] {type(e).__name__}: {e.message}", file=sys.stderr)
        message = e.message if e.http_status < 500 else f"Conversion failed: {e.message}"
        error = CallableError(status=e.status, code=e.code, message=message, details=e.details)
        return JSONResponse(
            status_code=e.http_status,
            content=CallableErrorResponse(error=error).model_dump(exclude_none=True),
        )
    except Exception as e:
        print(f"[callable/convertVideo] FATAL ERROR for {url}:\n{traceback.format_exc()}",
              file=sys.stderr)
        error = CallableError(
            status="INTERNAL",
            code="internal",
            message=f"Conversion failed: {str(e) or type(e).__name__}",
        )
        return JSONResponse(
            status_code=500,
            content=CallableErrorResponse(error=error).model_dump(exclude_none=True),
        )

    return CallableResponse(result=_to_response(result))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host="0.0.0.0", port=int(os.environ.get("PORT", settings.PORT)), reload=True)
