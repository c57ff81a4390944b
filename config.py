"""
Configuration for the conversion service.

Everything is read from the environment (optionally via a .env file).
"""

import os
import tempfile
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings"""

    # Server
    PORT: int = int(os.getenv("PORT", "10000"))
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    # Admission control / output format
    MAX_DURATION_SECONDS: int = int(os.getenv("MAX_DURATION_SECONDS", "600"))  # 10 minutes
    AUDIO_BITRATE_KBPS: int = int(os.getenv("AUDIO_BITRATE_KBPS", "320"))
    EMBED_THUMBNAIL: bool = os.getenv("EMBED_THUMBNAIL", "true").lower() == "true"

    # Subprocess bounds (in seconds)
    PROBE_TIMEOUT_SECONDS: float = float(os.getenv("PROBE_TIMEOUT_SECONDS", "60"))
    CONVERSION_TIMEOUT_SECONDS: float = float(os.getenv("CONVERSION_TIMEOUT_SECONDS", "540"))

    # yt-dlp binary
    # If set, the binary is assumed preinstalled and is never downloaded
    YTDLP_PATH: Optional[str] = os.getenv("YTDLP_PATH", None)
    YTDLP_CACHE_DIR: str = os.getenv("YTDLP_CACHE_DIR", tempfile.gettempdir())
    YTDLP_DOWNLOAD_TIMEOUT: float = float(os.getenv("YTDLP_DOWNLOAD_TIMEOUT", "120"))
    # Secret Manager style mount; skipped when the file does not exist
    YTDLP_COOKIES_FILE: str = os.getenv("YTDLP_COOKIES_FILE", "/secrets/cookies.txt")

    # ffmpeg (optional explicit location, otherwise resolved per platform)
    FFMPEG_PATH: Optional[str] = os.getenv("FFMPEG_PATH", None)

    # Parent directory for per-request scratch workspaces
    WORKSPACE_ROOT: str = os.getenv("WORKSPACE_ROOT", tempfile.gettempdir())

    @property
    def cors_origins_list(self) -> list:
        """Parse CORS origins into a list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Global settings instance
settings = Settings()
