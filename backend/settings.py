import os
from pathlib import Path

# Basic settings helper to read environment configuration.

BACKEND_ROOT = Path(__file__).resolve().parent


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_int(val: str | None, default: int) -> int:
    if val is None or not val.strip():
        return default
    return int(val)


def _as_optional_int(val: str | None) -> int | None:
    if val is None or not val.strip():
        return None
    return int(val)


def _as_float(val: str | None, default: float) -> float:
    if val is None or not val.strip():
        return default
    return float(val)


def _as_list(val: str | None, default: list[str]) -> list[str]:
    if val is None:
        return list(default)
    return [part.strip() for part in val.split(",") if part.strip()]


class Settings:
    def __init__(self) -> None:
        # Media source
        self.MEDIA_ROOT: str = os.getenv("MEDIA_ROOT", "media")
        self.MEDIA_PATHS: list[str] = _as_list(os.getenv("MEDIA_PATHS"), [])
        self.MEDIA_EXTENSIONS: list[str] = _as_list(os.getenv("MEDIA_EXTENSIONS"), [".jpg", ".jpeg"])

        # Face detector
        self.FACE_API_URL: str | None = os.getenv("FACE_API_URL") or None
        self.FACE_API_TIMEOUT: float = _as_float(os.getenv("FACE_API_TIMEOUT"), 10.0)

        # Crop planner thresholds
        self.IMAGE_RATIO_TOLERANCE: float = _as_float(os.getenv("IMAGE_RATIO_TOLERANCE"), 0.1)
        self.MIN_CONFIDENCE: float = _as_float(os.getenv("MIN_CONFIDENCE"), 0.5)
        self.MIN_CONFIDENCE_MULTIPLIER: float = _as_float(os.getenv("MIN_CONFIDENCE_MULTIPLIER"), 1000.0)
        self.MIN_FACE_HEIGHT: int = _as_int(os.getenv("MIN_FACE_HEIGHT"), 20)
        self.MIN_AVG_FACE_HEIGHT: int = _as_int(os.getenv("MIN_AVG_FACE_HEIGHT"), 40)

        # Look-ahead cache
        self.CACHE_TTL_SECONDS: int = _as_int(os.getenv("CACHE_TTL_SECONDS"), 24 * 3600)
        self.CACHE_WARM_ON_STARTUP: bool = _as_bool(os.getenv("CACHE_WARM_ON_STARTUP"), True)
        # Frame size the startup warm-up composes for; unset means native size
        self.CACHE_WARM_WIDTH: int | None = _as_optional_int(os.getenv("CACHE_WARM_WIDTH"))
        self.CACHE_WARM_HEIGHT: int | None = _as_optional_int(os.getenv("CACHE_WARM_HEIGHT"))

        # Rendering
        self.CAPTION_FONT_PATH: str | None = os.getenv("CAPTION_FONT_PATH") or None
        self.JPEG_QUALITY: int = _as_int(os.getenv("JPEG_QUALITY"), 85)

        # Reverse geocoding
        self.GEOCODING_ENABLED: bool = _as_bool(os.getenv("GEOCODING_ENABLED"), False)
        self.NOMINATIM_USER_AGENT: str | None = os.getenv("NOMINATIM_USER_AGENT") or None
        self.NOMINATIM_MIN_INTERVAL: float = _as_float(os.getenv("NOMINATIM_MIN_INTERVAL"), 1.1)

        # View-count ledger
        self.LEDGER_DATABASE_URL: str = os.getenv(
            "LEDGER_DATABASE_URL", f"sqlite:///{BACKEND_ROOT / 'data' / 'ledger.db'}"
        )

        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
