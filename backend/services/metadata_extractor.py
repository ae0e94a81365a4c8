"""
EXIF metadata extraction service.

Reads the handful of facts a caption and the crop need from the raw image
bytes: dimensions, EXIF orientation, capture time and GPS position.
"""
from datetime import datetime
from io import BytesIO
from typing import Any, Dict, Optional, Tuple

from PIL import Image
from PIL.ExifTags import GPSTAGS, TAGS

from domain.models import MediaFacts

ORIENTATION_TAG = 0x0112
GPS_IFD_TAG = 0x8825
EXIF_IFD_TAG = 0x8769


def extract_media_facts(file_bytes: bytes) -> MediaFacts:
    """Read dimensions, orientation, capture time and GPS from raw image bytes.

    Never raises: anything that cannot be read keeps its `MediaFacts` default.
    """
    facts = MediaFacts()

    try:
        img = Image.open(BytesIO(file_bytes))

        # Raw (not auto-oriented) dimensions
        facts.width = img.width
        facts.height = img.height

        exif_data = _get_exif_dict(img)
        if exif_data:
            facts.orientation = _parse_orientation(exif_data.get("Orientation"))
            facts.created_at = _parse_datetime(exif_data)

            gps_info = exif_data.get("GPSInfo")
            if gps_info:
                facts.latitude, facts.longitude = _parse_gps_coordinates(gps_info)

    except Exception:
        pass  # Image parsing failed - return whatever we have

    return facts


def _get_exif_dict(img) -> Optional[Dict[str, Any]]:
    """
    Extract EXIF data as a dictionary keyed by tag name.

    Merges the Exif sub-IFD (where DateTimeOriginal lives) and decodes the
    GPS IFD into its own dict under "GPSInfo".
    """
    try:
        exif = img.getexif()
        if not exif:
            return None

        exif_dict: Dict[str, Any] = {}
        for tag_id, value in exif.items():
            exif_dict[TAGS.get(tag_id, str(tag_id))] = value

        get_ifd = getattr(exif, "get_ifd", None)
        if get_ifd is not None:
            for tag_id, value in get_ifd(EXIF_IFD_TAG).items():
                exif_dict.setdefault(TAGS.get(tag_id, str(tag_id)), value)
            gps_raw = get_ifd(GPS_IFD_TAG) or exif_dict.get("GPSInfo")
        else:
            gps_raw = exif_dict.get("GPSInfo")

        if isinstance(gps_raw, dict) and gps_raw:
            exif_dict["GPSInfo"] = {GPSTAGS.get(k, str(k)): v for k, v in gps_raw.items()}
        else:
            exif_dict.pop("GPSInfo", None)

        return exif_dict

    except Exception:
        return None


def _parse_orientation(value: Any) -> int:
    """EXIF orientation 1..8; anything else means upright."""
    try:
        orientation = int(value)
    except (TypeError, ValueError):
        return 1
    return orientation if 1 <= orientation <= 8 else 1


def _parse_datetime(exif_data: Dict[str, Any]) -> Optional[datetime]:
    """Parse capture datetime from EXIF data."""
    # Try various datetime tags in order of preference
    datetime_tags = ["DateTimeOriginal", "DateTimeDigitized", "DateTime"]

    for tag in datetime_tags:
        value = exif_data.get(tag)
        if value:
            parsed = _parse_exif_datetime(value)
            if parsed:
                return parsed

    return None


def _parse_exif_datetime(value: Any) -> Optional[datetime]:
    """Parse an EXIF datetime string."""
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="ignore")
    if not isinstance(value, str):
        return None

    # Common EXIF datetime formats
    formats = [
        "%Y:%m:%d %H:%M:%S",  # Standard EXIF format
        "%Y-%m-%d %H:%M:%S",  # ISO-ish format
        "%Y/%m/%d %H:%M:%S",  # Slash format
    ]

    for fmt in formats:
        try:
            return datetime.strptime(value.strip().rstrip("\x00"), fmt)
        except ValueError:
            continue

    return None


def _parse_gps_coordinates(gps_info: Dict[str, Any]) -> Tuple[Optional[float], Optional[float]]:
    """
    Parse GPS latitude and longitude from EXIF GPSInfo.

    Converts degrees/minutes/seconds format to decimal degrees.

    Returns:
        Tuple of (latitude, longitude) in decimal degrees, or (None, None) on error.
    """
    try:
        lat = gps_info.get("GPSLatitude")
        lat_ref = gps_info.get("GPSLatitudeRef", "N")
        lon = gps_info.get("GPSLongitude")
        lon_ref = gps_info.get("GPSLongitudeRef", "E")

        if lat is None or lon is None:
            return None, None

        lat_decimal = _dms_to_decimal(lat, lat_ref)
        lon_decimal = _dms_to_decimal(lon, lon_ref)
        if lat_decimal is None or lon_decimal is None:
            return None, None

        return lat_decimal, lon_decimal

    except Exception:
        return None, None


def _dms_to_decimal(dms: Any, ref: Any) -> Optional[float]:
    """(deg, min, sec) plus hemisphere reference to signed decimal degrees."""
    try:
        if not isinstance(dms, (list, tuple)) or len(dms) < 3:
            return None

        degrees = float(dms[0])
        minutes = float(dms[1])
        seconds = float(dms[2])

        decimal = degrees + (minutes / 60.0) + (seconds / 3600.0)

        if isinstance(ref, bytes):
            ref = ref.decode("ascii", errors="ignore")
        # Apply direction
        if str(ref).strip().upper() in ("S", "W"):
            decimal = -decimal

        return round(decimal, 7)  # ~1cm precision

    except Exception:
        return None


def register_heif_opener():
    """
    Register HEIF/HEIC opener with Pillow if pillow-heif is available.

    Call this at application startup to enable HEIC support.
    Safe to call multiple times or if pillow-heif is not installed.
    """
    try:
        from pillow_heif import register_heif_opener as _register
        _register()
        return True
    except ImportError:
        return False
