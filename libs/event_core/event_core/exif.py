import io
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import piexif
from PIL import Image

logger = logging.getLogger(__name__)

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"

# Formats whose EXIF block piexif can read straight from the byte stream
PIEXIF_FORMATS = {"JPEG", "MPO", "TIFF", "WEBP"}

EXIF_IFD_POINTER = 0x8769
GPS_IFD_POINTER = 0x8825


@dataclass(frozen=True)
class ExtractedMetadata:
    """Capture metadata recovered from an uploaded file.

    Every field is optional: a photo may carry a timestamp without GPS,
    GPS without a timestamp, or nothing at all.
    """

    capture_time: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    image_format: Optional[str] = None

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def _rational_to_float(value: Any) -> float:
    # piexif yields (numerator, denominator) pairs, Pillow yields IFDRational
    if isinstance(value, tuple):
        return value[0] / value[1]
    return float(value)


def _convert_gps_to_decimal(
    gps_coord: Optional[Tuple[Any, ...]],
    gps_ref: Optional[Any],
) -> Optional[float]:
    """Converts GPS coordinates from EXIF format (degrees, minutes, seconds) to decimal degrees."""
    if not gps_coord or not gps_ref:
        return None

    try:
        degrees = _rational_to_float(gps_coord[0])
        minutes = _rational_to_float(gps_coord[1])
        seconds = _rational_to_float(gps_coord[2])

        decimal = degrees + minutes / 60 + seconds / 3600

        if isinstance(gps_ref, bytes):
            gps_ref = gps_ref.decode("ascii", errors="ignore")
        if gps_ref.strip("\x00 ").upper() in ["S", "W"]:
            decimal = -decimal

        return decimal
    except (IndexError, ZeroDivisionError, TypeError, ValueError, AttributeError) as e:
        logger.warning(f"Could not parse GPS coordinate: {e}")
        return None


def _within(value: Optional[float], bound: float) -> Optional[float]:
    if value is None or not -bound <= value <= bound:
        return None
    return value


def _parse_exif_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="ignore")
    value = str(value).strip("\x00 ")
    if not value:
        return None
    try:
        return datetime.strptime(value, EXIF_DATETIME_FORMAT)
    except ValueError:
        logger.warning(f"Could not parse date string: {value!r}")
        return None


def _read_piexif_tags(content: bytes) -> Dict[str, Any]:
    exif_dict = piexif.load(content)
    exif_ifd = exif_dict.get("Exif") or {}
    zeroth_ifd = exif_dict.get("0th") or {}
    gps_info = exif_dict.get("GPS") or {}

    return {
        "DateTimeOriginal": exif_ifd.get(piexif.ExifIFD.DateTimeOriginal)
        or zeroth_ifd.get(piexif.ImageIFD.DateTime),
        "GPSLatitude": gps_info.get(piexif.GPSIFD.GPSLatitude),
        "GPSLatitudeRef": gps_info.get(piexif.GPSIFD.GPSLatitudeRef),
        "GPSLongitude": gps_info.get(piexif.GPSIFD.GPSLongitude),
        "GPSLongitudeRef": gps_info.get(piexif.GPSIFD.GPSLongitudeRef),
    }


def _read_pillow_tags(image: Image.Image) -> Dict[str, Any]:
    exif = image.getexif()
    exif_ifd = exif.get_ifd(EXIF_IFD_POINTER)
    gps_info = exif.get_ifd(GPS_IFD_POINTER)

    return {
        "DateTimeOriginal": exif_ifd.get(piexif.ExifIFD.DateTimeOriginal)
        or exif.get(piexif.ImageIFD.DateTime),
        "GPSLatitude": gps_info.get(piexif.GPSIFD.GPSLatitude),
        "GPSLatitudeRef": gps_info.get(piexif.GPSIFD.GPSLatitudeRef),
        "GPSLongitude": gps_info.get(piexif.GPSIFD.GPSLongitude),
        "GPSLongitudeRef": gps_info.get(piexif.GPSIFD.GPSLongitudeRef),
    }


def extract_metadata(content: bytes) -> ExtractedMetadata:
    """
    Extracts capture time and GPS position from the raw bytes of an upload.

    Never raises: non-image content, truncated files and malformed tags all
    degrade to absent fields, since missing metadata is an expected condition
    for screenshots, edited exports and arbitrary uploads.

    Args:
        content: The raw file bytes.

    Returns:
        An ExtractedMetadata with whatever could be recovered.
    """
    if not content:
        return ExtractedMetadata()

    image_format = None
    try:
        with Image.open(io.BytesIO(content)) as image:
            image_format = image.format
            if image_format in PIEXIF_FORMATS:
                tags = _read_piexif_tags(content)
            else:
                tags = _read_pillow_tags(image)
    except Exception as e:
        logger.debug(f"No readable EXIF metadata ({image_format or 'unknown format'}): {e}")
        return ExtractedMetadata(image_format=image_format)

    latitude = _within(
        _convert_gps_to_decimal(tags["GPSLatitude"], tags["GPSLatitudeRef"]), 90.0
    )
    longitude = _within(
        _convert_gps_to_decimal(tags["GPSLongitude"], tags["GPSLongitudeRef"]), 180.0
    )

    return ExtractedMetadata(
        capture_time=_parse_exif_datetime(tags["DateTimeOriginal"]),
        latitude=latitude,
        longitude=longitude,
        image_format=image_format,
    )
