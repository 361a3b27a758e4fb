import base64
import binascii
import io
import logging
import re
from typing import Any, BinaryIO, Dict, Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from services.errors import ImageDecodeError

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]+);base64,(?P<data>.+)$", re.DOTALL)

ImageSource = Union[bytes, bytearray, BinaryIO]

# Uploads above this are refused before any pixel data is decoded.
MAX_IMAGE_PIXELS = 40_000_000


def data_url_to_parts(data_url: str) -> Tuple[str, str]:
    """Split `data:<mime>;base64,<data>` into (mime_type, base64_data)."""
    if not isinstance(data_url, str) or "," not in data_url:
        raise ValueError("Invalid data URL")
    match = _DATA_URL_RE.match(data_url.strip())
    if not match:
        raise ValueError("Could not parse MIME type from data URL")
    return match.group("mime"), match.group("data")


def data_url_to_part(data_url: str) -> Dict[str, Any]:
    mime_type, data = data_url_to_parts(data_url)
    return {"inline_data": {"mime_type": mime_type, "data": data}}


def to_data_url(image_bytes: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('utf-8')}"


def data_url_to_bytes(data_url: str) -> Tuple[bytes, str]:
    mime_type, data = data_url_to_parts(data_url)
    try:
        return base64.b64decode(data, validate=True), mime_type
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Data URL payload is not valid base64: {e}") from e


def _read_source(source: ImageSource) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    if hasattr(source, "seek"):
        source.seek(0)
    return source.read()


def normalize_image_bytes(
    image_bytes: bytes,
    *,
    max_dimension: int = 2048,
    jpeg_quality: int = 90,
) -> Tuple[bytes, str]:
    """
    Decode an image, apply EXIF orientation, downscale to max_dimension (longest
    side), and re-encode: PNG when the image has alpha, JPEG otherwise.

    Returns: (normalized_bytes, mime_type)
    """
    if not image_bytes:
        raise ImageDecodeError("Empty image")

    try:
        with Image.open(io.BytesIO(image_bytes)) as im:
            if im.size[0] * im.size[1] > MAX_IMAGE_PIXELS:
                raise ImageDecodeError(
                    f"Image is too large ({im.size[0]}x{im.size[1]} pixels). "
                    "Please upload a photo under 40 megapixels."
                )
            im = ImageOps.exif_transpose(im)
            width, height = im.size

            longest = max(width, height)
            if longest > max_dimension:
                scale = max_dimension / float(longest)
                new_size = (max(1, int(round(width * scale))), max(1, int(round(height * scale))))
                im = im.resize(new_size, Image.Resampling.LANCZOS)
                logger.info(f"Downscaled image from {width}x{height} to {new_size[0]}x{new_size[1]}")

            has_alpha = im.mode in ("RGBA", "LA") or (im.mode == "P" and "transparency" in (im.info or {}))

            out = io.BytesIO()
            if has_alpha:
                im.save(out, format="PNG", optimize=True)
                return out.getvalue(), "image/png"
            im.convert("RGB").save(out, format="JPEG", quality=jpeg_quality, optimize=True)
            return out.getvalue(), "image/jpeg"
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise ImageDecodeError(f"Could not read the uploaded image: {e}") from e


def image_to_part(source: ImageSource) -> Dict[str, Any]:
    """Read an uploaded photo and turn it into an inline_data request part."""
    normalized, mime_type = normalize_image_bytes(_read_source(source))
    return {
        "inline_data": {
            "mime_type": mime_type,
            "data": base64.b64encode(normalized).decode("utf-8"),
        }
    }
