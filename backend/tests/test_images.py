import base64
import io

import pytest
from PIL import Image as PILImage  # type: ignore

from services.errors import ImageDecodeError
from services.images import (
    data_url_to_bytes,
    data_url_to_part,
    data_url_to_parts,
    image_to_part,
    normalize_image_bytes,
    to_data_url,
)


def _png_bytes(size, mode="RGB", color=(120, 130, 140)):
    img = PILImage.new(mode, size, color=color)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def test_normalize_downscales_large_photo_to_jpeg():
    out_bytes, out_mime = normalize_image_bytes(_png_bytes((5000, 3500)), max_dimension=2048)

    assert out_mime == "image/jpeg"
    with PILImage.open(io.BytesIO(out_bytes)) as im:
        assert max(im.size) == 2048
        assert im.format == "JPEG"


def test_normalize_keeps_alpha_as_png():
    out_bytes, out_mime = normalize_image_bytes(_png_bytes((64, 64), mode="RGBA", color=(0, 0, 0, 0)))

    assert out_mime == "image/png"
    with PILImage.open(io.BytesIO(out_bytes)) as im:
        assert im.size == (64, 64)


def test_normalize_rejects_garbage():
    with pytest.raises(ImageDecodeError):
        normalize_image_bytes(b"definitely not an image")
    with pytest.raises(ImageDecodeError):
        normalize_image_bytes(b"")


def test_image_to_part_accepts_file_objects():
    part = image_to_part(io.BytesIO(_png_bytes((32, 32))))

    inline = part["inline_data"]
    assert inline["mime_type"] == "image/jpeg"
    assert base64.b64decode(inline["data"])[:3] == b"\xff\xd8\xff"


def test_data_url_helpers():
    url = to_data_url(b"hello", "image/png")
    assert url == "data:image/png;base64,aGVsbG8="
    assert data_url_to_parts(url) == ("image/png", "aGVsbG8=")
    assert data_url_to_part(url) == {"inline_data": {"mime_type": "image/png", "data": "aGVsbG8="}}
    assert data_url_to_bytes(url) == (b"hello", "image/png")


@pytest.mark.parametrize("bad", ["", "no-comma-here", "data:image/png,AAAA", "https://x/y.png,z"])
def test_data_url_to_parts_rejects_malformed(bad):
    with pytest.raises(ValueError):
        data_url_to_parts(bad)


def test_data_url_to_bytes_rejects_bad_base64():
    with pytest.raises(ValueError):
        data_url_to_bytes("data:image/png;base64,@@@@")


def test_normalize_refuses_decompression_bomb():
    # 400M pixels packed into a few dozen KB of PNG.
    with pytest.raises(ImageDecodeError):
        normalize_image_bytes(_png_bytes((20000, 20000), mode="1", color=0))


def test_normalize_refuses_images_over_pixel_cap():
    with pytest.raises(ImageDecodeError) as excinfo:
        normalize_image_bytes(_png_bytes((7000, 6000), mode="1", color=0))
    assert "too large" in str(excinfo.value)
