"""Tests for logo / signature image decoding."""
import base64
import io
import logging

import pytest
from PIL import Image

from sow_engine.services.image_loader import decode_data_url, load_image


def _encode(fmt, mode="RGB"):
    buf = io.BytesIO()
    Image.new(mode, (4, 3), color=0).save(buf, format=fmt)
    return buf.getvalue()


def test_png_bytes(png_bytes):
    image = load_image(png_bytes, "logo")
    assert image.ext == "png"
    assert image.mime == "image/png"
    assert image.name == "logo"
    assert (image.width_px, image.height_px) == (180, 56)
    assert image.data == png_bytes


def test_signature_slot_uses_signature_size(png_bytes):
    image = load_image(png_bytes, "signature")
    assert (image.width_px, image.height_px) == (240, 80)


def test_size_overrides(png_bytes):
    image = load_image(png_bytes, "logo", width_px=90, height_px=30)
    assert (image.width_px, image.height_px) == (90, 30)


def test_data_url(png_bytes):
    url = "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")
    assert decode_data_url(url) == png_bytes
    assert load_image(url, "signature").data == png_bytes


def test_jpeg_keeps_its_format():
    image = load_image(_encode("JPEG"))
    assert (image.ext, image.mime) == ("jpeg", "image/jpeg")


def test_tiff_is_converted_to_png():
    image = load_image(_encode("TIFF"))
    assert image.ext == "png"
    assert image.data.startswith(b"\x89PNG\r\n\x1a\n")


@pytest.mark.parametrize("source", [None, b"", ""])
def test_empty_source_means_no_image(source):
    assert load_image(source) is None


def test_garbage_is_dropped_with_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="sow_engine.services.image_loader"):
        assert load_image(b"definitely not an image", "signature") is None
    assert "signature" in caplog.text


def test_bad_base64_is_dropped():
    assert load_image("data:image/png;base64,@@@@", "logo") is None


def test_decode_data_url_rejects_plain_strings():
    with pytest.raises(ValueError):
        decode_data_url("https://example.com/logo.png")
