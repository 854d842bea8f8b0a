import io
import os
import sys
import pytest
from PIL import Image

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from errors import InvalidInputError, NotFoundError
from image_service import ImageService


def image_bytes(fmt: str) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (6, 6), "orange").save(buf, format=fmt)
    return buf.getvalue()


def test_save_and_resolve(tmp_path):
    images = ImageService(str(tmp_path / "uploads"))
    data = image_bytes("JPEG")
    ref = images.save("sessions", data)
    assert ref.startswith("/uploads/sessions/") and ref.endswith(".jpg")
    path = images.path_for(ref)
    with open(path, "rb") as f:
        assert f.read() == data


def test_rejects_non_images(tmp_path):
    images = ImageService(str(tmp_path / "uploads"))
    with pytest.raises(InvalidInputError):
        images.save("avatars", b"definitely not an image")


def test_resolve_blocks_traversal(tmp_path):
    images = ImageService(str(tmp_path / "uploads"))
    (tmp_path / "secret.png").write_bytes(b"x")
    with pytest.raises(NotFoundError):
        images.resolve("sessions", "../../secret.png")
    with pytest.raises(NotFoundError):
        images.resolve("other", "secret.png")
    assert images.path_for("https://cdn.example.com/a.png") is None
    assert images.path_for("/uploads/sessions/missing.png") is None


def test_default_avatar_is_png(tmp_path):
    images = ImageService(str(tmp_path / "uploads"))
    data = images.default_avatar(3)
    with Image.open(io.BytesIO(data)) as img:
        assert img.format == "PNG"
        assert img.size == (64, 64)


def test_rejects_decompression_bombs(tmp_path, monkeypatch):
    images = ImageService(str(tmp_path / "uploads"))
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 10)
    with pytest.raises(InvalidInputError):
        images.save("sessions", image_bytes("PNG"))
    assert os.listdir(tmp_path / "uploads" / "sessions") == []


def test_discard_removes_stored_file(tmp_path):
    images = ImageService(str(tmp_path / "uploads"))
    ref = images.save("avatars", image_bytes("PNG"))
    path = images.path_for(ref)
    images.discard(ref)
    assert not os.path.exists(path)
    images.discard(ref)
    images.discard(None)
