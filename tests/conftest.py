"""Shared fixtures: every storage root lives under tmp_path, mirroring is explicit."""

import base64
from io import BytesIO

import pytest
from PIL import Image

from managers.engine import ProvenanceEngine
from managers.storage_config import StorageConfig
from models.user import UserIdentity


def make_png(size=(64, 48), color=(200, 30, 30, 255), mode="RGBA") -> bytes:
    buf = BytesIO()
    Image.new(mode, size, color if mode == "RGBA" else color[:3]).save(buf, format="PNG")
    return buf.getvalue()


def to_data_uri(data: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


@pytest.fixture
def identity():
    return UserIdentity(display_name="Alice", id="u1")


@pytest.fixture
def config(tmp_path):
    return StorageConfig(data_root=tmp_path / "data", shared_root="off")


@pytest.fixture
def mirrored_config(tmp_path):
    return StorageConfig(data_root=tmp_path / "data", shared_root=tmp_path / "shared")


@pytest.fixture
def engine(config):
    return ProvenanceEngine(config)


@pytest.fixture
def mirrored_engine(mirrored_config):
    return ProvenanceEngine(mirrored_config)


@pytest.fixture
def scope(engine, identity):
    return engine.open_scope(identity)


@pytest.fixture
def mirrored_scope(mirrored_engine, identity):
    return mirrored_engine.open_scope(identity)


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def png_payload(png_bytes):
    return to_data_uri(png_bytes)


@pytest.fixture
def image_factory():
    """Build PNG bytes of a given size: image_factory(size=(w, h))"""
    return make_png
