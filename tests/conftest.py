"""Shared pytest fixtures for the build script tests."""

import io
import json
from pathlib import Path

import httpx
import pytest
from PIL import Image

from build_catalog import SiteConfig


# =============================================================================
# Helpers
# =============================================================================

def make_image(width: int, height: int, fmt: str = "PNG", color=(200, 40, 40)) -> bytes:
    """Encode a solid-color image of the given size."""
    out = io.BytesIO()
    Image.new("RGB", (width, height), color).save(out, fmt)
    return out.getvalue()


def video(id: str, /, **fields) -> dict:
    """A complete video record; override or drop fields with keyword args."""
    record = {
        "id": id,
        "title": f"Video {id}",
        "description": "A description",
        "category": "Music",
        "embedUrl": f"https://player.example.com/embed/{id}",
        "duration": 120,
        "tags": "one, two",
        "datePublished": "2024-01-01",
        "thumbnail": f"https://cdn.example.com/{id}.jpg",
    }
    record.update(fields)
    return {k: v for k, v in record.items() if v is not None}


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every request it served."""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []

        def recording(request):
            self.requests.append(request)
            return handler(request)

        super().__init__(recording)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Empty project root with the directories the scripts expect."""
    (tmp_path / "src" / "data").mkdir(parents=True)
    (tmp_path / "public").mkdir()
    return tmp_path


@pytest.fixture
def write_videos(project):
    def _write(videos) -> Path:
        path = project / "src" / "data" / "videos.json"
        path.write_text(json.dumps(videos), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def config(project) -> SiteConfig:
    return SiteConfig(
        root=project,
        site_url="https://videos.example.com",
        indexnow_key="abc123",
    )


@pytest.fixture
def image_transport() -> RecordingTransport:
    """Serves a 640x360 JPEG for any URL except paths containing "missing" (404)."""
    body = make_image(640, 360, "JPEG")

    def handler(request):
        if "missing" in request.url.path:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, content=body, headers={"Content-Type": "image/jpeg"})

    return RecordingTransport(handler)


@pytest.fixture
def image_client(image_transport):
    with httpx.Client(transport=image_transport) as client:
        yield client
