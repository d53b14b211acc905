"""Shared fixtures: an in-memory Datalith store served through httpx.MockTransport."""
import io
import json
import uuid
from datetime import datetime, timezone
from email.utils import format_datetime

import httpx
import pytest
from PIL import Image as PILImage

from config import Settings
from datalith import Datalith

FAKE_WEBP_HEADER = b"RIFF\x00\x00\x00\x00WEBPVP8 "


def create_test_png(width: int = 256, height: int = 256, seed: int = 0) -> bytes:
    """Create a small test PNG image.

    Args:
        width: Image width in pixels.
        height: Image height in pixels.
        seed: Seed for generating different colored images.

    Returns:
        bytes: PNG image data.
    """
    color = ((seed * 50) % 256, (seed * 100) % 256, (seed * 150) % 256)
    img = PILImage.new("RGB", (width, height), color=color)

    img_bytes = io.BytesIO()
    img.save(img_bytes, format="PNG")
    return img_bytes.getvalue()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class FakeDatalith:
    """Minimal in-memory Datalith store.

    Implements the routes the client uses, records every request it
    receives, and rejects uploads larger than ``max_upload_size`` with 413.
    """

    def __init__(self, max_upload_size: int = 10 * 1024 * 1024):
        self.max_upload_size = max_upload_size
        self.resources: dict[str, dict] = {}
        self.images: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method = request.method
        path = request.url.path

        if method == "PUT" and path == "/o/":
            return await self._put_resource(request)
        if method == "PUT" and path == "/i/o/":
            return await self._put_image(request)
        if method == "PUT" and path.startswith("/o/") and "convert-image" in request.url.params:
            return self._convert(path[len("/o/"):], request)
        if method == "GET" and path.startswith("/f/"):
            return self._get_resource(path[len("/f/"):])
        if method == "GET" and path.startswith("/i/f/"):
            return self._get_image(path[len("/i/f/"):], request)
        if method == "DELETE" and path.startswith("/o/"):
            return self._delete(self.resources, path[len("/o/"):])
        if method == "DELETE" and path.startswith("/i/o/"):
            return self._delete(self.images, path[len("/i/o/"):])

        return httpx.Response(400)

    async def _put_resource(self, request: httpx.Request) -> httpx.Response:
        data = await request.aread()
        if len(data) > self.max_upload_size:
            return httpx.Response(413)

        params = request.url.params
        file_type = params.get("file_type")
        if file_type is None:
            file_type = "image/png" if data.startswith(b"\x89PNG") else "application/octet-stream"

        resource_id = str(uuid.uuid4())
        resource = {
            "id": resource_id,
            "created_at": _now().isoformat(),
            "file_type": file_type,
            "file_size": len(data),
            "file_name": params.get("file_name", resource_id),
            "is_temporary": params.get("temporary") == "true",
        }
        self.resources[resource_id] = {"data": data, **resource}
        return httpx.Response(200, json=resource)

    def _store_image(self, data: bytes, file_name: str, params: httpx.QueryParams) -> dict:
        with PILImage.open(io.BytesIO(data)) as img:
            width, height = img.size

        scale = 1.0
        if "max_width" in params:
            scale = min(scale, int(params["max_width"]) / width)
        if "max_height" in params:
            scale = min(scale, int(params["max_height"]) / height)

        image_id = str(uuid.uuid4())
        image = {
            "id": image_id,
            "created_at": _now().isoformat(),
            "image_width": max(1, round(width * scale)),
            "image_height": max(1, round(height * scale)),
            "image_stem": file_name.rsplit(".", 1)[0],
        }
        self.images[image_id] = {"original": data, **image}
        return image

    async def _put_image(self, request: httpx.Request) -> httpx.Response:
        data = await request.aread()
        if len(data) > self.max_upload_size:
            return httpx.Response(413)

        try:
            image = self._store_image(data, request.url.params.get("file_name", "image"), request.url.params)
        except OSError:
            return httpx.Response(400)
        return httpx.Response(200, json=image)

    def _convert(self, resource_id: str, request: httpx.Request) -> httpx.Response:
        resource = self.resources.get(resource_id)
        if resource is None:
            return httpx.Response(404)

        image = self._store_image(resource["data"], resource["file_name"], request.url.params)
        return httpx.Response(200, json=image)

    def _get_resource(self, resource_id: str) -> httpx.Response:
        resource = self.resources.get(resource_id)
        if resource is None:
            return httpx.Response(404)

        headers = {
            "etag": f'"{resource_id}"',
            "date": format_datetime(_now(), usegmt=True),
            "content-type": resource["file_type"],
            "content-disposition": f'inline; filename="{resource["file_name"]}"',
        }
        return httpx.Response(200, headers=headers, content=resource["data"])

    def _get_image(self, image_id: str, request: httpx.Request) -> httpx.Response:
        image = self.images.get(image_id)
        if image is None:
            return httpx.Response(404)

        resolution = request.url.params.get("resolution", "1x")
        headers = {
            "etag": f'"{image_id}-{resolution}"',
            "date": format_datetime(_now(), usegmt=True),
        }

        if resolution == "original":
            headers["content-type"] = "image/png"
            return httpx.Response(200, headers=headers, content=image["original"])

        multiplier = int(resolution[:-1])
        width = image["image_width"] * multiplier
        height = image["image_height"] * multiplier
        headers["content-type"] = "image/png" if request.url.params.get("fallback") == "true" else "image/webp"
        headers["x-image-width"] = str(width)
        headers["x-image-height"] = str(height)
        return httpx.Response(200, headers=headers, content=FAKE_WEBP_HEADER + bytes(width))

    def _delete(self, store: dict, object_id: str) -> httpx.Response:
        if store.pop(object_id, None) is None:
            return httpx.Response(404)
        return httpx.Response(200)


def json_response(payload: dict, status_code: int = 200) -> httpx.Response:
    """Build a JSON response with an explicit body, for hand-written handlers."""
    return httpx.Response(
        status_code,
        headers={"content-type": "application/json"},
        content=json.dumps(payload).encode(),
    )


@pytest.fixture
def settings():
    """Settings independent of the environment and any .env file."""
    return Settings(
        _env_file=None,
        api_prefix="http://datalith.test",
        request_timeout=5000,
        idle_timeout=2000,
    )


@pytest.fixture
def fake_store():
    """Create an empty in-memory store."""
    return FakeDatalith()


@pytest.fixture
def datalith(fake_store, settings):
    """Create a client talking to the in-memory store."""
    return Datalith(settings=settings, transport=httpx.MockTransport(fake_store))


@pytest.fixture
def png_bytes():
    """A 256x256 PNG image."""
    return create_test_png()
