"""Tests for the Drive storage source."""

import httpx
import pytest

from publisher.services.clients.base import ClientConfig
from publisher.services.clients.drive_client import DriveClient
from publisher.services.errors import SourceUnavailable


class StaticAuth:
    """Token provider returning a fixed header."""

    async def auth_headers(self) -> dict[str, str]:
        return {"Authorization": "Bearer tok"}


def make_drive(handler) -> DriveClient:
    return DriveClient(
        ClientConfig(base_url="https://drive.test/v3"),
        StaticAuth(),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def drive_file(file_id: str, name: str) -> dict:
    return {
        "id": file_id,
        "name": name,
        "mimeType": "video/mp4",
        "size": "2097152",
        "createdTime": "2024-05-01T10:00:00.000Z",
        "modifiedTime": "2024-05-01T10:05:00.000Z",
    }


class TestList:
    """Test folder listing."""

    @pytest.mark.asyncio
    async def test_paginated_listing(self):
        """Every page is read and converted to inventory items."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if "pageToken" not in request.url.params:
                return httpx.Response(200, json={"files": [drive_file("f1", "A.mp4")], "nextPageToken": "t2"})
            return httpx.Response(200, json={"files": [drive_file("f2", "B.mp4")]})

        items = await make_drive(handler).list("folder-1")

        assert [item.source_id for item in items] == ["f1", "f2"]
        assert items[0].display_name == "A"
        assert items[0].byte_size == 2097152
        assert items[0].created_at.tzinfo is not None
        params = requests[0].url.params
        assert "'folder-1' in parents" in params["q"]
        assert "trashed=false" in params["q"]
        assert params["orderBy"] == "createdTime desc"
        assert requests[1].url.params["pageToken"] == "t2"
        assert requests[0].headers["authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_missing_folder(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"error": "notFound"})

        with pytest.raises(SourceUnavailable) as exc_info:
            await make_drive(handler).list("missing")

        assert exc_info.value.status_code == 404


class TestStream:
    """Test authenticated downloads."""

    @pytest.mark.asyncio
    async def test_stream_content(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["alt"] == "media"
            return httpx.Response(200, content=b"video-bytes")

        chunks = [chunk async for chunk in make_drive(handler).stream("f1")]

        assert b"".join(chunks) == b"video-bytes"

    @pytest.mark.asyncio
    async def test_stream_refused(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, text="forbidden")

        with pytest.raises(SourceUnavailable) as exc_info:
            async for _ in make_drive(handler).stream("f1"):
                pass

        assert exc_info.value.status_code == 403
