from unittest.mock import AsyncMock, patch

import pytest
from conftest import fake_session

from newsdesk.clients.image_host import ImageHostClient

SESSION = "newsdesk.clients.image_host.aiohttp.ClientSession"
SOURCE = "https://scontent.xx.fbcdn.net/v/t1/photo.png?oh=abc"


@pytest.fixture
def client():
    return ImageHostClient(
        "https://storage.example.com/storage/v1/", "post-images", token="secret"
    )


def test_from_settings_requires_storage_url(settings):
    assert ImageHostClient.from_settings(settings) is None

    configured = settings.model_copy(
        update={"image_storage_url": "https://storage.example.com/storage/v1"}
    )
    client = ImageHostClient.from_settings(configured)
    assert client.bucket == "post-images"
    assert client.public_base_url == "https://storage.example.com/storage/v1/public/post-images"


def test_object_name_is_stable_and_safe():
    name = ImageHostClient.object_name(SOURCE, "feed 1/guid?x", "image/png")
    assert name == ImageHostClient.object_name(SOURCE, "feed 1/guid?x", "image/png")
    assert name.startswith("feed-1-guid-x-")
    assert name.endswith(".png")


@pytest.mark.asyncio
async def test_upload_returns_public_url(client):
    factory = fake_session(200)
    session = factory.__aenter__.return_value
    response = session.get.return_value.__aenter__.return_value
    response.headers = {"Content-Type": "image/png"}
    response.read = AsyncMock(return_value=b"\x89PNG")
    session.put.return_value = session.get.return_value

    with patch(SESSION, return_value=factory):
        hosted = await client.upload_image(SOURCE, "feed-1")

    assert hosted.startswith("https://storage.example.com/storage/v1/public/post-images/feed-1-")
    url = session.put.call_args.args[0]
    assert url.startswith("https://storage.example.com/storage/v1/object/post-images/feed-1-")
    assert session.put.call_args.kwargs["headers"]["Authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_failed_download_returns_none(client):
    with patch(SESSION, return_value=fake_session(404)):
        assert await client.upload_image(SOURCE, "feed-1") is None


@pytest.mark.asyncio
async def test_non_image_returns_none(client):
    factory = fake_session(200)
    response = factory.__aenter__.return_value.get.return_value.__aenter__.return_value
    response.headers = {"Content-Type": "text/html"}

    with patch(SESSION, return_value=factory):
        assert await client.upload_image(SOURCE, "feed-1") is None
