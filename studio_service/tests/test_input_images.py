import base64

import httpx
import pytest

from studio_service.app.exceptions import ValidationError
from studio_service.app.services.input_images import (
    decode_base64_image,
    identify_image,
    load_reference_images,
)

from .fakes import PNG_BYTES, image_bytes


JPEG_BYTES = image_bytes("JPEG")


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


async def _public_resolver(host: str) -> list[str]:
    return ["93.184.215.14"]


def test_decode_data_url_uses_actual_format():
    # 선언된 MIME 이 아니라 실제 바이트 기준으로 판별한다.
    image = decode_base64_image(f"data:image/png;base64,{_b64(JPEG_BYTES)}", 0)

    assert image.data == JPEG_BYTES
    assert image.mime_type == "image/jpeg"


def test_decode_plain_base64():
    image = decode_base64_image(_b64(PNG_BYTES), 0)

    assert image.mime_type == "image/png"


def test_decode_rejects_garbage():
    with pytest.raises(ValidationError, match=r"images\[2\]"):
        decode_base64_image("%%%", 2)


def test_decode_rejects_non_image_bytes():
    with pytest.raises(ValidationError, match="not a supported image"):
        decode_base64_image(_b64(b"just some text, not pixels"), 0)


def test_identify_gif():
    assert identify_image(image_bytes("GIF"), 0) == "image/gif"


async def test_load_fetches_urls_and_keeps_order():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/missing.png":
            return httpx.Response(404)
        # 잘못된 Content-Type 이어도 실제 바이트로 판별한다.
        return httpx.Response(
            200, content=JPEG_BYTES, headers={"content-type": "application/octet-stream"}
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        images = await load_reference_images(
            ["https://img.example.com/a.jpg", _b64(PNG_BYTES)],
            client,
            resolver=_public_resolver,
        )

        assert [i.mime_type for i in images] == ["image/jpeg", "image/png"]

        with pytest.raises(ValidationError, match="status code 404"):
            await load_reference_images(
                ["https://img.example.com/missing.png"], client, resolver=_public_resolver
            )


async def test_load_rejects_too_many_images():
    with pytest.raises(ValidationError):
        await load_reference_images([_b64(PNG_BYTES)] * 5)


async def test_load_rejects_empty_list():
    with pytest.raises(ValidationError):
        await load_reference_images([])


@pytest.mark.parametrize(
    "url",
    [
        "http://127.0.0.1/a.png",
        "http://169.254.169.254/latest/meta-data",
        "http://[::1]/a.png",
        "http://10.0.0.5/a.png",
    ],
)
async def test_load_rejects_internal_ip_literals(url):
    requested: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request)
        return httpx.Response(200, content=PNG_BYTES)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(ValidationError, match="not a public address"):
            await load_reference_images([url], client, resolver=_public_resolver)

    assert requested == []


async def test_load_rejects_host_resolving_to_private_address():
    async def private_resolver(host: str) -> list[str]:
        return ["93.184.215.14", "192.168.0.10"]

    async with httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(200))
    ) as client:
        with pytest.raises(ValidationError, match="not a public address"):
            await load_reference_images(
                ["https://intranet.example.com/a.png"], client, resolver=private_resolver
            )


async def test_load_rejects_unresolvable_host():
    async def failing_resolver(host: str) -> list[str]:
        raise OSError("name or service not known")

    async with httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(200))
    ) as client:
        with pytest.raises(ValidationError, match="could not be resolved"):
            await load_reference_images(
                ["https://nowhere.example.com/a.png"], client, resolver=failing_resolver
            )


async def test_load_checks_every_redirect_hop():
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        if request.url.host == "img.example.com":
            return httpx.Response(
                302, headers={"location": "http://127.0.0.1:8080/admin.png"}
            )
        return httpx.Response(200, content=PNG_BYTES)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(ValidationError, match="not a public address"):
            await load_reference_images(
                ["https://img.example.com/a.png"], client, resolver=_public_resolver
            )

    assert requested == ["https://img.example.com/a.png"]


async def test_load_follows_public_redirects():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old.png":
            return httpx.Response(301, headers={"location": "/new.png"})
        return httpx.Response(200, content=PNG_BYTES)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        [image] = await load_reference_images(
            ["https://img.example.com/old.png"], client, resolver=_public_resolver
        )

    assert image.mime_type == "image/png"
