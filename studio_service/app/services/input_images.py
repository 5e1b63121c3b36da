"""요청 입력 이미지 디코딩.

입력은 data URL, 순수 base64 문자열, 또는 http(s) URL 이다. URL 은 httpx 로 받아온다.
어떤 형식이든 실패하면 백엔드 호출 전에 ValidationError 로 거절한다.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import ipaddress
import logging
import re
import socket
from io import BytesIO
from typing import Awaitable, Callable, Sequence

import httpx
from PIL import Image, UnidentifiedImageError

from ..exceptions import ValidationError
from ..models.generation import ReferenceImage


logger = logging.getLogger(__name__)


IMAGE_FETCH_TIMEOUT_SECONDS = 15.0
MAX_IMAGE_BYTES = 20 * 1024 * 1024
MAX_INPUT_IMAGES = 4
MAX_IMAGE_REDIRECTS = 3

_DATA_URL_REGEX = re.compile(r"^data:[\w/+.-]+;base64,(?P<data>.+)$", re.DOTALL)

HostResolver = Callable[[str], Awaitable[list[str]]]


def identify_image(data: bytes, index: int) -> str:
    """Pillow 로 헤더만 읽어 이미지 여부를 확인하고 MIME 타입을 반환한다."""
    try:
        with Image.open(BytesIO(data)) as img:
            image_format = img.format
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise ValidationError(f"images[{index}] is not a supported image") from exc

    mime_type = Image.MIME.get(image_format or "")
    if mime_type is None:
        raise ValidationError(f"images[{index}] has unsupported format {image_format}")
    return mime_type


def decode_base64_image(value: str, index: int) -> ReferenceImage:
    raw = value.strip()
    match = _DATA_URL_REGEX.match(raw)
    if match:
        raw = match.group("data")

    try:
        data = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(f"images[{index}] is not valid base64") from exc

    if not data:
        raise ValidationError(f"images[{index}] is empty")
    if len(data) > MAX_IMAGE_BYTES:
        raise ValidationError(f"images[{index}] exceeds {MAX_IMAGE_BYTES} bytes")

    return ReferenceImage(data=data, mime_type=identify_image(data, index))


async def resolve_host(host: str) -> list[str]:
    """호스트 이름을 IP 주소 목록으로 해석한다."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


async def ensure_public_url(url: httpx.URL, index: int, resolver: HostResolver) -> None:
    """공인 주소로만 해석되는 http(s) URL 인지 확인한다."""
    if url.scheme not in ("http", "https") or not url.host:
        raise ValidationError(f"images[{index}] must be an http(s) URL")

    host = url.host
    try:
        addresses = [host] if _is_ip_literal(host) else await resolver(host)
    except OSError as exc:
        raise ValidationError(f"images[{index}] host {host} could not be resolved") from exc

    # 해석된 주소 중 하나라도 내부망이면 거절한다.
    if not addresses or any(not _is_public(a) for a in addresses):
        raise ValidationError(f"images[{index}] host {host} is not a public address")


def _is_public(address: str) -> bool:
    # 링크 로컬 IPv6 는 "%eth0" 같은 zone id 가 붙어 나온다.
    return ipaddress.ip_address(address.split("%", 1)[0]).is_global


def _is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


async def fetch_image(
    client: httpx.AsyncClient,
    url: str,
    index: int,
    resolver: HostResolver = resolve_host,
) -> ReferenceImage:
    try:
        request = client.build_request("GET", url)
    except httpx.InvalidURL as exc:
        raise ValidationError(f"images[{index}] is not a valid URL") from exc
    # 리다이렉트는 직접 따라가며 매 홉의 호스트를 다시 검사한다.
    for _ in range(MAX_IMAGE_REDIRECTS + 1):
        await ensure_public_url(request.url, index, resolver)
        try:
            resp = await client.send(request, follow_redirects=False)
        except httpx.RequestError as exc:
            raise ValidationError(f"images[{index}] could not be fetched: {exc}") from exc
        if not resp.is_redirect or resp.next_request is None:
            break
        request = resp.next_request
    else:
        raise ValidationError(f"images[{index}] could not be fetched: too many redirects")

    if resp.status_code != 200:
        raise ValidationError(
            f"images[{index}] could not be fetched: status code {resp.status_code}"
        )
    data = resp.content
    if not data:
        raise ValidationError(f"images[{index}] is empty")
    if len(data) > MAX_IMAGE_BYTES:
        raise ValidationError(f"images[{index}] exceeds {MAX_IMAGE_BYTES} bytes")

    # Content-Type 헤더는 CDN 마다 제각각이라 실제 바이트로 판별한다.
    return ReferenceImage(data=data, mime_type=identify_image(data, index))


async def load_reference_images(
    values: Sequence[str],
    client: httpx.AsyncClient | None = None,
    resolver: HostResolver = resolve_host,
) -> list[ReferenceImage]:
    """입력 문자열 목록을 참조 이미지로 변환한다 (입력 순서 유지)."""

    if not values:
        raise ValidationError("at least one input image is required")
    if len(values) > MAX_INPUT_IMAGES:
        raise ValidationError(f"at most {MAX_INPUT_IMAGES} input images are allowed")

    owns_client = False
    images: list[ReferenceImage] = []
    try:
        for index, value in enumerate(values):
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"images[{index}] is empty")
            if value.startswith(("http://", "https://")):
                if client is None:
                    client = httpx.AsyncClient(timeout=IMAGE_FETCH_TIMEOUT_SECONDS)
                    owns_client = True
                images.append(await fetch_image(client, value, index, resolver))
            else:
                images.append(decode_base64_image(value, index))
    finally:
        if owns_client and client is not None:
            await client.aclose()

    logger.debug("decoded %d reference images", len(images))
    return images
