import base64
import json

import httpx
import pytest

from studio_service.app.config import SynthesisConfig
from studio_service.app.exceptions import (
    UpstreamOtherError,
    UpstreamRateLimited,
    UpstreamSafetyBlocked,
    UpstreamTimeout,
)
from studio_service.app.models.generation import ModelRole, ReferenceImage
from studio_service.app.synthesis.gemini_backend import GeminiSynthesisBackend

from .fakes import PNG_BYTES


CONFIG = SynthesisConfig(
    api_key="test-key",
    base_url="https://gemini.test/v1beta",
    primary_model="primary-image",
    fallback_model="fallback-image",
)

IMAGES = [ReferenceImage(data=PNG_BYTES, mime_type="image/png")]


def _image_payload() -> dict:
    return {
        "candidates": [
            {
                "finishReason": "STOP",
                "content": {
                    "parts": [
                        {"text": "here you go"},
                        {
                            "inlineData": {
                                "mimeType": "image/png",
                                "data": base64.b64encode(PNG_BYTES).decode("ascii"),
                            }
                        },
                    ]
                },
            }
        ]
    }


def _backend(handler) -> GeminiSynthesisBackend:
    client = httpx.AsyncClient(
        base_url=CONFIG.base_url, transport=httpx.MockTransport(handler)
    )
    return GeminiSynthesisBackend(CONFIG, client)


async def test_generate_posts_prompt_and_images_to_selected_model():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_image_payload())

    backend = _backend(handler)
    image = await backend.generate(ModelRole.FALLBACK, "studio shot", IMAGES)
    await backend.aclose()

    assert image.data == PNG_BYTES
    assert image.model_name == "fallback-image"
    [request] = seen
    assert request.url.path == "/v1beta/models/fallback-image:generateContent"
    assert request.headers["x-goog-api-key"] == "test-key"
    body = json.loads(request.content)
    parts = body["contents"][0]["parts"]
    assert parts[0]["inlineData"]["mimeType"] == "image/png"
    assert parts[-1] == {"text": "studio shot"}


@pytest.mark.parametrize(
    "response, expected",
    [
        (httpx.Response(429, text="Too Many Requests"), UpstreamRateLimited),
        (
            httpx.Response(503, text='{"error": {"status": "RESOURCE_EXHAUSTED"}}'),
            UpstreamRateLimited,
        ),
        (
            httpx.Response(400, json={"error": {"code": 429, "message": "slow down"}}),
            UpstreamRateLimited,
        ),
        (httpx.Response(502, text="Quota exceeded for this project"), UpstreamRateLimited),
        (httpx.Response(500, text="internal error"), UpstreamOtherError),
        (
            httpx.Response(
                404,
                json={
                    "error": {
                        "code": 404,
                        "message": "models/fallback-image is not found or is not "
                        "supported for generateContent.",
                        "status": "NOT_FOUND",
                    }
                },
            ),
            UpstreamOtherError,
        ),
        (
            httpx.Response(
                500,
                json={"error": {"message": "Failed to generate image", "status": "INTERNAL"}},
            ),
            UpstreamOtherError,
        ),
        (httpx.Response(500, text="accurate resource generation failed"), UpstreamOtherError),
        (httpx.Response(200, text="not json"), UpstreamOtherError),
        (httpx.Response(200, json={"candidates": []}), UpstreamOtherError),
        (
            httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}}),
            UpstreamSafetyBlocked,
        ),
        (
            httpx.Response(200, json={"candidates": [{"finishReason": "IMAGE_SAFETY"}]}),
            UpstreamSafetyBlocked,
        ),
        (
            httpx.Response(
                200,
                json={
                    "candidates": [
                        {"finishReason": "STOP", "content": {"parts": [{"text": "no"}]}}
                    ]
                },
            ),
            UpstreamOtherError,
        ),
    ],
)
async def test_generate_maps_failures(response, expected):
    backend = _backend(lambda request: response)

    with pytest.raises(expected):
        await backend.generate(ModelRole.PRIMARY, "prompt", IMAGES)


async def test_generate_maps_transport_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    backend = _backend(handler)

    with pytest.raises(UpstreamTimeout):
        await backend.generate(ModelRole.PRIMARY, "prompt", IMAGES)


async def test_generate_maps_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    backend = _backend(handler)

    with pytest.raises(UpstreamOtherError):
        await backend.generate(ModelRole.PRIMARY, "prompt", IMAGES)


def test_model_name_strips_path_prefix():
    config = SynthesisConfig(
        api_key="k",
        base_url=CONFIG.base_url,
        primary_model="models/primary-image",
        fallback_model="google/fallback-image",
    )
    backend = GeminiSynthesisBackend(config, httpx.AsyncClient())

    assert backend.model_name(ModelRole.PRIMARY) == "primary-image"
    assert backend.model_name(ModelRole.FALLBACK) == "fallback-image"
