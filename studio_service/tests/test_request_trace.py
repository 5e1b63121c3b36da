from common.middleware.request_trace import redact_image_payload


def test_redacts_data_urls_and_long_base64():
    long_b64 = "A" * 300
    body = (
        '{"images": ["data:image/png;base64,iVBORw0KGgo=", "'
        + long_b64
        + '"], "prompt": "white background"}'
    )

    redacted = redact_image_payload(body)

    assert "iVBORw0KGgo" not in redacted
    assert long_b64 not in redacted
    assert "<base64 300 chars>" in redacted
    assert '"prompt": "white background"' in redacted


def test_short_strings_are_kept():
    assert redact_image_payload('{"shot_type": "product"}') == '{"shot_type": "product"}'
