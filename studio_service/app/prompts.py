"""샷 타입별 이미지 합성 프롬프트.

{{product}} 등의 플레이스홀더 대신 "첫 번째 참조 이미지" 처럼 순서로 지칭한다.
참조 이미지는 요청에 담긴 순서 그대로 백엔드에 전달된다.
"""

from __future__ import annotations

from .models.generation import GenerationInputs, ShotType


PRODUCT_PROMPT = (
    "Photograph the product in the reference image as a professional e-commerce "
    "studio product shot. Reproduce every detail of the product exactly; do not add "
    "or remove any element of the product."
)

LIFESTYLE_PROMPT = (
    "Take an authentic lifestyle photo featuring the product in the reference image, "
    "placed naturally in an everyday scene with instagram friendly composition. "
    "The color/size/design/detail must be exactly same with the product."
)

NEGATIVES = (
    "Negatives: exaggerated or distorted anatomy, fake portrait-mode blur, "
    "CGI/illustration look, unnatural merge of background and character, "
    "pasted-on look."
)

_MODEL_STYLE_LABELS: dict[str, str] = {
    "korean": "Korean idol",
    "western": "Western",
}

_INSTRUCTION_STYLE_LABELS: dict[str, str] = {
    "korean": "Korean model style",
    "western": "Western model style",
}


def _style_label(labels: dict[str, str], style: str | None) -> str | None:
    if not style or style == "auto":
        return None
    return labels.get(style, style)


def build_model_prompt(
    *,
    model_style: str | None = None,
    model_gender: str | None = None,
    instruction: str | None = None,
) -> str:
    """모델 착용 컷 프롬프트. 촬영 지시문이 있으면 뒤에 붙인다."""

    prompt = "Design a suitable idol look model for the product shown in the reference image."
    label = _style_label(_MODEL_STYLE_LABELS, model_style)
    if label:
        prompt = prompt[:-1] + f" In a style of {label}"
        if model_gender:
            prompt += f", gender is {model_gender}"
        prompt += "."
    elif model_gender:
        prompt = prompt[:-1] + f", gender is {model_gender}."

    prompt += (
        " Take an authentic photo of the model showing the product, use instagram "
        "friendly composition, with a natural lived-in feel."
    )
    prompt += "\n\nThe color/size/design/detail must be exactly same with the product."

    if instruction:
        prompt += f"\n\nPhoto shot instruction:\n{instruction}"

    prompt += f"\n\n{NEGATIVES}"
    return prompt


def build_instruction_request(
    *, model_style: str | None = None, model_gender: str | None = None
) -> str:
    """촬영 지시문 LLM 에 보낼 요청 문구."""

    prompt = (
        "You are a photographer who specializes in social-media lifestyle photos "
        "for instagram. Based on the user's product image"
    )
    label = _style_label(_INSTRUCTION_STYLE_LABELS, model_style)
    if label:
        prompt += f" and the requested {label}"
    if model_gender:
        prompt += f" ({model_gender} model)"
    prompt += (
        ", write a short photography instruction for a model showcasing the product "
        "in a Korean-aesthetic lifestyle style. Use this format:\n\n"
        "- composition:\n"
        "- model pose:\n"
        "- model expression:\n"
        "- camera position:\n"
        "- camera setting:\n"
        "- lighting and color:"
    )
    return prompt


def build_prompt(inputs: GenerationInputs, instruction: str | None = None) -> str:
    """요청 입력으로부터 슬롯 프롬프트를 만든다. 사용자 프롬프트가 우선한다."""

    if inputs.prompt:
        return inputs.prompt
    if inputs.shot_type is ShotType.MODEL:
        return build_model_prompt(
            model_style=inputs.model_style,
            model_gender=inputs.model_gender,
            instruction=instruction,
        )
    if inputs.shot_type is ShotType.LIFESTYLE:
        return f"{LIFESTYLE_PROMPT}\n\n{NEGATIVES}"
    return PRODUCT_PROMPT
