"""모델 컷용 촬영 지시문 생성기.

지시문은 프롬프트를 보강할 뿐이므로 실패해도 슬롯을 실패시키지 않고 None 을 반환한다.
"""

from __future__ import annotations

import base64
import logging
from typing import Any

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage

from ..models.generation import GenerationInputs
from ..prompts import build_instruction_request


logger = logging.getLogger(__name__)


def _message_text(content: Any) -> str:
    """langchain 응답 content(str 또는 파트 리스트)를 문자열로 합친다."""
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        texts: list[str] = []
        for part in content:
            if isinstance(part, str):
                texts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                texts.append(str(part.get("text", "")))
        return "\n".join(t for t in texts if t).strip()
    return str(content or "").strip()


class ShotInstructionWriter:
    def __init__(self, chat_model: BaseChatModel) -> None:
        self._chat_model = chat_model

    async def write(self, inputs: GenerationInputs) -> str | None:
        content: list[dict[str, Any]] = [
            {
                "type": "text",
                "text": build_instruction_request(
                    model_style=inputs.model_style,
                    model_gender=inputs.model_gender,
                ),
            }
        ]
        if inputs.images:
            image = inputs.images[0]
            encoded = base64.b64encode(image.data).decode("ascii")
            content.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{image.mime_type};base64,{encoded}"},
                }
            )

        try:
            response = await self._chat_model.ainvoke([HumanMessage(content=content)])
        except Exception:  # noqa: BLE001
            logger.warning("shot instruction generation failed", exc_info=True)
            return None

        text = _message_text(getattr(response, "content", ""))
        return text or None
