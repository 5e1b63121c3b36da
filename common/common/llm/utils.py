from __future__ import annotations


def normalize_model_name(model_name: str) -> str:
    """모델 이름을 정규화하여 기록/통계 식별자로 사용할 수 있게 한다.

    - 'models/gemini-2.5-flash-image' 처럼 REST 경로 접두사가 붙은 경우 마지막 부분만 사용한다.
    - OpenRouter 등 경유 시 붙는 'google/' 같은 provider prefix 도 같은 규칙으로 제거한다.
    """
    if not model_name:
        return "unknown"

    value = model_name.strip()
    if "/" in value:
        value = value.split("/")[-1].strip()
    return value or "unknown"
