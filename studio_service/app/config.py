from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from common.llm.factory import ChatModelConfig, LlmProvider


logger = logging.getLogger(__name__)


DEFAULT_CONFIG_FILE_NAME = "config.yaml"

STUDIO_GEMINI_API_KEY = "STUDIO_GEMINI_API_KEY"
STUDIO_GEMINI_BASE_URL = "STUDIO_GEMINI_BASE_URL"
STUDIO_PRIMARY_MODEL = "STUDIO_PRIMARY_MODEL"
STUDIO_FALLBACK_MODEL = "STUDIO_FALLBACK_MODEL"

STUDIO_INSTRUCTION_LLM_PROVIDER = "STUDIO_INSTRUCTION_LLM_PROVIDER"
STUDIO_INSTRUCTION_LLM_MODEL_NAME = "STUDIO_INSTRUCTION_LLM_MODEL_NAME"
STUDIO_INSTRUCTION_LLM_API_KEY = "STUDIO_INSTRUCTION_LLM_API_KEY"
STUDIO_INSTRUCTION_LLM_TEMPERATURE = "STUDIO_INSTRUCTION_LLM_TEMPERATURE"

ARTIFACT_PUBLIC_BASE_URL = "ARTIFACT_PUBLIC_BASE_URL"
STUDIO_SIGNUP_CREDITS = "STUDIO_SIGNUP_CREDITS"
STUDIO_DAILY_REWARD_CREDITS = "STUDIO_DAILY_REWARD_CREDITS"
LEDGER_MAX_CAS_ATTEMPTS = "LEDGER_MAX_CAS_ATTEMPTS"

DEFAULT_PRIMARY_MODEL = "gemini-3-pro-image-preview"
DEFAULT_FALLBACK_MODEL = "gemini-2.5-flash-image"
DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

SIGNUP_DEFAULT = 10
DAILY_REWARD_DEFAULT = 5
DEFAULT_MAX_CAS_ATTEMPTS = 5


@dataclass(slots=True)
class OrchestratorConfig:
    """슬롯 오케스트레이션 페이싱 설정.

    비즈니스 로직이 아니라 운영 튜닝 값이므로 config.yaml 로 덮어쓸 수 있다.
    """

    primary_retry_budget: int = 0
    primary_retry_delay_seconds: float = 2.0
    call_timeout_seconds: float = 90.0
    batch_size: int = 2
    batch_delay_seconds: float = 1.5
    request_timeout_seconds: float = 280.0
    max_requested_images: int = 4


@dataclass(slots=True)
class SynthesisConfig:
    api_key: str
    base_url: str
    primary_model: str
    fallback_model: str


@dataclass(slots=True)
class CreditConfig:
    signup_credits: int = SIGNUP_DEFAULT
    daily_reward_credits: int = DAILY_REWARD_DEFAULT
    max_cas_attempts: int = DEFAULT_MAX_CAS_ATTEMPTS


@dataclass(slots=True)
class AppConfig:
    """studio-service 전체 설정 루트."""

    synthesis: SynthesisConfig
    orchestrator: OrchestratorConfig
    credit: CreditConfig
    artifact_base_url: str
    instruction_llm: ChatModelConfig | None = None


def _find_config_path() -> Path | None:
    """현재 작업 디렉토리 기준으로 상위로 올라가며 config.yaml 을 찾는다.

    파일이 없으면 None 을 반환하고 호출자는 기본값으로 동작한다.
    """

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / DEFAULT_CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def _read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


def load_orchestrator_config(path: Path | None = None) -> OrchestratorConfig:
    """config.yaml 의 orchestrator 섹션을 읽는다. 섹션이 없으면 기본값을 쓴다."""

    path = path or _find_config_path()
    if path is None:
        return OrchestratorConfig()

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    section = data.get("orchestrator") or {}
    defaults = OrchestratorConfig()
    values: dict[str, float | int] = {}
    for key, caster in (
        ("primary_retry_budget", int),
        ("primary_retry_delay_seconds", float),
        ("call_timeout_seconds", float),
        ("batch_size", int),
        ("batch_delay_seconds", float),
        ("request_timeout_seconds", float),
        ("max_requested_images", int),
    ):
        raw = section.get(key, getattr(defaults, key))
        try:
            values[key] = caster(raw)
        except (TypeError, ValueError) as exc:  # noqa: TRY003
            raise RuntimeError(f"invalid orchestrator.{key} in {path}: {raw!r}") from exc

    cfg = OrchestratorConfig(**values)  # type: ignore[arg-type]
    if cfg.batch_size <= 0:
        raise RuntimeError(f"orchestrator.batch_size must be positive in {path}")
    if cfg.primary_retry_budget < 0:
        raise RuntimeError(
            f"orchestrator.primary_retry_budget must not be negative in {path}"
        )
    logger.info("loaded orchestrator config from %s", path)
    return cfg


def load_synthesis_config() -> SynthesisConfig:
    api_key = os.getenv(STUDIO_GEMINI_API_KEY)
    if not api_key:
        raise RuntimeError(
            f"{STUDIO_GEMINI_API_KEY} environment variable is required for studio-service",
        )

    return SynthesisConfig(
        api_key=api_key,
        base_url=os.getenv(STUDIO_GEMINI_BASE_URL, DEFAULT_GEMINI_BASE_URL).rstrip("/"),
        primary_model=os.getenv(STUDIO_PRIMARY_MODEL) or DEFAULT_PRIMARY_MODEL,
        fallback_model=os.getenv(STUDIO_FALLBACK_MODEL) or DEFAULT_FALLBACK_MODEL,
    )


def load_credit_config() -> CreditConfig:
    return CreditConfig(
        signup_credits=_read_int_env(STUDIO_SIGNUP_CREDITS, SIGNUP_DEFAULT),
        daily_reward_credits=_read_int_env(
            STUDIO_DAILY_REWARD_CREDITS, DAILY_REWARD_DEFAULT
        ),
        max_cas_attempts=_read_int_env(LEDGER_MAX_CAS_ATTEMPTS, DEFAULT_MAX_CAS_ATTEMPTS),
    )


def load_instruction_llm_config() -> ChatModelConfig | None:
    """모델 컷 촬영 지시문 LLM 설정. 모델 이름이 없으면 기능을 끈다."""

    model = os.getenv(STUDIO_INSTRUCTION_LLM_MODEL_NAME)
    if not model:
        return None

    provider = LlmProvider.from_str(
        os.getenv(STUDIO_INSTRUCTION_LLM_PROVIDER, "google")
    )
    api_key = os.getenv(STUDIO_INSTRUCTION_LLM_API_KEY) or None

    temperature_raw = os.getenv(STUDIO_INSTRUCTION_LLM_TEMPERATURE)
    temperature = float(temperature_raw) if temperature_raw is not None else 0.7

    return ChatModelConfig(
        provider=provider,
        model=model,
        temperature=temperature,
        api_key=api_key,
    )


def load_config() -> AppConfig:
    """studio-service 설정을 로드하여 AppConfig 로 반환한다."""

    return AppConfig(
        synthesis=load_synthesis_config(),
        orchestrator=load_orchestrator_config(),
        credit=load_credit_config(),
        artifact_base_url=os.getenv(ARTIFACT_PUBLIC_BASE_URL, "").rstrip("/"),
        instruction_llm=load_instruction_llm_config(),
    )
