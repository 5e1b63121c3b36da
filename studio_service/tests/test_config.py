import pytest

from studio_service.app import config
from studio_service.app.config import OrchestratorConfig


def test_orchestrator_defaults_without_file(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)

    cfg = config.load_orchestrator_config()

    assert cfg == OrchestratorConfig()
    assert cfg.primary_retry_budget == 0
    assert cfg.batch_size == 2


def test_orchestrator_section_overrides_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "orchestrator:\n"
        "  primary_retry_budget: 2\n"
        "  batch_size: 4\n"
        "  request_timeout_seconds: 120\n",
        encoding="utf-8",
    )

    cfg = config.load_orchestrator_config(path)

    assert cfg.primary_retry_budget == 2
    assert cfg.batch_size == 4
    assert cfg.request_timeout_seconds == 120.0
    assert cfg.call_timeout_seconds == 90.0


@pytest.mark.parametrize(
    "body",
    [
        "orchestrator:\n  batch_size: 0\n",
        "orchestrator:\n  primary_retry_budget: -1\n",
        "orchestrator:\n  call_timeout_seconds: soon\n",
    ],
)
def test_invalid_orchestrator_values_fail_fast(tmp_path, body):
    path = tmp_path / "config.yaml"
    path.write_text(body, encoding="utf-8")

    with pytest.raises(RuntimeError):
        config.load_orchestrator_config(path)


def test_synthesis_config_requires_api_key(monkeypatch):
    monkeypatch.delenv(config.STUDIO_GEMINI_API_KEY, raising=False)

    with pytest.raises(RuntimeError):
        config.load_synthesis_config()


def test_synthesis_config_reads_env(monkeypatch):
    monkeypatch.setenv(config.STUDIO_GEMINI_API_KEY, "key")
    monkeypatch.setenv(config.STUDIO_GEMINI_BASE_URL, "https://proxy.test/v1beta/")
    monkeypatch.delenv(config.STUDIO_PRIMARY_MODEL, raising=False)
    monkeypatch.setenv(config.STUDIO_FALLBACK_MODEL, "custom-fallback")

    cfg = config.load_synthesis_config()

    assert cfg.base_url == "https://proxy.test/v1beta"
    assert cfg.primary_model == config.DEFAULT_PRIMARY_MODEL
    assert cfg.fallback_model == "custom-fallback"


def test_credit_config_rejects_non_integer(monkeypatch):
    monkeypatch.setenv(config.STUDIO_DAILY_REWARD_CREDITS, "five")

    with pytest.raises(RuntimeError):
        config.load_credit_config()


def test_instruction_llm_disabled_without_model(monkeypatch):
    monkeypatch.delenv(config.STUDIO_INSTRUCTION_LLM_MODEL_NAME, raising=False)

    assert config.load_instruction_llm_config() is None
