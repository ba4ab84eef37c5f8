"""
Tests for layered configuration loading.
"""

import json

import pytest
import pydantic

from lingoloop.common.config import AIConfig, AppConfig, ConfigLoader, GenerationConfig, PipelineConfig


def test_defaults():
    config = ConfigLoader(environ={}).load()

    assert config.database.url.startswith("sqlite+aiosqlite")
    assert config.generation.max_retries == 8
    assert config.generation.rate_window_seconds == 120
    assert config.generation.max_deliverables_per_request == 8
    assert config.pipeline.type_weights["multiple_choice"] == 30
    assert config.api.prefix == "/api"


def test_environment_overrides():
    config = ConfigLoader(environ={
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "LOG_LEVEL": "debug",
        "GENERATION_MAX_RETRIES": "3",
        "OPENAI_API_KEY": "sk-test",
        "ENV": "Testing",
        "API_PORT": "",
    }).load()

    assert config.database.url == "sqlite+aiosqlite:///:memory:"
    assert config.logging.level == "DEBUG"
    assert config.generation.max_retries == 3
    assert config.ai.api_key == "sk-test"
    assert config.is_testing
    assert config.api.port == 8000


def test_file_then_environment(tmp_path):
    path = tmp_path / "lingoloop.yaml"
    path.write_text(
        "generation:\n"
        "  batch_size: 6\n"
        "  max_retries: 5\n"
        "ai:\n"
        "  model_name: gpt-5-mini\n"
    )

    config = ConfigLoader(str(path), environ={"GENERATION_MAX_RETRIES": "2"}).load()

    assert config.generation.batch_size == 6
    assert config.generation.max_retries == 2
    assert config.ai.is_reasoning_model()


def test_json_file_via_config_path(tmp_path):
    path = tmp_path / "lingoloop.json"
    path.write_text(json.dumps({"pipeline": {"base_delay_ms": 0, "delay_step_ms": 0, "max_delay_ms": 0}}))

    config = ConfigLoader(environ={"CONFIG_PATH": str(path)}).load()

    assert config.pipeline.max_delay_ms == 0


def test_missing_file_falls_back_to_defaults(tmp_path):
    config = ConfigLoader(str(tmp_path / "absent.yaml"), environ={}).load()
    assert config == AppConfig()


def test_invalid_values_are_rejected():
    with pytest.raises(pydantic.ValidationError):
        ConfigLoader(environ={"LOG_LEVEL": "chatty"}).load()
    with pytest.raises(pydantic.ValidationError):
        AIConfig(temperature=3)
    with pytest.raises(pydantic.ValidationError):
        GenerationConfig(batch_size=0)
    with pytest.raises(pydantic.ValidationError):
        PipelineConfig(base_delay_ms=2000, max_delay_ms=1000)


def test_reasoning_model_detection():
    ai = AIConfig(model_name="gpt-4o")

    assert not ai.is_reasoning_model()
    assert ai.is_reasoning_model("gpt-5")
    assert ai.is_reasoning_model("gpt-5-nano")


def test_deliverable_cap_never_below_one():
    assert GenerationConfig(max_questions_per_request=5).max_deliverables_per_request == 1
