"""
Centralized Configuration for Lingoloop

Configuration is assembled from three layers, later layers winning:

1. Defaults declared on the models below
2. An optional YAML or JSON file (``CONFIG_PATH``)
3. Environment variables, including those read from a ``.env`` file
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


class DatabaseConfig(BaseModel):
    """Database configuration"""
    url: str = "sqlite+aiosqlite:///./lingoloop.db"
    echo: bool = False
    auto_init: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = "INFO"
    json_output: bool = False
    file_path: Optional[str] = None

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class AIConfig(BaseModel):
    """AI provider configuration"""
    provider: str = "openai"
    model_name: str = "gpt-4o"
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    timeout: float = 120.0
    temperature: float = 0.7
    max_tokens: int = 3000
    # Models that reason internally get more room and a fixed temperature
    reasoning_models: List[str] = Field(default_factory=lambda: ["gpt-5"])
    reasoning_temperature: float = 1.0
    reasoning_max_tokens: int = 4000

    @field_validator('temperature', 'reasoning_temperature')
    @classmethod
    def validate_temperature(cls, v):
        if not 0 <= v <= 2:
            raise ValueError(f"Temperature must be between 0 and 2, got {v}")
        return v

    def is_reasoning_model(self, model_name: Optional[str] = None) -> bool:
        name = model_name or self.model_name
        return any(name.startswith(prefix) for prefix in self.reasoning_models)


class GenerationConfig(BaseModel):
    """Bulk generation tuning"""
    max_retries: int = 8
    base_delay_ms: int = 2000
    jitter_ms: int = 2000
    rate_window_seconds: int = 120
    batch_size: int = 8
    questions_per_deliverable: int = 4
    min_items_per_deliverable: int = 3
    max_questions_per_request: int = 50
    avoid_list_limit: int = 10
    max_question_reductions: int = 3

    @field_validator(
        'max_retries', 'base_delay_ms', 'jitter_ms', 'rate_window_seconds',
        'avoid_list_limit', 'max_question_reductions'
    )
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError(f"Value must not be negative, got {v}")
        return v

    @field_validator('batch_size', 'questions_per_deliverable', 'min_items_per_deliverable',
                     'max_questions_per_request')
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError(f"Value must be positive, got {v}")
        return v

    @property
    def max_deliverables_per_request(self) -> int:
        return max(1, self.max_questions_per_request // 6)


class PipelineConfig(BaseModel):
    """Job pipeline pacing and default weights"""
    base_delay_ms: int = 1000
    delay_step_ms: int = 200
    max_delay_ms: int = 5000
    retention_seconds: int = 3600
    type_weights: Dict[str, int] = Field(default_factory=lambda: {
        "multiple_choice": 30,
        "fill_blank": 25,
        "translation": 20,
        "conjugation": 15,
        "sentence_structure": 10,
    })
    difficulty_distribution: Dict[str, int] = Field(default_factory=lambda: {
        "easy": 40,
        "medium": 40,
        "hard": 20,
    })

    @model_validator(mode='after')
    def validate_delays(self):
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must not be below base_delay_ms")
        return self


class ProficiencyConfig(BaseModel):
    """Proficiency analysis tuning"""
    record_limit: int = 100
    recent_window: int = 20
    strength_threshold: float = 85.0
    weakness_threshold: float = 65.0

    @model_validator(mode='after')
    def validate_thresholds(self):
        if self.weakness_threshold > self.strength_threshold:
            raise ValueError("weakness_threshold must not exceed strength_threshold")
        return self


class APIConfig(BaseModel):
    """API configuration"""
    host: str = "0.0.0.0"
    port: int = 8000
    prefix: str = "/api"
    allow_origins: List[str] = Field(default_factory=lambda: ["*"])


class EnvironmentConfig(BaseModel):
    """Environment configuration"""
    env: str = "development"
    debug: bool = False

    @field_validator('env')
    @classmethod
    def validate_env(cls, v):
        valid_envs = ['development', 'testing', 'staging', 'production']
        if v.lower() not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of {valid_envs}")
        return v.lower()


class AppConfig(BaseModel):
    """Main application configuration"""
    app_name: str = "Lingoloop"
    version: str = "0.1.0"
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    proficiency: ProficiencyConfig = Field(default_factory=ProficiencyConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)

    @property
    def is_testing(self) -> bool:
        return self.environment.env == "testing"

    @property
    def is_production(self) -> bool:
        return self.environment.env == "production"


# Environment variable -> (section, field)
ENV_OVERRIDES: Dict[str, Tuple[str, str]] = {
    "DATABASE_URL": ("database", "url"),
    "DB_ECHO": ("database", "echo"),
    "AUTO_DB_INIT": ("database", "auto_init"),
    "LOG_LEVEL": ("logging", "level"),
    "LOG_JSON": ("logging", "json_output"),
    "LOG_FILE": ("logging", "file_path"),
    "AI_PROVIDER": ("ai", "provider"),
    "AI_MODEL_NAME": ("ai", "model_name"),
    "AI_API_KEY": ("ai", "api_key"),
    "OPENAI_API_KEY": ("ai", "api_key"),
    "AI_API_BASE": ("ai", "api_base"),
    "AI_TIMEOUT": ("ai", "timeout"),
    "GENERATION_MAX_RETRIES": ("generation", "max_retries"),
    "GENERATION_BASE_DELAY_MS": ("generation", "base_delay_ms"),
    "GENERATION_RATE_WINDOW_SECONDS": ("generation", "rate_window_seconds"),
    "API_HOST": ("api", "host"),
    "API_PORT": ("api", "port"),
    "ENV": ("environment", "env"),
    "DEBUG": ("environment", "debug"),
}


class ConfigLoader:
    """
    Configuration loader for the application.

    Loads configuration from:
    1. Default values
    2. Config file
    3. Environment variables (highest priority)
    """

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        """
        Initialize the config loader.

        Args:
            config_path: Path to config file (YAML or JSON)
            environ: Environment mapping, defaults to ``os.environ``
        """
        self._environ = environ
        self.config_path = config_path
        self._config: Optional[AppConfig] = None

    def load(self) -> AppConfig:
        """Load and validate configuration from every layer."""
        if self._config is not None:
            return self._config

        if self._environ is None:
            load_dotenv()
            environ: Dict[str, str] = dict(os.environ)
        else:
            environ = dict(self._environ)

        path = self.config_path or environ.get("CONFIG_PATH")
        data = self._load_from_file(path) if path else {}
        self._apply_environment(data, environ)

        self._config = AppConfig(**data)
        return self._config

    def _apply_environment(self, data: Dict[str, Any], environ: Dict[str, str]) -> None:
        for variable, (section, field) in ENV_OVERRIDES.items():
            value = environ.get(variable)
            if value is None or value == "":
                continue
            data.setdefault(section, {})[field] = value

    def _load_from_file(self, path: str) -> Dict[str, Any]:
        """
        Load configuration from a file.

        Args:
            path: Path to config file

        Returns:
            Loaded configuration dictionary
        """
        config_file = Path(path)
        if not config_file.exists():
            logger.warning(f"Config file not found: {config_file}")
            return {}

        suffix = config_file.suffix.lower()
        with open(config_file, 'r') as f:
            if suffix in ['.yaml', '.yml']:
                return yaml.safe_load(f) or {}
            if suffix == '.json':
                return json.load(f)

        logger.warning(f"Unsupported config file format: {suffix}")
        return {}


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = ConfigLoader().load()
    return _config


def reload_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Reload the configuration.

    Args:
        config_path: Path to config file

    Returns:
        Reloaded configuration
    """
    global _config
    _config = ConfigLoader(config_path).load()
    return _config
