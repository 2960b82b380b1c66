"""Configuration management for Claude Gateway.

Two layers: ``Settings`` holds process-level options read from the environment
(and ``.env``); ``GatewayConfig`` describes providers, their models and the
client-facing model mapping, loaded from a JSON file.
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

PROVIDER_TYPES = ("openai", "openai-responses", "gemini-mode", "modelhub")
MODELHUB_MODES = ("responses", "gemini")


class ConfigError(ValueError):
    """Raised when the provider configuration is missing or invalid."""


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Server settings
    host: str = Field(default="127.0.0.1", description="Server host", alias="CLAUDE_GATEWAY_HOST")
    port: int = Field(default=8082, description="Server port", alias="CLAUDE_GATEWAY_PORT")
    log_level: str = Field(default="INFO", description="Log level", alias="CLAUDE_GATEWAY_LOG_LEVEL")

    # Provider configuration file
    config_file: Optional[str] = Field(
        default=None, description="Path to the providers JSON file", alias="CLAUDE_GATEWAY_CONFIG_FILE"
    )

    # Fallback provider used when no configuration file exists
    openai_api_key: Optional[str] = Field(default=None, description="Target provider API key")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Target provider API base URL"
    )
    big_model: str = Field(default="gpt-4o", description="Model for Claude Opus/Sonnet", alias="CLAUDE_GATEWAY_BIG_MODEL")
    small_model: str = Field(default="gpt-4o-mini", description="Model for Claude Haiku", alias="CLAUDE_GATEWAY_SMALL_MODEL")

    # Client model aliases applied before routing
    model_aliases: Dict[str, str] = Field(
        default_factory=dict, description="Client model name aliases", alias="CLAUDE_GATEWAY_MODEL_ALIASES"
    )

    # Request settings
    request_timeout: int = Field(default=30, description="Non-streaming timeout in seconds", alias="CLAUDE_GATEWAY_REQUEST_TIMEOUT")
    stream_timeout: int = Field(default=300, description="Streaming timeout in seconds", alias="CLAUDE_GATEWAY_STREAM_TIMEOUT")

    model_config = {"env_file": ".env", "case_sensitive": False, "extra": "ignore", "populate_by_name": True}


class ModelOptions(BaseModel):
    """Feature flags for one upstream model."""
    model_config = ConfigDict(populate_by_name=True)

    supports_streaming: bool = Field(default=True, alias="supportsStreaming")
    supports_tools: bool = Field(default=True, alias="supportsTools")
    supports_vision: bool = Field(default=False, alias="supportsVision")
    supports_temperature: bool = Field(default=True, alias="supportsTemperature")


class ModelConfig(BaseModel):
    """Upstream model descriptor."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    alias: Optional[str] = None
    max_tokens: Optional[int] = Field(default=None, alias="maxTokens")
    temperature: Optional[float] = None
    options: ModelOptions = Field(default_factory=ModelOptions)


class ProviderOptions(BaseModel):
    """Provider-specific options (authentication scheme, mode, extra headers)."""
    model_config = ConfigDict(populate_by_name=True)

    api_key_param: Optional[str] = Field(default=None, alias="apiKeyParam")
    api_key_env: Optional[str] = Field(default=None, alias="apiKeyEnv")
    mode: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)


class ProviderConfig(BaseModel):
    """One upstream provider."""
    model_config = ConfigDict(populate_by_name=True)

    type: str
    base_url: str = Field(alias="baseUrl")
    api_key: str = Field(default="", alias="apiKey")
    options: ProviderOptions = Field(default_factory=ProviderOptions)
    models: Dict[str, ModelConfig] = Field(default_factory=dict)

    def resolve_api_key(self, default_env: str) -> str:
        """Configured key, else the key from the environment (may be empty)."""
        if self.api_key:
            return self.api_key
        return os.environ.get(self.options.api_key_env or default_env, "")


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8082


class GatewayConfig(BaseModel):
    """Providers, models and client model mapping."""
    model_config = ConfigDict(populate_by_name=True)

    server: ServerConfig = Field(default_factory=ServerConfig)
    providers: Dict[str, ProviderConfig]
    model_mapping: Dict[str, str] = Field(default_factory=dict, alias="modelMapping")

    def validate_providers(self) -> "GatewayConfig":
        """Check provider types, URLs and models; raise ``ConfigError``."""
        if not self.providers:
            raise ConfigError("At least one provider must be configured")

        for name, provider in self.providers.items():
            if provider.type not in PROVIDER_TYPES:
                raise ConfigError(f"Invalid provider type '{provider.type}' for provider '{name}'")
            if not provider.base_url.startswith("http"):
                raise ConfigError(f"Invalid base URL for provider '{name}': {provider.base_url}")
            if not provider.models:
                raise ConfigError(f"Provider '{name}' must have at least one model configured")
            for model_name, model in provider.models.items():
                if not model.name:
                    raise ConfigError(f"Model '{model_name}' in provider '{name}' must have a name")
            if provider.type == "modelhub" and provider.options.mode is not None:
                if provider.options.mode not in MODELHUB_MODES:
                    raise ConfigError(
                        f"Invalid mode '{provider.options.mode}' for modelhub provider '{name}'. "
                        f"Valid modes: {list(MODELHUB_MODES)}"
                    )
        return self

    def get_provider_model(self, path: str) -> Optional[Tuple[ProviderConfig, ModelConfig]]:
        """Look up a ``provider/model`` path."""
        provider_name, sep, model_name = path.partition("/")
        if not sep:
            return None
        provider = self.providers.get(provider_name)
        if provider is None:
            return None
        model = provider.models.get(model_name)
        if model is None:
            return None
        return provider, model

    def list_model_paths(self) -> List[str]:
        return [
            f"{provider_name}/{model_name}"
            for provider_name, provider in self.providers.items()
            for model_name in provider.models
        ]


def load_gateway_config(path: Path) -> GatewayConfig:
    """Load and validate a configuration file."""
    logger.info(f"Loading configuration from: {path}")
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e

    try:
        config = GatewayConfig.model_validate(json.loads(content))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e

    config.validate_providers()
    logger.debug(f"Loaded {len(config.providers)} providers")
    return config


def default_config_paths(settings: Settings) -> List[Path]:
    """Candidate config locations, most specific first."""
    paths = []
    if settings.config_file:
        paths.append(Path(settings.config_file).expanduser())
    paths.append(Path.home() / ".config" / "claude-gateway" / "config.json")
    paths.append(Path("claude-gateway.json"))
    return paths


def build_fallback_config(settings: Settings) -> GatewayConfig:
    """Single OpenAI provider built from the environment.

    Haiku maps to the small model; Sonnet and Opus map to the big model.
    """
    models = {settings.big_model: ModelConfig(name=settings.big_model)}
    models.setdefault(settings.small_model, ModelConfig(name=settings.small_model))
    provider = ProviderConfig(
        type="openai",
        base_url=settings.openai_base_url,
        api_key=settings.openai_api_key or "",
        models=models,
    )
    return GatewayConfig(
        server=ServerConfig(host=settings.host, port=settings.port),
        providers={"openai": provider},
        model_mapping={
            "haiku": f"openai/{settings.small_model}",
            "sonnet": f"openai/{settings.big_model}",
            "opus": f"openai/{settings.big_model}",
        },
    ).validate_providers()


def get_gateway_config(settings: Optional[Settings] = None) -> GatewayConfig:
    """Load the first configuration file found, else the environment fallback.

    An explicitly configured file that does not exist is an error.
    """
    settings = settings or get_settings()
    if settings.config_file and not Path(settings.config_file).expanduser().exists():
        raise ConfigError(f"Configuration file not found: {settings.config_file}")

    for path in default_config_paths(settings):
        if path.exists():
            return load_gateway_config(path)

    logger.info("No configuration file found, using OPENAI_* environment settings")
    return build_fallback_config(settings)


# Global settings instance
_settings: Optional[Settings] = None

def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
