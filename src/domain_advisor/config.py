import os
from enum import Enum
from functools import lru_cache
from typing import Optional, Sequence

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .errors import ConfigurationError

# Load environment variables from .env file
load_dotenv()

DEFAULT_OLLAMA_MODEL = "llama2"
DEFAULT_MANUS_API_URL = "https://api.manus.ai/v1"
DEFAULT_AGENT_PROFILE = "manus-1.6"
DEFAULT_REGISTRAR_BASE_URL = "https://clients.hordanso.net/cart.php"

# 5000 ms between status fetches of one research task
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_PROVIDER_TIMEOUT = 30.0
DEFAULT_MAX_FINISHED_VIEWS = 100


class ExtractionPolicy(str, Enum):
    LAST_ASSISTANT = "last_assistant"  # last assistant message with text
    SECOND_OUTPUT = "second_output"  # output[1].content[0].text


class ProviderConfig(BaseModel):
    """Options handed to a provider adapter at construction time."""

    base_url: Optional[str] = None
    api_key: Optional[str] = None
    model: Optional[str] = None
    agent_profile: Optional[str] = None

    def require(self, provider: str, names: Sequence[str]) -> None:
        """Raise ConfigurationError naming every missing option."""
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"{provider} is not configured: missing {', '.join(missing)}."
            )


class Settings(BaseModel):
    ollama: ProviderConfig = Field(default_factory=ProviderConfig)
    manus: ProviderConfig = Field(default_factory=ProviderConfig)

    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    extraction_policy: ExtractionPolicy = ExtractionPolicy.LAST_ASSISTANT
    provider_timeout: float = Field(default=DEFAULT_PROVIDER_TIMEOUT, gt=0)
    max_finished_views: int = Field(default=DEFAULT_MAX_FINISHED_VIEWS, ge=0)

    registrar_base_url: str = DEFAULT_REGISTRAR_BASE_URL
    redis_url: str = "redis://localhost:6379"
    cache_ttl: int = 3600
    rate_limit_per_minute: int = 100
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            ollama=ProviderConfig(
                base_url=os.getenv("OLLAMA_BASE_URL") or None,
                api_key=os.getenv("OLLAMA_API_KEY") or None,
                model=os.getenv("OLLAMA_MODEL", DEFAULT_OLLAMA_MODEL),
            ),
            manus=ProviderConfig(
                base_url=os.getenv("MANUS_API_URL", DEFAULT_MANUS_API_URL),
                api_key=os.getenv("MANUS_API_KEY") or None,
                agent_profile=os.getenv("MANUS_AGENT_PROFILE", DEFAULT_AGENT_PROFILE),
            ),
            poll_interval=float(os.getenv("ANALYSIS_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL)),
            extraction_policy=os.getenv("ANALYSIS_EXTRACTION_POLICY", ExtractionPolicy.LAST_ASSISTANT.value),
            provider_timeout=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", DEFAULT_PROVIDER_TIMEOUT)),
            max_finished_views=int(os.getenv("ANALYSIS_MAX_FINISHED_VIEWS", DEFAULT_MAX_FINISHED_VIEWS)),
            registrar_base_url=os.getenv("REGISTRAR_BASE_URL", DEFAULT_REGISTRAR_BASE_URL),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
            cache_ttl=int(os.getenv("CACHE_TTL_SECONDS", "3600")),
            rate_limit_per_minute=int(os.getenv("RATE_LIMIT_PER_MINUTE", "100")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
