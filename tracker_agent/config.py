"""Configuration management"""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Storage
# Per-user root directory: trackers.json plus one directory per tracker
DATA_PATH: Path = Path(os.getenv("DATA_PATH", "~/.tracker-agent/trackers")).expanduser()

# Calendar days ("date" field, period boundaries) are computed in this zone
TIMEZONE: str = os.getenv("TIMEZONE", "UTC")

# Logging
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# AI Models
# Format is "<provider>:<model>", provider is openai or anthropic.
# OPENAI_BASE_URL points the openai provider at any compatible endpoint (e.g. a local Ollama).
COMPLETION_MODEL: str = os.getenv("COMPLETION_MODEL", "openai:gpt-4o-mini")
OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "")
ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")

# Seconds; a hung completion call blocks the request until this expires
COMPLETION_TIMEOUT: float = float(os.getenv("COMPLETION_TIMEOUT", "180"))
COMPLETION_MAX_RETRIES: int = int(os.getenv("COMPLETION_MAX_RETRIES", "2"))

# Intent classification
CONFIDENCE_THRESHOLD: float = float(os.getenv("CONFIDENCE_THRESHOLD", "0.6"))
INTENT_CACHE_TTL: int = int(os.getenv("INTENT_CACHE_TTL", "300"))

# Heuristic nutrition extractor
DEFAULT_CALORIE_ESTIMATE: int = int(os.getenv("DEFAULT_CALORIE_ESTIMATE", "200"))

SUPPORTED_PROVIDERS = ("openai", "anthropic")


# Validation
def validate_config() -> None:
    """Validate required configuration"""
    from tracker_agent.exceptions import ConfigurationError

    provider, _, model = COMPLETION_MODEL.partition(":")
    if not model or provider not in SUPPORTED_PROVIDERS:
        raise ConfigurationError(
            message=f"COMPLETION_MODEL must look like '<provider>:<model>', got '{COMPLETION_MODEL}'",
            config_key="COMPLETION_MODEL"
        )
    if provider == "anthropic" and not ANTHROPIC_API_KEY:
        raise ConfigurationError(
            message="ANTHROPIC_API_KEY is required for anthropic models",
            config_key="ANTHROPIC_API_KEY"
        )
    # A local OpenAI-compatible server does not need a key
    if provider == "openai" and not OPENAI_API_KEY and not OPENAI_BASE_URL:
        raise ConfigurationError(
            message="OPENAI_API_KEY or OPENAI_BASE_URL is required for openai models",
            config_key="OPENAI_API_KEY"
        )
    if not 0.0 <= CONFIDENCE_THRESHOLD <= 1.0:
        raise ConfigurationError(
            message="CONFIDENCE_THRESHOLD must be between 0 and 1",
            config_key="CONFIDENCE_THRESHOLD"
        )
