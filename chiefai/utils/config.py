"""
Configuration management
"""
import os
from pathlib import Path
from typing import Any, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


# ============================================
# CONFIGURATION DEFAULTS
# ============================================

class ConfigDefaults:
    """Default configuration values as constants"""

    # Agent defaults
    AGENT_NAME = "ChiefAI Assistant"
    AGENT_TONE = "professional"
    AGENT_REPLY_MARKER = "Drafted with ChiefAI"
    AGENT_GENERATED_HEADER = "X-ChiefAI-Generated"

    # AI/LLM defaults
    AI_PROVIDER_GEMINI = "gemini"
    AI_MODEL_DEFAULT = "gemini-2.5-flash"
    AI_TEMPERATURE_DEFAULT = 0.7
    AI_MAX_TOKENS_DEFAULT = 400
    AI_TIMEOUT_SECONDS = 15.0

    # Database defaults
    DATABASE_URL_DEFAULT = "sqlite:///./data/chiefai.db"
    DATABASE_POOL_SIZE = 5

    # Redis / lock defaults
    REDIS_LOCK_TTL_SECONDS = 300
    REDIS_LOCK_PREFIX = "meeting_pipeline"

    # Timezone defaults
    TIMEZONE_AUTO = "auto"
    TIMEZONE_DEFAULT = "America/Los_Angeles"
    TIMEZONE_CACHE_TTL_HOURS = 24

    # Detection defaults
    DETECTION_MIN_CONFIDENCE = 60
    DETECTION_DATE_WINDOW_CHARS = 50
    DETECTION_STANDALONE_TIME_DISTANCE = 20
    DETECTION_DEFAULT_DURATION = 60
    DETECTION_EXCLUDED_CATEGORIES = [
        "promotional", "promotions", "newsletter", "social",
        "updates", "forums", "bulk", "marketing",
    ]

    # Availability defaults
    AVAILABILITY_WORKDAY_START = 9
    AVAILABILITY_WORKDAY_END = 17
    AVAILABILITY_WORKING_DAYS = [0, 1, 2, 3, 4]  # Monday..Friday
    AVAILABILITY_SLOT_INCREMENT_MINUTES = 30
    AVAILABILITY_SAME_DAY_STEPS = 16
    AVAILABILITY_DAY_OFFSETS = 5
    AVAILABILITY_MAX_ALTERNATIVES = 3
    AVAILABILITY_TIMEOUT_SECONDS = 10.0

    # Response defaults
    RESPONSE_MAX_WORDS = 120
    RESPONSE_MIN_CHARS = 20
    RESPONSE_MAX_CHARS = 1000

    # Pipeline defaults
    PIPELINE_INTER_MESSAGE_DELAY = 0.1

    # Logging defaults
    LOGGING_LEVEL_INFO = "INFO"

    # Config file defaults
    CONFIG_PATH_DEFAULT = "config/config.yaml"


# ============================================
# CONFIGURATION MODELS
# ============================================

class AgentConfig(BaseModel):
    """Assistant identity, used for drafting and loop prevention"""
    name: str = ConfigDefaults.AGENT_NAME
    email: Optional[str] = None
    additional_addresses: List[str] = []
    tone: str = ConfigDefaults.AGENT_TONE  # professional | friendly | casual
    reply_marker: str = ConfigDefaults.AGENT_REPLY_MARKER
    generated_header: str = ConfigDefaults.AGENT_GENERATED_HEADER


class AIConfig(BaseModel):
    """AI/LLM configuration"""
    provider: str = ConfigDefaults.AI_PROVIDER_GEMINI
    model: str = ConfigDefaults.AI_MODEL_DEFAULT
    api_key: Optional[str] = None
    temperature: float = ConfigDefaults.AI_TEMPERATURE_DEFAULT
    max_tokens: int = ConfigDefaults.AI_MAX_TOKENS_DEFAULT
    timeout_seconds: float = ConfigDefaults.AI_TIMEOUT_SECONDS


class DatabaseConfig(BaseModel):
    """Database configuration"""
    url: str = ConfigDefaults.DATABASE_URL_DEFAULT
    echo: bool = False
    pool_size: int = ConfigDefaults.DATABASE_POOL_SIZE


class RedisConfig(BaseModel):
    """Distributed lock configuration. No url means an in-process lock."""
    url: Optional[str] = None
    lock_ttl_seconds: int = ConfigDefaults.REDIS_LOCK_TTL_SECONDS
    key_prefix: str = ConfigDefaults.REDIS_LOCK_PREFIX
    fail_open: bool = True


class TimezoneConfig(BaseModel):
    """Timezone resolution configuration"""
    default: str = ConfigDefaults.TIMEZONE_DEFAULT
    cache_ttl_hours: float = ConfigDefaults.TIMEZONE_CACHE_TTL_HOURS


class DetectionConfig(BaseModel):
    """Meeting intent detection configuration"""
    min_confidence: int = ConfigDefaults.DETECTION_MIN_CONFIDENCE
    date_window_chars: int = ConfigDefaults.DETECTION_DATE_WINDOW_CHARS
    standalone_time_distance: int = ConfigDefaults.DETECTION_STANDALONE_TIME_DISTANCE
    default_duration_minutes: int = ConfigDefaults.DETECTION_DEFAULT_DURATION
    excluded_categories: List[str] = Field(
        default_factory=lambda: list(ConfigDefaults.DETECTION_EXCLUDED_CATEGORIES)
    )


class AvailabilityConfig(BaseModel):
    """Working hours and alternative-slot search configuration"""
    workday_start_hour: int = ConfigDefaults.AVAILABILITY_WORKDAY_START
    workday_end_hour: int = ConfigDefaults.AVAILABILITY_WORKDAY_END
    working_days: List[int] = Field(
        default_factory=lambda: list(ConfigDefaults.AVAILABILITY_WORKING_DAYS)
    )
    slot_increment_minutes: int = ConfigDefaults.AVAILABILITY_SLOT_INCREMENT_MINUTES
    max_same_day_steps: int = ConfigDefaults.AVAILABILITY_SAME_DAY_STEPS
    max_day_offsets: int = ConfigDefaults.AVAILABILITY_DAY_OFFSETS
    max_alternatives: int = ConfigDefaults.AVAILABILITY_MAX_ALTERNATIVES
    timeout_seconds: float = ConfigDefaults.AVAILABILITY_TIMEOUT_SECONDS


class ResponseConfig(BaseModel):
    """Response drafting configuration"""
    max_words: int = ConfigDefaults.RESPONSE_MAX_WORDS
    min_chars: int = ConfigDefaults.RESPONSE_MIN_CHARS
    max_chars: int = ConfigDefaults.RESPONSE_MAX_CHARS
    use_ai: bool = True
    auto_book: bool = False
    default_scheduling_link: Optional[str] = None


class PipelineConfig(BaseModel):
    """Batch processing configuration"""
    inter_message_delay: float = ConfigDefaults.PIPELINE_INTER_MESSAGE_DELAY


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = ConfigDefaults.LOGGING_LEVEL_INFO
    file: Optional[str] = None


class Config(BaseModel):
    """Main configuration"""
    agent: AgentConfig = AgentConfig()
    ai: AIConfig = AIConfig()
    database: DatabaseConfig = DatabaseConfig()
    redis: RedisConfig = RedisConfig()
    timezone: TimezoneConfig = TimezoneConfig()
    detection: DetectionConfig = DetectionConfig()
    availability: AvailabilityConfig = AvailabilityConfig()
    response: ResponseConfig = ResponseConfig()
    pipeline: PipelineConfig = PipelineConfig()
    logging: LoggingConfig = LoggingConfig()


def load_config(config_path: str = ConfigDefaults.CONFIG_PATH_DEFAULT) -> Config:
    """
    Load configuration from YAML file and environment variables.

    A missing file yields the defaults; ${VAR} placeholders are filled from
    the environment (after loading .env).
    """
    load_dotenv()

    path = Path(config_path)
    if not path.exists():
        return Config()

    with open(path, 'r') as f:
        config_dict = yaml.safe_load(f) or {}

    config_dict = _replace_env_vars(config_dict)
    return Config(**config_dict)


def _replace_env_vars(obj: Any) -> Any:
    """
    Recursively replace ${VAR} and ${VAR:-default} placeholders.

    Unset variables without a default resolve to None so optional fields
    fall back to their model defaults.
    """
    if isinstance(obj, dict):
        return {k: _replace_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_replace_env_vars(item) for item in obj]
    elif isinstance(obj, str) and obj.startswith("${") and obj.endswith("}"):
        expression = obj[2:-1]
        var_name, _, default = expression.partition(":-")
        env_value = os.getenv(var_name)
        if env_value:
            return env_value
        return default if default else None
    return obj


def get_timezone(config: Optional[Config] = None) -> str:
    """
    Get the fallback timezone from the TIMEZONE variable or config.

    Returns:
        IANA zone name, "America/Los_Angeles" when nothing is configured
    """
    env_tz = os.getenv("TIMEZONE")
    if env_tz and env_tz != ConfigDefaults.TIMEZONE_AUTO:
        return env_tz

    if config and config.timezone and config.timezone.default:
        return config.timezone.default

    return ConfigDefaults.TIMEZONE_DEFAULT
