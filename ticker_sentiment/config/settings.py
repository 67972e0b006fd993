from typing import Optional, Dict, Any, Union, List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, PostgresDsn, ValidationInfo, field_validator, Field
import yaml
from pathlib import Path

# Root directory of the ticker_sentiment package
SERVICE_ROOT_DIR = Path(__file__).parent.parent.resolve()
DEFAULT_CONFIG_PATH = SERVICE_ROOT_DIR / "config" / "app_config.yaml"
PROJECT_ROOT_DIR = SERVICE_ROOT_DIR.parent

SCORER_BACKENDS = ("openai", "rule_based")


class Settings(BaseSettings):
    # Application settings
    APP_NAME: str = "TickerSentiment"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Database settings
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "user"
    DB_PASSWORD: str = "password"
    DB_NAME: str = "ticker_sentiment"
    DATABASE_URL: Optional[str] = Field(default=None, validate_default=True)

    @field_validator("DATABASE_URL", mode='before')
    @classmethod
    def assemble_db_connection(cls, v: Optional[str], values: ValidationInfo) -> Any:
        if isinstance(v, str) and v:
            return v
        return str(PostgresDsn.build(
            scheme="postgresql+asyncpg",
            username=values.data.get("DB_USER"),
            password=values.data.get("DB_PASSWORD"),
            host=values.data.get("DB_HOST"),
            port=int(values.data.get("DB_PORT") or 5432),
            path=values.data.get("DB_NAME") or "",
        ))

    # Proxy settings. Comma-separated host:port:user:pass entries.
    PROXY_LIST: str = Field(default="", validation_alias=AliasChoices("PROXY_LIST", "WEBSHARE_PROXY_LIST"))
    PROXY_COOLDOWN_SECONDS: float = 300.0
    PROXY_VALIDATION_URL: str = "https://httpbin.org/ip"
    PROXY_VALIDATION_TIMEOUT_SECONDS: float = 10.0
    VALIDATE_PROXIES_ON_STARTUP: bool = True

    # Reddit fetch settings
    REDDIT_BASE_URL: str = "https://www.reddit.com"
    REDDIT_USER_AGENT: str = "Mozilla/5.0 (compatible; ticker-sentiment/0.1)"
    FETCH_TIMEOUT_SECONDS: float = 30.0
    RATE_LIMIT_MIN_DELAY_SECONDS: float = 0.5
    RATE_LIMIT_MAX_DELAY_SECONDS: float = 1.5
    SUBREDDIT_LISTING_LIMIT: int = 100

    # Freshness rules as (max_age_seconds, interval_seconds, description) entries.
    MAX_POST_AGE_SECONDS: int = 7 * 24 * 3600
    SCRAPE_RULES: List[Dict[str, Any]] = [
        {"max_age_seconds": 24 * 3600, "interval_seconds": 10 * 60, "description": "less than 1 day old"},
        {"max_age_seconds": 3 * 24 * 3600, "interval_seconds": 3600, "description": "1-3 days old"},
        {"max_age_seconds": 7 * 24 * 3600, "interval_seconds": 24 * 3600, "description": "3-7 days old"},
    ]

    # Discovery settings
    DISCOVERY_DEDUP_SECONDS: int = 300

    # Sentiment scoring
    SCORER_BACKEND: str = "openai"
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TEMPERATURE: float = 0.2
    OPENAI_TIMEOUT_SECONDS: float = 30.0
    SCORING_BATCH_SIZE: int = 100

    # Symbol search
    FINNHUB_API_KEY: Optional[str] = None
    FINNHUB_BASE_URL: str = "https://finnhub.io/api/v1"
    FINNHUB_EXCHANGE: str = "US"

    # Job schedule
    FRESHNESS_SWEEP_ENABLED: bool = True
    FRESHNESS_SWEEP_INTERVAL_SECONDS: int = 300
    SCORING_SWEEP_ENABLED: bool = True
    SCORING_SWEEP_INTERVAL_SECONDS: int = 300
    SUBREDDIT_DISCOVERY_ENABLED: bool = True
    SUBREDDIT_DISCOVERY_INTERVAL_SECONDS: int = 3600

    # Monitoring
    ENABLE_PROMETHEUS: bool = False
    PROMETHEUS_PORT: int = 8000

    # Logging configuration path (can be overridden by env var)
    LOGGING_CONFIG_PATH: str = str(SERVICE_ROOT_DIR / "config" / "logging_config.yaml")
    LOG_LEVEL: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT_DIR / ".env"),
        env_file_encoding='utf-8',
        extra='ignore',
        populate_by_name=True,
    )

    @field_validator("SCORER_BACKEND")
    @classmethod
    def normalise_backend(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("PROXY_LIST")
    @classmethod
    def strip_proxy_list(cls, v: str) -> str:
        return v.strip()

    def validate_runtime(self) -> List[str]:
        """
        Validate the settings for a pipeline run.

        Returns:
            List of validation error messages, empty if valid
        """
        errors = []

        if self.SCORER_BACKEND not in SCORER_BACKENDS:
            errors.append(f"SCORER_BACKEND must be one of {', '.join(SCORER_BACKENDS)}, got {self.SCORER_BACKEND!r}")

        if self.RATE_LIMIT_MIN_DELAY_SECONDS < 0:
            errors.append("RATE_LIMIT_MIN_DELAY_SECONDS cannot be negative")

        if self.RATE_LIMIT_MAX_DELAY_SECONDS < self.RATE_LIMIT_MIN_DELAY_SECONDS:
            errors.append("RATE_LIMIT_MAX_DELAY_SECONDS must be >= RATE_LIMIT_MIN_DELAY_SECONDS")

        if self.FETCH_TIMEOUT_SECONDS <= 0:
            errors.append("FETCH_TIMEOUT_SECONDS must be positive")

        if self.SCORING_BATCH_SIZE <= 0:
            errors.append("SCORING_BATCH_SIZE must be positive")

        for name in ("FRESHNESS_SWEEP_INTERVAL_SECONDS", "SCORING_SWEEP_INTERVAL_SECONDS",
                     "SUBREDDIT_DISCOVERY_INTERVAL_SECONDS"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")

        for i, rule in enumerate(self.SCRAPE_RULES):
            if "max_age_seconds" not in rule or "interval_seconds" not in rule:
                errors.append(f"SCRAPE_RULES[{i}] needs max_age_seconds and interval_seconds")

        return errors

    @classmethod
    def load_from_yaml(cls, config_path: Union[str, Path] = DEFAULT_CONFIG_PATH, **overrides: Any) -> 'Settings':
        """
        Build settings from an optional YAML file.

        YAML keys are matched case-insensitively against field names and act as
        defaults: values from the environment and .env still win.
        """
        config_path = Path(config_path)
        yaml_data: Dict[str, Any] = {}
        if config_path.exists():
            with open(config_path, 'r') as f:
                loaded = yaml.safe_load(f) or {}
            yaml_data = {str(k).upper(): v for k, v in loaded.items()}

        env_settings = cls(**overrides)
        if not yaml_data:
            return env_settings

        # Fields set explicitly from the environment keep precedence over YAML.
        merged = {k: v for k, v in yaml_data.items() if k in cls.model_fields}
        merged.update({k: getattr(env_settings, k) for k in env_settings.model_fields_set})
        merged.update(overrides)
        return cls(**merged)


# Instantiate settings
settings = Settings.load_from_yaml()
