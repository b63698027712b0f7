"""Configuration with 4-layer resolution: defaults -> YAML -> env -> overrides.

Uses pydantic-settings with YamlConfigSettingsSource for layered configuration.
Supports ``.env`` file loading, ``SIMPLENET_`` prefixed env vars, and
nested delimiter ``__`` for overriding sub-model fields
(e.g. ``SIMPLENET_YOUTUBE__API_KEY``).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


def _default_video_queries() -> dict[str, str]:
    return {
        "ai": "artificial intelligence news",
        "bollywood": "bollywood latest news",
        "pets": "pets cute animals",
        "sports": "sports highlights",
        "tech": "technology news",
    }


def _default_news_queries() -> dict[str, str]:
    return {
        "ai": "artificial intelligence",
        "bollywood": "bollywood",
        "pets": "pets animals",
        "sports": "sports",
        "tech": "technology",
    }


def _default_newsletter_feeds() -> dict[str, list[str]]:
    return {
        "ai": [
            "https://importai.substack.com/feed",
            "https://www.interconnects.ai/feed",
        ],
        "bollywood": [
            "https://www.bollywoodhungama.com/feed/",
            "https://www.filmfare.com/feeds/feeds.xml",
        ],
        "pets": [
            "https://www.thesprucepets.com/rss",
            "https://www.akc.org/feed/",
        ],
        "sports": [
            "https://www.espn.com/espn/rss/news",
            "https://www.theringer.com/rss/index.xml",
        ],
        "tech": [
            "https://newsletter.pragmaticengineer.com/feed",
            "https://stratechery.com/feed/",
        ],
    }


class YouTubeSettings(BaseModel):
    """YouTube Data API search adapter configuration."""

    api_key: str | None = Field(default=None, description="YouTube Data API key.")
    base_url: str = "https://www.googleapis.com/youtube/v3/search"
    timeout: float = Field(default=10.0, gt=0, description="Per-call timeout (s).")
    queries: dict[str, str] = Field(default_factory=_default_video_queries)
    quota_units_per_search: int = Field(default=100, ge=0)


class NewsSettings(BaseModel):
    """News RSS adapter configuration."""

    base_url: str = "https://news.google.com/rss/search"
    language: str = "en-US"
    region: str = "US"
    timeout: float = Field(default=10.0, gt=0, description="Per-call timeout (s).")
    max_items: int = Field(default=5, ge=1, le=5)
    queries: dict[str, str] = Field(default_factory=_default_news_queries)


class NewsletterSettings(BaseModel):
    """Curated newsletter feed configuration."""

    timeout: float = Field(default=10.0, gt=0, description="Per-call timeout (s).")
    max_items: int = Field(default=5, ge=1, le=5)
    feeds: dict[str, list[str]] = Field(default_factory=_default_newsletter_feeds)


class LLMSettings(BaseModel):
    """Hosted text-generation provider configuration."""

    provider: Literal["anthropic", "openai", "google"] = "openai"
    model: str = "gpt-4o-mini"
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=200, gt=0)
    timeout: float = Field(default=30.0, gt=0, description="Request timeout (s).")
    summary_words: int = Field(default=65, gt=0)
    on_failure: Literal["placeholder", "abort"] = Field(
        default="placeholder",
        description="Search policy when summarization fails.",
    )
    placeholder_summary: str = "Summary unavailable right now. Browse the sources below."

    @property
    def litellm_model(self) -> str:
        """Provider-prefixed model identifier understood by litellm."""
        prefix = "gemini" if self.provider == "google" else self.provider
        return f"{prefix}/{self.model}"


class StoreSettings(BaseModel):
    """Result store (SQLite) configuration."""

    database_path: Path = Path("./data/simplenet.db")
    timeout: float = Field(default=30.0, gt=0, description="Lock wait timeout (s).")


class RelaySettings(BaseModel):
    """Delayed webhook relay configuration."""

    webhook_url: str | None = None
    delay_seconds: float = Field(default=60.0, ge=0.0)
    timeout: float = Field(default=10.0, gt=0, description="Webhook POST timeout (s).")
    recover_on_startup: bool = True


class UsageSettings(BaseModel):
    """Append-only usage/cost log configuration."""

    directory: Path = Path("./data/usage")


class APISettings(BaseModel):
    """FastAPI server settings."""

    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    admin_token: str | None = Field(
        default=None, description="Token required by the usage dashboard."
    )
    recent_limit: int = Field(default=20, ge=1, le=500)


class LoggingSettings(BaseModel):
    """Logging / observability configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


ENV_PREFIX = "SIMPLENET_"


class Settings(BaseSettings):
    """Everything simplenet reads at startup.

    Later layers win: field defaults, then ``config.yaml`` (or the file
    passed with ``--config``), then ``.env``, then ``SIMPLENET_*``
    environment variables, then keyword overrides given to :meth:`load`.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        yaml_file="config.yaml",
        yaml_file_encoding="utf-8",
        extra="ignore",
    )

    _config_path_override: ClassVar[Path | None] = None

    youtube: YouTubeSettings = Field(default_factory=YouTubeSettings)
    news: NewsSettings = Field(default_factory=NewsSettings)
    newsletter: NewsletterSettings = Field(default_factory=NewsletterSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    relay: RelaySettings = Field(default_factory=RelaySettings)
    usage: UsageSettings = Field(default_factory=UsageSettings)
    api: APISettings = Field(default_factory=APISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Put the YAML file below ``.env`` and the environment.

        Secret files are not a supported source.
        """
        yaml_file = cls._config_path_override or settings_cls.model_config.get(
            "yaml_file", "config.yaml"
        )
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
        )

    @classmethod
    def load(cls, config_path: Path | None = None, **overrides: Any) -> Settings:
        """Build settings from ``config_path`` (if given) plus ``overrides``.

        Overrides are nested dicts keyed like the YAML file, e.g.
        ``Settings.load(relay={"delay_seconds": 0})``; they are merged into
        the file values rather than replacing whole sections.

        Raises:
            ValidationError: If any resolved value fails validation.
        """
        cls._config_path_override = config_path
        try:
            return cls(**overrides)
        finally:
            cls._config_path_override = None


def format_validation_error(exc: ValidationError) -> str:
    """Render a settings ``ValidationError`` for the terminal.

    Each problem is shown with its dotted path and the environment
    variable that would override it, e.g.
    ``relay.delay_seconds (SIMPLENET_RELAY__DELAY_SECONDS)``.
    """
    lines: list[str] = []
    for error in exc.errors():
        parts = [str(part) for part in error["loc"]]
        env_name = ENV_PREFIX + "__".join(parts).upper()
        line = f"  {'.'.join(parts)} ({env_name}): {error['msg']}"
        if error.get("input") is not None:
            line += f" (got {error['input']!r})"
        lines.append(line)
    return "Configuration error:\n" + "\n".join(lines)
