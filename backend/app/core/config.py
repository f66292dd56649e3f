from functools import lru_cache
import json

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def split_list(value) -> list[str]:
    """Accept a JSON array or a comma-separated string (env values arrive as text)."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = value
    else:
        raw = str(value).strip()
        if not raw:
            return []
        items = None
        if raw.startswith("["):
            try:
                decoded = json.loads(raw)
            except ValueError:
                decoded = None
            if isinstance(decoded, list):
                items = decoded
        if items is None:
            items = raw.split(",")
    return [str(item).strip() for item in items if str(item).strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="forbid",
        validate_by_name=True,
        populate_by_name=True,
    )

    # --- App ---
    database_url: str = ""
    docs_enabled: bool = True
    openapi_enabled: bool = True
    expose_error_details: bool = False
    log_level: str = "INFO"

    cors_allow_origins: list[str] = Field(default_factory=list)
    cors_allow_methods: list[str] = Field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    cors_allow_headers: list[str] = Field(
        default_factory=lambda: ["Authorization", "Content-Type", "Accept", "X-Team-Id"]
    )

    # --- AI providers ---
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    ai_allowed_providers_raw: str = Field(
        default="mock,claude,openai",
        validation_alias=AliasChoices("AI_ALLOWED_PROVIDERS", "ai_allowed_providers_raw"),
    )
    ai_allowed_models_claude_raw: str = Field(
        default="",
        validation_alias=AliasChoices("AI_ALLOWED_MODELS_CLAUDE", "ai_allowed_models_claude_raw"),
    )
    ai_allowed_models_openai_raw: str = Field(
        default="",
        validation_alias=AliasChoices("AI_ALLOWED_MODELS_OPENAI", "ai_allowed_models_openai_raw"),
    )
    enable_ai_overrides: bool = False
    ai_temperature: float = 0.1
    ai_max_tokens: int = 8192
    ai_timeout_seconds: float = 60.0
    ai_debug_store_raw: bool = False

    ai_sheet_analysis_provider: str = "mock"
    ai_sheet_analysis_model: str = ""
    ai_sheet_analysis_timeout_seconds: float = 60.0

    ai_vision_provider: str = "mock"
    ai_vision_model: str = ""
    ai_vision_timeout_seconds: float = 120.0
    ai_vision_max_tokens: int = 16000

    ai_rate_limit_max_retries: int = Field(default=2, ge=0)
    ai_rate_limit_backoff_seconds: float = Field(default=2.0, ge=0)

    # --- Setup assistant (file import) ---
    enable_setup_assistant: bool = True
    setup_assistant_support_mixed_sheets: bool = True
    setup_assistant_default_profession: str = "arquitetura"
    setup_assistant_output_token_budget: int = Field(default=6000, gt=0)
    setup_assistant_large_table_threshold: int = Field(default=2500, gt=0)
    setup_assistant_rows_per_sub_batch: int = Field(default=60, gt=0)
    setup_assistant_sample_rows: int = Field(default=20, gt=0)
    setup_assistant_chars_per_token: float = Field(default=3.5, gt=0)
    setup_assistant_batch_pause_seconds: float = Field(default=10.0, ge=0)
    setup_assistant_file_pause_seconds: float = Field(default=1.0, ge=0)
    setup_assistant_max_file_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    setup_assistant_max_files: int = Field(default=20, gt=0)

    @field_validator("cors_allow_origins", "cors_allow_methods", "cors_allow_headers", mode="before")
    @classmethod
    def _split_lists(cls, value):
        return split_list(value)

    @property
    def ai_allowed_providers(self) -> list[str]:
        providers = [item.lower() for item in split_list(self.ai_allowed_providers_raw)]
        # Mock is always reachable; it is the fallback for every scope.
        return providers if "mock" in providers else ["mock", *providers]

    @property
    def ai_allowed_models(self) -> dict[str, list[str]]:
        return {
            "mock": [],
            "claude": split_list(self.ai_allowed_models_claude_raw),
            "openai": split_list(self.ai_allowed_models_openai_raw),
        }


@lru_cache

def get_settings() -> Settings:
    return Settings()
