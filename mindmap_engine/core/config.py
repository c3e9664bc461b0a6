from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── AI Providers ──────────────────────────────────────────────────────────
    AI_PROVIDER: str = "gemini"

    @field_validator("AI_PROVIDER")
    @classmethod
    def validate_ai_provider(cls, v: str) -> str:
        allowed = {"gemini", "groq"}
        if v.lower() not in allowed:
            raise ValueError(f"AI_PROVIDER must be one of {allowed}, got '{v}'")
        return v.lower()

    # Google (Gemini)
    GOOGLE_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.0-flash"

    # Groq (Llama 3)
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.3-70b-versatile"

    AI_TIMEOUT_SECONDS: int = 120

    # ── Upload policy ─────────────────────────────────────────────────────────
    MAX_FILE_SIZE_MB: int = 10
    BINARY_EXTRACTORS_ENABLED: bool = False
    MAX_PDF_PAGES: int = 200

    # ── Content policy ────────────────────────────────────────────────────────
    MIN_TEXT_CHARS: int = 50
    MAX_TEXT_CHARS: int = 50_000

    @model_validator(mode="after")
    def validate_text_bounds(self) -> "Settings":
        if self.MIN_TEXT_CHARS < 1 or self.MIN_TEXT_CHARS >= self.MAX_TEXT_CHARS:
            raise ValueError(
                f"Invalid text bounds: MIN_TEXT_CHARS={self.MIN_TEXT_CHARS}, "
                f"MAX_TEXT_CHARS={self.MAX_TEXT_CHARS}"
            )
        return self

    # ── Handoff ───────────────────────────────────────────────────────────────
    HANDOFF_MAX_SESSIONS: int = 1000

    # ── Core ──────────────────────────────────────────────────────────────────
    PUBLIC_BASE_URL: str = "http://localhost:5173"
    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:5174",
        "http://localhost:3000",
    ]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def max_file_size_bytes(self) -> int:
        return self.MAX_FILE_SIZE_MB * 1024 * 1024

    @property
    def oracle_api_key(self) -> Optional[str]:
        """Credential for the active provider, or None when it is not configured."""
        key = self.GOOGLE_API_KEY if self.AI_PROVIDER == "gemini" else self.GROQ_API_KEY
        if key and key.strip():
            return key.strip()
        return None

    @property
    def oracle_api_key_name(self) -> str:
        return "GOOGLE_API_KEY" if self.AI_PROVIDER == "gemini" else "GROQ_API_KEY"


settings = Settings()
