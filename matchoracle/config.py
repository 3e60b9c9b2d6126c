"""Application configuration using Pydantic Settings."""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database (prediction ledger)
    DATABASE_URL: str = "sqlite:///./matchoracle.db"

    # API-Football (API-Sports direct or RapidAPI host)
    API_FOOTBALL_KEY: str = ""
    API_FOOTBALL_HOST: str = "v3.football.api-sports.io"
    API_FOOTBALL_TIMEOUT_SECONDS: float = 30.0

    # Gemini (qualitative analysis: Trinity full analysis + LLMGRADE)
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.0-flash"
    LLM_TIMEOUT_SECONDS: float = 30.0
    LLM_TEMPERATURE: float = 0.5
    LLM_MAX_TOKENS: int = 1500

    # ═══════════════════════════════════════════════════════════════
    # Caches
    # ═══════════════════════════════════════════════════════════════

    # Trinity metrics: fatigue/fitness go stale quickly near kickoff
    TRINITY_CACHE_TTL_SECONDS: float = 300.0
    # LLMGRADE: 30 most recent grades kept for 12h
    LLMGRADE_CACHE_TTL_SECONDS: float = 12 * 3600.0
    LLMGRADE_CACHE_MAX_ENTRIES: int = 30
    # Match intel fan-out (h2h / form / deep stats / sentiment)
    INTEL_CACHE_TTL_SECONDS: float = 300.0

    # Tesseract score grid
    TESSERACT_MAX_GOALS: int = 10
    TESSERACT_RHO: float = -0.15

    # Ledger background queue
    LEDGER_QUEUE_MAXSIZE: int = 1000

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def _clean_key(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class ApiKeys:
    """Credential store snapshot: both keys are optional, absence is a valid state."""

    sports_data: Optional[str] = None
    llm: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "sports_data", _clean_key(self.sports_data))
        object.__setattr__(self, "llm", _clean_key(self.llm))

    @property
    def complete(self) -> bool:
        return self.sports_data is not None and self.llm is not None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ApiKeys":
        settings = settings or get_settings()
        return cls(sports_data=settings.API_FOOTBALL_KEY, llm=settings.GEMINI_API_KEY)
