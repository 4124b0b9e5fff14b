import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Always load .env from the project root (stable, regardless of CWD)
BASE_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=BASE_DIR / ".env", override=False)


def _env(name: str, default: str) -> str:
    v = os.getenv(name)
    return v if v and v.strip() else default


@dataclass(frozen=True)
class Settings:
    database_url: str = field(default_factory=lambda: _env("DATABASE_URL", "sqlite:///./vidstudy.db"))
    env: str = field(default_factory=lambda: _env("ENV", "local"))
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))

    # Generation
    transcript_max_chars: int = field(default_factory=lambda: int(_env("TRANSCRIPT_MAX_CHARS", "15000")))
    temperature: float = field(default_factory=lambda: float(_env("LLM_TEMPERATURE", "0.7")))

    # OpenAI (the core never retries on its own; callers decide)
    openai_timeout_sec: float = field(default_factory=lambda: float(_env("OPENAI_TIMEOUT_SEC", "120")))
    openai_max_retries: int = field(default_factory=lambda: int(_env("OPENAI_MAX_RETRIES", "0")))

    # Gemini REST
    gemini_base_url: str = field(
        default_factory=lambda: _env("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta")
    )
    gemini_timeout_sec: float = field(default_factory=lambda: float(_env("GEMINI_TIMEOUT_SEC", "120")))

    # Dashboard / chat
    recent_sessions_limit: int = field(default_factory=lambda: int(_env("RECENT_SESSIONS_LIMIT", "6")))
    chat_title_max_chars: int = field(default_factory=lambda: int(_env("CHAT_TITLE_MAX_CHARS", "50")))


def get_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings()


settings = get_settings()
