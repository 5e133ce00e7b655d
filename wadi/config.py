"""Application configuration using Pydantic Settings."""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./wadi.db"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Generation backend (OpenAI-compatible chat completions, Groq by default)
    LLM_API_KEY: str = ""
    LLM_BASE_URL: str = "https://api.groq.com/openai/v1"
    LLM_BACKEND: str = "groq"  # 'groq' or 'openai', selects the alias table and native prefixes
    LLM_DEFAULT_MODEL: str = "gpt-3.5-turbo"
    LLM_MAX_TOKENS: int = 1000
    LLM_TEMPERATURE: float = 0.7
    LLM_TIMEOUT: float = 120.0
    LLM_MAX_ATTEMPTS: int = 3
    SYSTEM_PROMPT: str = "You are a helpful AI assistant."

    # Embeddings (separate backend, Groq has no embeddings endpoint)
    EMBEDDING_API_KEY: str = ""
    EMBEDDING_BASE_URL: str = "https://api.openai.com/v1"
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBED_DIM: int = 1536  # Must match the model's output dimension

    # Vector memory
    MEMORY_ENABLED: bool = False
    MEMORY_CONTEXT_TOKENS: int = 2000

    # Credits
    INITIAL_CREDITS: int = 100

    # Identity provider (Supabase-compatible /auth/v1)
    AUTH_URL: str = ""
    AUTH_API_KEY: str = ""

    # WebSocket
    WS_HEARTBEAT_SECONDS: float = 30.0
    WS_AUTH_TIMEOUT_SECONDS: float = 30.0

    # API
    CORS_ORIGINS: List[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()
