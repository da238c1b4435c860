"""
Ollama Chat - Configuration
"""
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Ollama Chat")
    version: str = Field(default="0.3.0")

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    debug: bool = Field(default=True)
    log_level: str = Field(default="INFO")

    # CORS - 前端开发服务器
    cors_origins: List[str] = Field(default=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ])

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./ollama_chat.db")
    database_echo: bool = Field(default=False)

    # Organization defaults
    default_folder_color: str = Field(default="#4F46E5")
    default_tag_color: str = Field(default="#4F46E5")
    default_conversation_title: str = Field(default="New Chat")

    # Folder write serialization
    folder_lock_timeout: float = Field(default=10.0)  # seconds
    folder_lock_retries: int = Field(default=3)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
