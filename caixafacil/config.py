"""Configuration management for CaixaFácil."""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings read from the environment and an optional .env file."""

    # LLM provider
    llm_provider: Literal["ollama", "openai"] = "openai"
    openai_api_key: str = ""
    ollama_host: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"
    openai_model: str = "gpt-4o-mini"
    llm_timeout_seconds: float = 180.0
    llm_max_retries: int = 1  # Single attempt; the import pipeline does not retry

    # Statement import
    categorization_batch_size: int = 50
    categorization_concurrency: int = 1  # 1 = batches run one after another
    success_reset_seconds: float = 3.0
    max_upload_mb: int = 10  # Advisory only, shown to clients

    # Runtime
    dev_mode: bool = True
    log_level: str = "INFO"

    # Local storage
    data_dir: Path = Path.home() / ".caixafacil"

    # HTTP server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # LLM_PROVIDER and llm_provider both work
        extra="ignore",
    )

    @property
    def db_path(self) -> Path:
        """SQLite file, separate for dev and prod."""
        suffix = "dev" if self.dev_mode else "prod"
        return self.data_dir / f"caixafacil_{suffix}.db"

    @property
    def uploads_path(self) -> Path:
        """Where uploaded statements are kept."""
        return self.data_dir / "uploads"

    @property
    def model_name(self) -> str:
        """Model identifier in litellm's provider/model form."""
        if self.llm_provider == "openai":
            return self.openai_model
        return f"ollama/{self.ollama_model}"

    @property
    def api_base(self) -> str | None:
        """API base URL, only needed for Ollama."""
        if self.llm_provider == "ollama":
            return self.ollama_host
        return None

    @property
    def api_key(self) -> str | None:
        if self.llm_provider == "openai":
            return self.openai_api_key or None
        return None

    def ensure_directories(self) -> None:
        """Create the data and uploads directories."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.uploads_path.mkdir(parents=True, exist_ok=True)

    def log_config(self) -> None:
        """Print current configuration with sensitive values redacted."""
        key = self.openai_api_key
        redacted = f"{key[:8]}...{key[-4:]}" if key else "not set"
        rows = [
            ("Provider", self.llm_provider),
            ("Model", self.model_name),
            ("OpenAI key", redacted),
            ("Ollama host", self.ollama_host),
            ("LLM timeout", f"{self.llm_timeout_seconds:g}s"),
            ("Batch size", self.categorization_batch_size),
            ("Batch concurrency", self.categorization_concurrency),
            ("Dev mode", self.dev_mode),
            ("Database", self.db_path),
            ("Uploads", self.uploads_path),
            ("Listening on", f"{self.api_host}:{self.api_port}"),
        ]

        print("\n--- CaixaFácil settings " + "-" * 36)
        for label, value in rows:
            print(f"  {label:<20}{value}")
        print("-" * 60 + "\n")


settings = Settings()
