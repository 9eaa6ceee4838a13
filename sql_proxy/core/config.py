from typing import FrozenSet, Tuple

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str
    AUTH_TOKENS: str = ""
    BIND_ADDR: str = "127.0.0.1:8080"
    RESULT_FORMAT: str = "json"
    LOG_LEVEL: str = "info"
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 10
    DB_POOL_TIMEOUT: int = 30

    # This tells Pydantic to read from the .env file
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("DATABASE_URL")
    @classmethod
    def use_async_driver(cls, value: str) -> str:
        # Plain libpq style URLs are pointed at the async psycopg driver
        for prefix in ("postgres://", "postgresql://"):
            if value.startswith(prefix):
                return "postgresql+psycopg://" + value[len(prefix):]
        return value

    @field_validator("RESULT_FORMAT")
    @classmethod
    def check_result_format(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ("json", "display"):
            raise ValueError("RESULT_FORMAT must be 'json' or 'display'")
        return value

    @property
    def accepted_tokens(self) -> FrozenSet[str]:
        """Comma separated AUTH_TOKENS, trimmed, with blanks dropped."""
        return frozenset(
            token.strip() for token in self.AUTH_TOKENS.split(",") if token.strip()
        )

    @property
    def bind_host_port(self) -> Tuple[str, int]:
        host, _, port = self.BIND_ADDR.rpartition(":")
        if not host or not port.isdigit():
            raise ValueError(f"BIND_ADDR must look like host:port, got {self.BIND_ADDR!r}")
        return host, int(port)


# Create a single instance of the settings to use everywhere
settings = Settings()
