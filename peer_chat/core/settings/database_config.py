"""Database connection configuration."""

from typing import Any

from pydantic import BaseModel, SecretStr


class DatabaseConfig(BaseModel, frozen=True):
    """Database connection settings."""

    url: SecretStr
    pool_size: int
    max_overflow: int

    @property
    def is_sqlite(self) -> bool:
        """Check if the URL points at SQLite (tests and local runs)."""
        return self.url.get_secret_value().startswith("sqlite")

    @property
    def async_url(self) -> str:
        """DB URL with charset for MySQL."""
        base = self.url.get_secret_value()
        if self.is_sqlite or "?" in base:
            return base
        return f"{base}?charset=utf8mb4"

    @property
    def engine_options(self) -> dict[str, Any]:
        """Keyword arguments for ``create_async_engine``."""
        if self.is_sqlite:
            return {}
        return {
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_recycle": 3600,
            "pool_pre_ping": True,
        }
