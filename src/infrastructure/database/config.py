"""Resource store connection settings.

Settings come from the environment (POSTGRES_*, DATABASE_URL); a URL given
in the pipeline configuration wins over both.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.engine import URL

ASYNC_DRIVER = "postgresql+asyncpg"


@dataclass
class DatabaseConfig:
    """Where the resource tables live and how connections are pooled."""

    host: str = "localhost"
    port: int = 5432
    database: str = "resource_pipeline"
    username: str = "resource_pipeline"
    password: str = "resource_pipeline_dev"
    url: Optional[str] = None

    pool_size: int = 5
    max_overflow: int = 10
    # Uniqueness lookups run inside the write transaction; stale pooled
    # connections are checked before use.
    pool_pre_ping: bool = True
    echo: bool = False
    create_schema: bool = True

    @classmethod
    def from_env(cls, url: Optional[str] = None) -> "DatabaseConfig":
        """
        Read the settings from the environment.

        Args:
            url: Explicit URL, e.g. from the pipeline configuration
        """
        return cls(
            host=os.getenv("POSTGRES_HOST", cls.host),
            port=int(os.getenv("POSTGRES_PORT", str(cls.port))),
            database=os.getenv("POSTGRES_DB", cls.database),
            username=os.getenv("POSTGRES_USER", cls.username),
            password=os.getenv("POSTGRES_PASSWORD", cls.password),
            url=url or os.getenv("DATABASE_URL") or None,
            pool_size=int(os.getenv("POSTGRES_POOL_SIZE", str(cls.pool_size))),
            echo=os.getenv("POSTGRES_ECHO", "false").lower() == "true",
            create_schema=os.getenv("POSTGRES_CREATE_SCHEMA", "true").lower() != "false",
        )

    def get_url(self, driver: str = ASYNC_DRIVER) -> str:
        if self.url:
            return self.url
        return URL.create(
            drivername=driver,
            username=self.username,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
        ).render_as_string(hide_password=False)

    def safe_url(self) -> str:
        """URL with the password masked, for logs."""
        if self.url:
            return self.url.split("@")[-1]
        return f"{self.host}:{self.port}/{self.database}"

    def engine_options(self) -> Dict[str, Any]:
        return {
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_pre_ping": self.pool_pre_ping,
            "echo": self.echo,
        }
