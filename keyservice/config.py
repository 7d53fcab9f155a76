"""
Service configuration.

Settings are read from environment variables:
- LOG_LEVEL
- REGISTRY_BACKEND ("memory" or "sql")
- DATABASE_URL
- API_HOST / API_PORT
- RPC_PATH
"""
import os
from typing import Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./credentials.db"


class Settings(BaseModel):
    """Runtime settings for the credential service."""
    log_level: str = "INFO"
    registry_backend: Literal["memory", "sql"] = "memory"
    database_url: str = DEFAULT_DATABASE_URL
    api_host: str = "0.0.0.0"
    api_port: int = Field(8000, ge=1, le=65535)
    rpc_path: str = "/rpc"

    @field_validator("registry_backend", mode="before")
    @classmethod
    def backend_is_lowercase(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator("rpc_path")
    @classmethod
    def rpc_path_is_absolute(cls, v):
        if not v.startswith("/") or v.endswith("/"):
            raise ValueError("RPC_PATH must start with '/' and must not end with '/'")
        return v

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            registry_backend=os.getenv("REGISTRY_BACKEND", "memory"),
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            api_host=os.getenv("API_HOST", "0.0.0.0"),
            api_port=int(os.getenv("API_PORT", "8000")),
            rpc_path=os.getenv("RPC_PATH", "/rpc"),
        )
