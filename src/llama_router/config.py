# config.py
# Startup configuration. Values come from the environment (and a .env file,
# if present) and are frozen for the lifetime of the process.

import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from llama_router.errors import ConfigError

DEFAULT_ALLOWED_DIRS = "docs,reports,data"
DEFAULT_TIMEOUT_MS = 60_000
DEFAULT_MAX_PAYLOAD_BYTES = 2 * 1024 * 1024


def _split_dirs(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


class Settings(BaseModel):
    """Everything the router needs at startup."""

    model_config = ConfigDict(frozen=True)

    allowed_dirs: tuple[str, ...] = Field(default=_split_dirs(DEFAULT_ALLOWED_DIRS))
    working_root: str = Field(default_factory=os.getcwd)
    docs_dir: str = "docs"
    reports_dir: str = "reports"
    db_path: str = "./data/app.db"
    llama_bin: str = "llama-cli"
    llama_model: str | None = None
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_MS / 1000, gt=0)
    max_payload_bytes: int = Field(default=DEFAULT_MAX_PAYLOAD_BYTES, gt=0)
    log_level: str = "WARNING"

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        # getLevelName maps known names to ints and echoes "Level X" otherwise.
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {value!r}")
        return level

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        allowed = os.getenv("ALLOWED_DIRS") or os.getenv("MCP_ALLOWED_DIRS") or DEFAULT_ALLOWED_DIRS
        dirs = _split_dirs(allowed)
        if not dirs:
            raise ConfigError("ALLOWED_DIRS must name at least one directory")

        try:
            return cls(
                allowed_dirs=dirs,
                working_root=os.getenv("WORKING_ROOT") or os.getcwd(),
                docs_dir=os.getenv("DOCS_DIR", "docs"),
                reports_dir=os.getenv("REPORTS_DIR", "reports"),
                db_path=os.getenv("DB_PATH", "./data/app.db"),
                llama_bin=os.getenv("LLAMA_BIN", "llama-cli"),
                llama_model=os.getenv("LLAMA_MODEL") or None,
                timeout_seconds=_int_env("LLAMA_TIMEOUT_MS", DEFAULT_TIMEOUT_MS) / 1000,
                max_payload_bytes=_int_env("MAX_PAYLOAD_BYTES", DEFAULT_MAX_PAYLOAD_BYTES),
                log_level=os.getenv("LOG_LEVEL", "WARNING").upper(),
            )
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc

    def resolve(self, path: str) -> str:
        """Absolute form of a configured path, relative to the working root."""
        return os.path.normpath(os.path.join(self.working_root, path))
