"""Client settings and configuration."""

import json
import logging
import sys
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Largest integer a double represents exactly
MAX_SAFE_INTEGER = 2**53 - 1


class Settings(BaseSettings):
    """Client settings loaded from DATALITH_* environment variables."""
    
    model_config = SettingsConfigDict(
        env_prefix="DATALITH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )
    
    # Store Configuration
    api_prefix: str = Field(
        default="http://127.0.0.1:1111",
        description="Base URL of the Datalith store"
    )
    
    # Timeout Configuration (milliseconds)
    request_timeout: int = Field(
        default=0,
        ge=0,
        le=MAX_SAFE_INTEGER,
        description="Total timeout of one request in milliseconds (0 for no limit)"
    )
    idle_timeout: int = Field(
        default=30000,
        ge=0,
        le=MAX_SAFE_INTEGER,
        description="Maximum silence between body chunks in milliseconds (0 to disable)"
    )
    
    # Upload Configuration
    upload_chunk_size: int = Field(
        default=64 * 1024,
        gt=0,
        description="Chunk size in bytes when uploading from file objects"
    )
    
    @field_validator("api_prefix")
    @classmethod
    def validate_api_prefix(cls, v: str) -> str:
        """Ensure the store URL is absolute HTTP(S)."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("api_prefix must start with http:// or https://")
        return v
    
    # Logging Configuration
    debug: bool = Field(
        default=False,
        description="Enable debug logging for the client"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level"
    )
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )
    log_file: Optional[Path] = Field(
        default=None,
        description="Path to log file (if None, logs to stdout only)"
    )
    
    @property
    def log_level_numeric(self) -> int:
        """Get numeric log level."""
        return getattr(logging, self.log_level)
    
    def _log_handlers(self) -> list[logging.Handler]:
        handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.log_file))
        return handlers
    
    def configure_logging(self) -> None:
        """Install stdout (and optional file) logging for an application using the client.
        
        The client never calls this itself.
        """
        formatter = JSONFormatter() if self.log_json else logging.Formatter(self.log_format)
        handlers = self._log_handlers()
        for handler in handlers:
            handler.setFormatter(formatter)
        
        logging.basicConfig(level=self.log_level_numeric, handlers=handlers, force=True)
        
        if self.debug:
            logging.getLogger("datalith").setLevel(logging.DEBUG)
        else:
            # httpx logs every request at INFO
            for name in ("httpx", "httpcore"):
                logging.getLogger(name).setLevel(logging.WARNING)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""
    
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


@lru_cache
def get_settings() -> Settings:
    """Get cached client settings."""
    return Settings()
