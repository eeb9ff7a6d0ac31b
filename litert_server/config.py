"""
Central configuration module for the LiteRT-LM API server.

This module manages all configuration settings including:
- Binary, model and backend selection
- API server and authentication settings
- Process limits (timeout, concurrency)
- Simulated streaming pacing
"""

import os
from dataclasses import asdict, dataclass, replace
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class Config:
    """Immutable server configuration, built once at startup."""

    # LiteRT-LM settings
    litert_binary: str = "./litert_lm_main"
    model_path: str = "gemma-3n-e4b-it-int4.litertlm"
    backend: str = "cpu"
    model_id: str = "litert-lm"

    # Security (None disables API key checks)
    api_key: Optional[str] = "sk-litert-demo-key"

    # API server settings
    api_host: str = "0.0.0.0"
    api_port: int = 3000

    # Logging
    debug: bool = False
    log_level: str = "INFO"

    # Process limits
    process_timeout: float = 300.0
    max_concurrent_processes: int = 1
    health_test_timeout: float = 5.0

    # Simulated streaming
    stream_chunk_size: int = 5
    stream_interval: float = 0.05

    @classmethod
    def from_env(cls) -> "Config":
        """
        Build a configuration from environment variables (and .env).

        Returns:
            Config populated from the environment, defaults elsewhere
        """
        debug = _env_bool("DEBUG")
        return cls(
            litert_binary=os.getenv("LITERT_BINARY", cls.litert_binary),
            model_path=os.getenv("MODEL_PATH", cls.model_path),
            backend=os.getenv("BACKEND", cls.backend).lower(),
            model_id=os.getenv("MODEL_ID", cls.model_id),
            api_key=os.getenv("API_KEY", cls.api_key) or None,
            api_host=os.getenv("API_HOST", cls.api_host),
            api_port=int(os.getenv("PORT", str(cls.api_port))),
            debug=debug,
            log_level=os.getenv("LOG_LEVEL", "DEBUG" if debug else cls.log_level).upper(),
            process_timeout=float(os.getenv("PROCESS_TIMEOUT", str(cls.process_timeout))),
            max_concurrent_processes=max(
                1, int(os.getenv("MAX_CONCURRENT_PROCESSES", str(cls.max_concurrent_processes)))
            ),
            stream_chunk_size=max(
                1, int(os.getenv("STREAM_CHUNK_SIZE", str(cls.stream_chunk_size)))
            ),
            stream_interval=float(os.getenv("STREAM_INTERVAL", str(cls.stream_interval))),
        )

    def with_overrides(self, **overrides) -> "Config":
        """Return a copy with the given fields replaced (None values are ignored)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def summary(self) -> dict:
        """
        Get a summary of current configuration.

        Returns:
            Dictionary with config values (API key masked)
        """
        values = asdict(self)
        values["api_key"] = "set" if self.api_key else None
        return values
