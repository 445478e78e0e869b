"""
Configuration management for df-minter.

Loads settings from the environment (prefix DF_MINTER_) and an optional .env
file via pydantic-settings. Settings are resolved once at startup and passed
explicitly to the minting pipeline.
"""
import logging
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from df_minter.exceptions import ConfigurationError
from df_minter.models import Network

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Networks ────────────────────────────────────────────────────
    ic_url: str = "https://ic0.app"
    local_url: str = "http://localhost:8000"
    request_timeout_seconds: float = 30.0

    # ── Identity ────────────────────────────────────────────────────
    # Defaults to ~/.config/dfx when unset
    dfx_config_dir: Optional[Path] = None

    # ── Finality Polling ────────────────────────────────────────────
    poll_throttle_seconds: float = 0.5
    poll_timeout_seconds: float = 300.0
    poll_backoff_factor: float = 1.5
    poll_max_delay_seconds: float = 5.0

    # ── Logging ─────────────────────────────────────────────────────
    log_level: str = "WARNING"

    model_config = SettingsConfigDict(
        env_prefix="DF_MINTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def network_url(self, network: Network) -> str:
        """Replica URL for the given network."""
        if network == Network.LOCAL:
            return self.local_url
        return self.ic_url

    def dfx_config_path(self) -> Path:
        """
        Resolve the dfx configuration directory.

        Raises:
            ConfigurationError if no override is set and the home directory
            cannot be determined.
        """
        if self.dfx_config_dir is not None:
            return self.dfx_config_dir
        try:
            home = Path.home()
        except RuntimeError as e:
            raise ConfigurationError(f"could not determine the home directory ({e})") from e
        return home / ".config" / "dfx"

    def validate_polling(self):
        """Reject polling parameters the finality waiter cannot honour."""
        if self.poll_throttle_seconds <= 0:
            raise ValueError("POLL_THROTTLE_SECONDS must be positive")
        if self.poll_timeout_seconds < self.poll_throttle_seconds:
            raise ValueError("POLL_TIMEOUT_SECONDS must be at least POLL_THROTTLE_SECONDS")
        if self.poll_backoff_factor < 1.0:
            raise ValueError("POLL_BACKOFF_FACTOR must be >= 1.0")
        if self.poll_max_delay_seconds < self.poll_throttle_seconds:
            raise ValueError("POLL_MAX_DELAY_SECONDS must be at least POLL_THROTTLE_SECONDS")
        logger.debug(
            f"Polling: throttle={self.poll_throttle_seconds}s "
            f"timeout={self.poll_timeout_seconds}s backoff={self.poll_backoff_factor}"
        )


# Global settings instance
settings = Settings()
