"""Application settings via pydantic-settings. Loads from environment and .env file."""

from __future__ import annotations

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Roundhouse engine configuration.

    All values can be overridden via environment variables or .env file.
    """

    # Environment
    roundhouse_env: str = "development"

    # Logging
    roundhouse_log_level: str = "INFO"

    # Clock
    roundhouse_auto_tick: bool = True
    roundhouse_tick_seconds: float = 1.0

    # Balance authority
    roundhouse_ledger_url: str = ""  # empty -> in-memory authority
    roundhouse_ledger_token: str = ""
    roundhouse_ledger_timeout_seconds: float = 5.0
    roundhouse_credit_retries: int = 1
    roundhouse_credit_retry_delay_seconds: float = 0.5
    roundhouse_starting_balance: int = 10_000  # in-memory authority only

    # Games
    roundhouse_enabled_games: str = ""  # comma list; empty = whole catalog
    roundhouse_history_size: int = 30
    roundhouse_big_win_threshold: int = 10_000
    roundhouse_auction_bot_enabled: bool = True

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    @model_validator(mode="after")
    def _require_ledger_in_production(self) -> Settings:
        """Production money must go through a real balance authority."""
        if self.roundhouse_env == "production" and not self.roundhouse_ledger_url:
            msg = "ROUNDHOUSE_LEDGER_URL must be set in production."
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def _check_ranges(self) -> Settings:
        if self.roundhouse_credit_retries < 1:
            msg = "ROUNDHOUSE_CREDIT_RETRIES must be at least 1"
            raise ValueError(msg)
        if self.roundhouse_tick_seconds <= 0:
            msg = "ROUNDHOUSE_TICK_SECONDS must be positive"
            raise ValueError(msg)
        if self.roundhouse_ledger_timeout_seconds <= 0:
            msg = "ROUNDHOUSE_LEDGER_TIMEOUT_SECONDS must be positive"
            raise ValueError(msg)
        if self.roundhouse_history_size < 1:
            msg = "ROUNDHOUSE_HISTORY_SIZE must be at least 1"
            raise ValueError(msg)
        return self

    @property
    def uses_remote_ledger(self) -> bool:
        return bool(self.roundhouse_ledger_url)
