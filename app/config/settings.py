"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from decimal import Decimal

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Exchange (Binance custodial account)
    binance_api_key: str | None = None
    binance_api_secret: str | None = None
    binance_api_url: str = "https://api.binance.com"
    exchange_request_timeout: float = Field(
        default=15.0, gt=0, description="Timeout for a single exchange call in seconds"
    )
    deposit_coin: str = "USDT"
    deposit_network: str = "TRX"  # TRC20
    fallback_deposit_address: str | None = Field(
        default=None,
        description="Static deposit address used when the exchange cannot return one",
    )

    # Settlement loop
    deposit_poll_interval_seconds: int = Field(
        default=120, ge=1, description="Deposit polling interval in seconds"
    )
    deposit_lookback_minutes: int = Field(
        default=10, ge=1, description="How far back each poll asks for deposits"
    )
    deposit_intent_ttl_minutes: int = Field(
        default=30, ge=1, description="Lifetime of a deposit intent"
    )
    deposit_amount_floor: Decimal = Field(
        default=Decimal("3"),
        ge=0,
        description="Integer part of generated amounts when no plan price is given",
    )
    withdrawal_reconcile_after_minutes: int = Field(
        default=15,
        ge=1,
        description="Age after which an unresolved withdrawal submission is reconciled",
    )
    withdrawal_sync_interval_seconds: int = Field(
        default=300, ge=10, description="Exchange withdrawal status sync interval"
    )

    # Notifications
    telegram_bot_token: str | None = None
    admin_telegram_ids: str = ""  # Comma-separated list
    notification_timeout: float = Field(default=10.0, gt=0)
    notification_queue_enabled: bool = Field(
        default=False,
        description="Deliver notifications through the Dramatiq queue with retries",
    )

    # Redis (for Dramatiq)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str = "logs/rewards.log"
    health_check_port: int = Field(
        default=8081, ge=1, le=65535, description="Health check HTTP server port"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode='after')
    def validate_lookback_window(self) -> 'Settings':
        """The lookback window must overlap consecutive polls."""
        if self.deposit_lookback_minutes * 60 <= self.deposit_poll_interval_seconds:
            raise ValueError(
                'DEPOSIT_LOOKBACK_MINUTES must cover more than one poll interval '
                f'({self.deposit_poll_interval_seconds}s), otherwise deposits '
                'arriving between polls are never seen.'
            )
        return self

    @model_validator(mode='after')
    def validate_production(self) -> 'Settings':
        """Validate production-specific requirements."""
        if self.environment == 'production':
            if self.debug:
                raise ValueError(
                    'DEBUG must be False in production environment. '
                    'Set DEBUG=false in your .env file.'
                )

            if not self.binance_api_key or not self.binance_api_secret:
                raise ValueError(
                    'BINANCE_API_KEY and BINANCE_API_SECRET are required in '
                    'production. Deposit polling cannot run without them.'
                )

            if not self.fallback_deposit_address:
                logger.warning(
                    'FALLBACK_DEPOSIT_ADDRESS is not set. Deposit intents will '
                    'be created without an address if the exchange is unreachable.'
                )

        return self

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        # sqlite+aiosqlite is used by the test-suite
        if not v.startswith(
            ('postgresql://', 'postgresql+asyncpg://', 'sqlite+aiosqlite://')
        ):
            raise ValueError(
                'DATABASE_URL must start with postgresql:// or postgresql+asyncpg://'
            )
        return v

    @field_validator('deposit_network')
    @classmethod
    def validate_deposit_network(cls, v: str) -> str:
        """Normalize network code to the exchange's upper-case form."""
        return v.strip().upper()

    def get_admin_ids(self) -> list[int]:
        """Parse admin IDs from comma-separated string with error handling."""
        if not self.admin_telegram_ids:
            return []

        result = []
        for id_ in self.admin_telegram_ids.split(","):
            id_stripped = id_.strip()
            if not id_stripped:
                continue
            try:
                result.append(int(id_stripped))
            except ValueError:
                logger.warning(f"Invalid admin ID: {id_stripped}")
                continue
        return result

    @property
    def exchange_enabled(self) -> bool:
        """True when exchange credentials are configured."""
        return bool(self.binance_api_key and self.binance_api_secret)


# Global settings instance
settings = Settings()
