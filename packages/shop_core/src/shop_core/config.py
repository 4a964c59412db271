"""
Foundation settings for the shop platform.
"""

from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ShopSettings(BaseSettings):
    """
    Core settings shared by the data layer, the demodata service and the CLI.
    Plugins that need their own options should inherit from this.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    # --- Basic Environment ---
    DEBUG: bool = True
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # --- Database Core ---
    DATABASE_URL: str = "sqlite+aiosqlite:///shop.db"
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # --- Languages ---
    # Locale codes seeded by `database:init` and used for demo translations
    DEFAULT_LOCALE: str = "en-GB"
    SYSTEM_LOCALES: list[str] = ["en-GB", "de-DE"]

    # --- Demodata ---
    DEMODATA_SEED: int | None = None

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = None

    @model_validator(mode="after")
    def validate_locales(self) -> "ShopSettings":
        """Ensures the default locale is one of the installed locales."""
        if self.DEFAULT_LOCALE not in self.SYSTEM_LOCALES:
            raise ValueError("DEFAULT_LOCALE must be one of SYSTEM_LOCALES.")
        return self

    def is_development(self) -> bool:
        return self.DEBUG or self.ENVIRONMENT == "development"

    def engine_options(self) -> dict[str, object]:
        """Keyword arguments for ``shop_dal.init_db``."""
        return {
            "echo": self.DB_ECHO,
            "pool_size": self.DB_POOL_SIZE,
            "max_overflow": self.DB_MAX_OVERFLOW,
        }


# Singleton instance for core use
shop_settings = ShopSettings()
