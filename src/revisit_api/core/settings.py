from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./revisit.db"
    database_echo: bool = False
    log_level: str = "INFO"

    # Upstream request scoping (slug resolution + auth happen before the API)
    tenant_header: str = "X-Restaurant-Id"
    staff_header: str = "X-Staff-User"

    # Card numbers
    card_sequence_ceiling: int = 9999

    # Point of sale
    max_sale_amount: Decimal = Decimal("99999.99")
    card_history_limit: int = 10

    # Rank display defaults
    default_rank_name: str = "Bronze"
    no_rank_name: str = "Sem nível"

    # Point expiration sweep
    point_expiration_enabled: bool = True

    # Observability snapshot guard
    observability_api_key: str = ""

    @field_validator("card_sequence_ceiling")
    @classmethod
    def _bound_ceiling(cls, value: int) -> int:
        # The printed card body has four digits.
        if value < 1 or value > 9999:
            raise ValueError("card_sequence_ceiling must be between 1 and 9999")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
