"""Configuration surface for the Rain issuing integration."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import RAIN_PUBLIC_KEY_PEM, Chains, ContractPolling, IssuerDefaults
from .exceptions import ConfigurationError


class RainSettings(BaseSettings):
    """Settings resolved once at process start from RAIN_* env vars."""

    model_config = SettingsConfigDict(
        env_prefix="RAIN_",
        env_file=".env",
        extra="ignore",
    )

    # Credentials; a missing key only fails at first use
    api_key: str = ""
    api_base_url: str = IssuerDefaults.API_BASE_URL
    timeout_seconds: float = IssuerDefaults.TIMEOUT_SECONDS

    # Provisioning defaults
    default_chain_id: int = Chains.BASE_SEPOLIA_CHAIN_ID
    card_limit_amount: int = IssuerDefaults.CARD_LIMIT_AMOUNT
    card_list_limit: int = IssuerDefaults.CARD_LIST_LIMIT
    contract_poll_retries: int = Field(default=ContractPolling.MAX_RETRIES, ge=0)
    contract_poll_base_delay: float = Field(default=ContractPolling.BASE_DELAY, ge=0)

    # Issuer key for the secrets handshake
    public_key_pem: str = RAIN_PUBLIC_KEY_PEM

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("api_key", mode="before")
    @classmethod
    def strip_api_key(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("public_key_pem", mode="before")
    @classmethod
    def unescape_pem(cls, v):
        """Accept PEMs pasted into env files with literal \\n sequences."""
        if isinstance(v, str) and "\\n" in v:
            return v.replace("\\n", "\n")
        return v

    def require_api_key(self) -> str:
        """Return the API key, failing loudly if it was never configured."""
        if not self.api_key:
            raise ConfigurationError(
                "RAIN_API_KEY environment variable is required",
                setting="RAIN_API_KEY",
            )
        return self.api_key


@lru_cache
def get_settings(env_file: str | None = None) -> RainSettings:
    """Load RainSettings once per process to keep callers consistent."""
    env_path = Path(env_file) if env_file else None
    return RainSettings(_env_file=env_path)


__all__ = ["RainSettings", "get_settings"]
