"""
Telephony control configuration.

Connection settings for the live-state interface of the telephony server
(Asterisk REST Interface) and the polling cadence of operator sessions.
"""

from dataclasses import dataclass
from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderType(str, Enum):
    """Supported telephony control backends."""

    ARI = "ari"
    MOCK = "mock"


class TelephonyConfig(BaseSettings):
    """Telephony control configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="TELEPHONY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Backend selection
    provider_type: ProviderType = Field(default=ProviderType.ARI)

    # ARI connection
    ari_base_url: str = Field(default="http://localhost:8088/ari")
    ari_username: str = Field(default="")
    ari_password: str = Field(default="")

    # Endpoint technology used to address operator extensions (PJSIP/101)
    endpoint_technology: str = Field(default="PJSIP")

    # Timeouts / cadence
    request_timeout_seconds: float = Field(default=5.0, gt=0, le=60)
    poll_interval_seconds: float = Field(default=3.0, ge=1, le=60)
    poll_timeout_seconds: float = Field(
        default=4.0,
        gt=0,
        le=60,
        description="Upper bound for one poll (endpoint + channel lookups).",
    )

    def get_api_url(self, path: str) -> str:
        base = self.ari_base_url.rstrip("/")
        return f"{base}/{path.lstrip('/')}"


def get_telephony_config() -> TelephonyConfig:
    return TelephonyConfig()


@dataclass(frozen=True)
class ProviderConfig:
    """ProviderConfig entity (in-memory representation).

    Connection settings as stored by the administration console.
    """

    provider_type: ProviderType = ProviderType.ARI
    ari_base_url: str = "http://localhost:8088/ari"
    ari_username: str = ""
    ari_password: str = ""
    endpoint_technology: str = "PJSIP"
    request_timeout_seconds: float = 5.0
    poll_interval_seconds: float = 3.0
    poll_timeout_seconds: float = 4.0


def config_from_provider_config(entity: ProviderConfig) -> TelephonyConfig:
    """Build TelephonyConfig from a ProviderConfig entity."""
    return TelephonyConfig(
        provider_type=entity.provider_type,
        ari_base_url=entity.ari_base_url,
        ari_username=entity.ari_username,
        ari_password=entity.ari_password,
        endpoint_technology=entity.endpoint_technology,
        request_timeout_seconds=entity.request_timeout_seconds,
        poll_interval_seconds=entity.poll_interval_seconds,
        poll_timeout_seconds=entity.poll_timeout_seconds,
    )
