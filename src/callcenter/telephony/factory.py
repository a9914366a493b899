"""
Telephony control factory.

Single source of truth for configuration:
- use TelephonyConfig (Pydantic Settings) which loads from OS env + .env
- never read raw os.getenv("TELEPHONY_*") here
"""

from __future__ import annotations

from functools import lru_cache

from callcenter.shared.logging import get_logger
from callcenter.telephony.ari_adapter import AriTelephonyControl
from callcenter.telephony.config import ProviderType, TelephonyConfig
from callcenter.telephony.config import get_telephony_config as _load_telephony_config
from callcenter.telephony.interface import TelephonyControl
from callcenter.telephony.mock_adapter import MockTelephonyControl

logger = get_logger(__name__)


def _mask(s: str, keep: int = 2) -> str:
    if not s:
        return ""
    if len(s) <= keep:
        return "*" * len(s)
    return f"{s[:keep]}***"


@lru_cache(maxsize=1)
def get_telephony_config() -> TelephonyConfig:
    """Cached TelephonyConfig loaded from OS env + .env."""
    return _load_telephony_config()


def create_telephony_control(cfg: TelephonyConfig) -> TelephonyControl:
    logger.info(
        "Telephony config resolved",
        extra={
            "provider_type": cfg.provider_type.value,
            "ari_base_url": cfg.ari_base_url,
            "ari_username": _mask(cfg.ari_username),
            "endpoint_technology": cfg.endpoint_technology,
            "poll_interval_seconds": cfg.poll_interval_seconds,
            "poll_timeout_seconds": cfg.poll_timeout_seconds,
        },
    )

    if cfg.provider_type == ProviderType.ARI:
        return AriTelephonyControl(cfg)

    if cfg.provider_type == ProviderType.MOCK:
        return MockTelephonyControl(cfg.endpoint_technology)

    raise ValueError(f"Unsupported telephony provider_type: {cfg.provider_type}")


@lru_cache(maxsize=1)
def get_telephony_control() -> TelephonyControl:
    """Create and cache the telephony control using TelephonyConfig."""
    return create_telephony_control(get_telephony_config())
