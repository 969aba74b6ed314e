"""Configuration for the TDSP resolution engine."""

import os
from dataclasses import dataclass
from pathlib import Path


_ROOT = Path(__file__).parent.parent


def _env_bool(name: str, default: bool = False) -> bool:
    val = os.environ.get(name)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes")


@dataclass
class Config:
    # Address / utility registry (ERCOT ESIID lookup)
    esiid_api_url: str = "https://ercot.api.comparepower.com"
    esiid_api_key: str = ""

    # Plan pricing service (used only by the dynamic prober)
    pricing_api_url: str = "https://pricing.api.comparepower.com"
    pricing_api_key: str = ""

    user_agent: str = "ChooseMyPower.org/1.0"
    request_timeout: float = 10.0

    # Retry policy (applied to both upstream services)
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 4.0

    # Circuit breaker for the address registry
    circuit_breaker_threshold: int = 3
    circuit_breaker_reset_seconds: int = 300

    # Dynamic prober
    enable_dynamic_probe: bool = True
    probe_delay_seconds: float = 0.1

    default_usage: int = 1000

    # Cache
    cache_backend: str = "memory"  # "memory", "sqlite", or "none"
    cache_db: Path = _ROOT / "data" / "tdsp_cache.db"
    zip_cache_ttl: int = 1800  # 30 minutes
    address_cache_ttl: int = 3600  # 1 hour

    @classmethod
    def from_env(cls) -> "Config":
        """Build a config from environment variables, keeping defaults for anything unset."""
        cfg = cls()
        cfg.esiid_api_url = os.environ.get("ERCOT_API_URL", cfg.esiid_api_url)
        cfg.esiid_api_key = os.environ.get(
            "ERCOT_API_KEY", os.environ.get("COMPAREPOWER_API_KEY", cfg.esiid_api_key)
        )
        cfg.pricing_api_url = os.environ.get("COMPAREPOWER_API_URL", cfg.pricing_api_url)
        cfg.pricing_api_key = os.environ.get("COMPAREPOWER_API_KEY", cfg.pricing_api_key)
        cfg.cache_backend = os.environ.get("TDSP_CACHE_BACKEND", cfg.cache_backend).lower()
        if os.environ.get("TDSP_CACHE_DB"):
            cfg.cache_db = Path(os.environ["TDSP_CACHE_DB"])
        if os.environ.get("TDSP_REQUEST_TIMEOUT"):
            cfg.request_timeout = float(os.environ["TDSP_REQUEST_TIMEOUT"])
        if os.environ.get("TDSP_PROBE_DELAY"):
            cfg.probe_delay_seconds = float(os.environ["TDSP_PROBE_DELAY"])
        cfg.enable_dynamic_probe = not _env_bool("TDSP_DISABLE_PROBE")
        return cfg
