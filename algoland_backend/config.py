"""
Configuration
=============
Environment-driven settings plus the static campaign tables
(weeks, badge assets, distributor allowlists).
"""

import json

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ── Campaign constants ─────────────────────────────────────────────
TOTAL_WEEKS = 13
DEFAULT_APP_ID = 3215540125
DEFAULT_DISTRIBUTOR = "HHADCZKQV24QDCBER5GTOH7BOLF4ZQ6WICNHAA3GZUECIMJXIIMYBIWEZM"

# week -> completion badge asset (None until the week is announced)
WEEK_CONFIG = [
    {"week": 1, "assetId": 3215542832},
    {"week": 2, "assetId": 3215542840},
] + [{"week": week, "assetId": None} for week in range(3, TOTAL_WEEKS + 1)]


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Upstream
    indexer_base: str = "https://mainnet-idx.algonode.cloud"
    algod_base: str = "https://mainnet-api.algonode.cloud"
    algoland_app_id: int = DEFAULT_APP_ID
    draw_app_id: int | None = None

    # Caching / retries
    cache_ttl_seconds: int = 300
    indexer_max_retries: int = 5
    indexer_retry_base_ms: int = 500
    request_timeout_seconds: int = 30
    entrants_regression_window_seconds: int | None = None
    challenge_refresh_seconds: int = 600

    # HTTP surface
    allowed_origins: str = "https://emnetcm.com,https://www.emnetcm.com"  # Comma-separated list
    rate_limit_max: int = 60
    rate_limit_window: int = 60
    port: int = 3000

    # Distributor exclusions
    default_distributors: str = DEFAULT_DISTRIBUTOR  # Comma-separated list
    distributors_by_asset: str = ""  # JSON object: {"assetId": ["ADDR", ...]}

    # Static files
    prizes_file: str = "prizes.json"
    prize_metadata_file: str = "prize_metadata.json"

    @field_validator("indexer_base", "algod_base")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("cache_ttl_seconds", "indexer_max_retries", "challenge_refresh_seconds")
    @classmethod
    def must_be_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @property
    def origins(self) -> list[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def retry_base_delay(self) -> float:
        return self.indexer_retry_base_ms / 1000

    @property
    def aged_cache_max_age(self) -> int:
        """Holder and draw caches never go fresher than one minute."""
        return max(self.cache_ttl_seconds, 60)

    @property
    def regression_window(self) -> int:
        if self.entrants_regression_window_seconds is None:
            return self.cache_ttl_seconds
        return self.entrants_regression_window_seconds

    @property
    def distributor_allowlist(self) -> dict:
        defaults = [a.strip().upper() for a in self.default_distributors.split(",") if a.strip()]
        by_asset = {}
        if self.distributors_by_asset.strip():
            raw = json.loads(self.distributors_by_asset)
            for asset_id, addresses in raw.items():
                by_asset[str(asset_id)] = [str(a).strip().upper() for a in addresses if str(a).strip()]
        else:
            for entry in WEEK_CONFIG:
                if entry["assetId"]:
                    by_asset[str(entry["assetId"])] = list(defaults)
        return {"default": defaults, "byAsset": by_asset}


def allowlist_for_asset(allowlist, asset_id):
    """Distributor addresses excluded from an asset's holder set."""
    if not asset_id:
        return allowlist["default"]
    addresses = allowlist["byAsset"].get(str(asset_id))
    if addresses:
        return addresses
    return allowlist["default"]


def badge_asset_for_week(week):
    for entry in WEEK_CONFIG:
        if entry["week"] == week:
            return entry["assetId"]
    return None
