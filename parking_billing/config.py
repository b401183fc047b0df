# File: parking_billing/config.py
"""
Configuration and logging setup for Parking Billing

Settings come from PARKING_* environment variables with safe defaults,
so tests and local runs need no configuration at all.
"""

from dataclasses import dataclass
from datetime import tzinfo
from typing import Optional, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging
import os
import sys


@dataclass(frozen=True)
class BillingSettings:
    """Application settings"""
    database_url: str = "sqlite:///parking_billing.db"
    redis_url: Optional[str] = None
    timezone: Optional[str] = None       # IANA name, None = system local zone
    currency: str = "IDR"
    rate_cache_ttl_seconds: int = 300
    log_level: str = "INFO"
    log_dir: str = "logs"

    def __post_init__(self):
        if len(self.currency) != 3:
            raise ValueError(f"Currency must be 3-letter code: {self.currency}")
        if self.rate_cache_ttl_seconds <= 0:
            raise ValueError("Rate cache TTL must be positive")
        if self.timezone:
            # Unknown zone names raise here
            self.get_timezone()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'BillingSettings':
        """Build settings from PARKING_* environment variables"""
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            database_url=env.get("PARKING_DATABASE_URL", defaults.database_url),
            redis_url=env.get("PARKING_REDIS_URL") or None,
            timezone=env.get("PARKING_TIMEZONE") or None,
            currency=env.get("PARKING_CURRENCY", defaults.currency).upper(),
            rate_cache_ttl_seconds=int(env.get("PARKING_RATE_CACHE_TTL", defaults.rate_cache_ttl_seconds)),
            log_level=env.get("PARKING_LOG_LEVEL", defaults.log_level).upper(),
            log_dir=env.get("PARKING_LOG_DIR", defaults.log_dir)
        )

    def get_timezone(self) -> Optional[tzinfo]:
        """Resolve the deployment timezone (None means system local)"""
        if not self.timezone:
            return None
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {self.timezone}")


def setup_logging(settings: Optional[BillingSettings] = None) -> logging.Logger:
    """Setup application logging configuration"""
    settings = settings or BillingSettings.from_env()
    if not os.path.exists(settings.log_dir):
        os.makedirs(settings.log_dir)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(os.path.join(settings.log_dir, 'parking_billing.log')),
            logging.StreamHandler(sys.stdout)
        ]
    )
    return logging.getLogger("parking_billing")
