"""
Centralized configuration with environment variable overrides.

Secrets, price identifiers and business settings are read from the
environment (a local ``.env`` is loaded first). The rate table is part of
the configuration tree so callers can inject alternate pricing.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from scooops.pricing.catalog import DEFAULT_RATE_TABLE
from scooops.schemas.pricing_schema import RateTable

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _csv(env_var: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(env_var, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


# Catalog id -> env var holding the Stripe price id for it.
PRICE_ENV_VARS: dict[str, str] = {
    "sidekick": "STRIPE_PRICE_SIDEKICK",
    "hero": "STRIPE_PRICE_HERO",
    "super-scooper": "STRIPE_PRICE_SUPER_SCOOOPER",
    "3x-weekly": "STRIPE_PRICE_3X_WEEKLY",
    "2x-weekly": "STRIPE_PRICE_2X_WEEKLY",
    "weekly": "STRIPE_PRICE_WEEKLY",
    "bi-weekly": "STRIPE_PRICE_BI_WEEKLY",
    "monthly": "STRIPE_PRICE_MONTHLY",
    "extra-dog": "STRIPE_PRICE_EXTRA_DOG",
    "3x-weekly-deodorizer": "STRIPE_PRICE_DEODORIZER_3X",
    "2x-weekly-deodorizer": "STRIPE_PRICE_DEODORIZER_2X",
    "weekly-deodorizer": "STRIPE_PRICE_DEODORIZER_1X",
    "bi-weekly-deodorizer": "STRIPE_PRICE_DEODORIZER_BI_WEEKLY",
    "monthly-deodorizer": "STRIPE_PRICE_DEODORIZER_MONTHLY",
}


def _price_ids_from_env() -> dict[str, str]:
    return {
        catalog_id: os.environ[env_var]
        for catalog_id, env_var in PRICE_ENV_VARS.items()
        if os.getenv(env_var)
    }


@dataclass(frozen=True)
class BusinessConfig:
    """Business-facing settings used in messages and redirects."""

    name: str = os.getenv("BUSINESS_NAME", "Super Scooops")
    site_url: str = os.getenv("SITE_URL", os.getenv("URL", "https://superscooops.com"))
    support_email: str = os.getenv("SUPPORT_EMAIL", "support@superscooops.com")
    support_phone: str = os.getenv("SUPPORT_PHONE", "(949) 555-0142")
    max_dogs: int = _safe_int("MAX_DOGS", "5")
    success_redirect_delay_sec: float = _safe_float("SUCCESS_REDIRECT_DELAY", "3.0")


@dataclass(frozen=True)
class StripeConfig:
    """Payment processor credentials and price identifiers."""

    secret_key: str = os.getenv("STRIPE_SECRET_KEY", "")
    publishable_key: str = os.getenv("STRIPE_PUBLISHABLE_KEY", "")
    api_base: str = os.getenv("STRIPE_API_BASE", "https://api.stripe.com")
    promotion_code: str = os.getenv("STRIPE_PROMO_FREE_FIRST_CLEANUP", "")
    timeout_sec: float = _safe_float("STRIPE_TIMEOUT", "15.0")
    price_ids: dict[str, str] = field(default_factory=_price_ids_from_env)


@dataclass(frozen=True)
class CrmConfig:
    """Sweep&GO open API settings."""

    api_key: str = os.getenv("SWEEP_AND_GO_API_KEY", "")
    org_slug: str = os.getenv("SWEEP_AND_GO_ORG_SLUG", "super-scooops-qhnjn")
    api_base: str = os.getenv("SWEEP_AND_GO_API_BASE", "https://openapi.sweepandgo.com")
    webhook_secret: str = os.getenv("SWEEP_AND_GO_WEBHOOK_SECRET", "")
    timeout_sec: float = _safe_float("SWEEP_AND_GO_TIMEOUT", "15.0")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    business: BusinessConfig = field(default_factory=BusinessConfig)
    stripe: StripeConfig = field(default_factory=StripeConfig)
    crm: CrmConfig = field(default_factory=CrmConfig)
    pricing: RateTable = DEFAULT_RATE_TABLE
    host: str = os.getenv("HOST", "127.0.0.1")
    port: int = _safe_int("PORT", "8888")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    cors_origins: tuple[str, ...] = _csv("CORS_ORIGINS", "*")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.business.max_dogs < 1:
        raise ValueError(f"MAX_DOGS must be >= 1, got {config.business.max_dogs}")
    if config.business.success_redirect_delay_sec < 0:
        raise ValueError(
            "SUCCESS_REDIRECT_DELAY must be >= 0, "
            f"got {config.business.success_redirect_delay_sec}"
        )
    if not config.business.site_url.startswith(("http://", "https://")):
        raise ValueError(f"SITE_URL must be an http(s) URL, got {config.business.site_url!r}")

    for timeout_name, timeout_value in [
        ("STRIPE_TIMEOUT", config.stripe.timeout_sec),
        ("SWEEP_AND_GO_TIMEOUT", config.crm.timeout_sec),
    ]:
        if timeout_value <= 0:
            raise ValueError(f"{timeout_name} must be > 0, got {timeout_value}")

    if not 0 < config.port < 65536:
        raise ValueError(f"PORT must be between 1 and 65535, got {config.port}")

    config.pricing.validate()


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.business.name)
    return config
