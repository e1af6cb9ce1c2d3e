from scooops.pricing.catalog import DEFAULT_RATE_TABLE, catalog_payload
from scooops.pricing.quote_engine import QuoteEngine, round_cents

__all__ = ["QuoteEngine", "DEFAULT_RATE_TABLE", "catalog_payload", "round_cents"]
