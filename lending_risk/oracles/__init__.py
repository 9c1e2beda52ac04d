"""Price oracle modules."""
from .cache import PriceCache
from .client import PriceOracleClient

__all__ = ["PriceCache", "PriceOracleClient"]
