"""Protocol interfaces for the risk engine's collaborators."""
from .chain import OracleReader, PoolReader, VaultReader
from .notifier import Notifier
from .position_store import PositionStore
from .price_oracle import PriceSource

__all__ = [
    "Notifier",
    "OracleReader",
    "PoolReader",
    "PositionStore",
    "PriceSource",
    "VaultReader",
]
