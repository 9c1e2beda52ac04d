"""Service modules."""
from .liquidation_scanner import LiquidationScanner
from .monitor import CycleResult, MonitorStats, PositionCheck, PositionMonitor
from .pool_registry import PoolRegistry

__all__ = [
    "CycleResult",
    "LiquidationScanner",
    "MonitorStats",
    "PoolRegistry",
    "PositionCheck",
    "PositionMonitor",
]
