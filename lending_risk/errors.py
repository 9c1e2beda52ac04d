"""Error taxonomy for the risk engine.

Four families, each with a different caller reaction:

* ``ValidationError`` — bad input, rejected immediately, never retried.
* ``OracleError`` — price data problems, drive the oracle fallback chain.
* ``SafetyError`` — operation would break a safety bound, always rejected.
* ``InfrastructureError`` — chain/persistence failures, retried by the caller.
"""
from __future__ import annotations

from typing import Any


class RiskEngineError(Exception):
    """Base class for every error raised by the engine."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.details = details


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(RiskEngineError):
    code = "VALIDATION_ERROR"


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"


class InvalidAddress(ValidationError):
    code = "INVALID_ADDRESS"


class UnsupportedAsset(ValidationError):
    code = "UNSUPPORTED_ASSET"


class PoolNotFound(ValidationError):
    code = "INVALID_POOL"


class PoolNotActive(ValidationError):
    code = "POOL_NOT_ACTIVE"


# ---------------------------------------------------------------------------
# Oracle
# ---------------------------------------------------------------------------


class OracleError(RiskEngineError):
    code = "ORACLE_UNAVAILABLE"


class ZeroPrice(OracleError):
    code = "ZERO_PRICE"


class StalePrice(OracleError):
    code = "STALE_PRICE"


class NetworkTimeout(StalePrice):
    code = "NETWORK_TIMEOUT"


class InsufficientSources(OracleError):
    code = "INSUFFICIENT_SOURCES"


class OracleUnavailable(OracleError):
    code = "ORACLE_UNAVAILABLE"


class MissingPrice(OracleError):
    code = "MISSING_PRICE"


# ---------------------------------------------------------------------------
# Safety
# ---------------------------------------------------------------------------


class SafetyError(RiskEngineError):
    code = "SAFETY_VIOLATION"


class LTVExceeded(SafetyError):
    code = "LTV_EXCEEDED"


class InsufficientLiquidity(SafetyError):
    code = "INSUFFICIENT_LIQUIDITY"


class InsufficientCollateral(SafetyError):
    code = "INSUFFICIENT_COLLATERAL"


class HealthFactorBelowOne(SafetyError):
    code = "HEALTH_FACTOR_TOO_LOW"


class PositionNotLiquidatable(SafetyError):
    code = "POSITION_NOT_LIQUIDATABLE"


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


class InfrastructureError(RiskEngineError):
    code = "INFRASTRUCTURE_ERROR"


class ChainReadError(InfrastructureError):
    code = "STARKNET_RPC_ERROR"


class PersistenceError(InfrastructureError):
    code = "DATABASE_ERROR"


def is_retryable(error: BaseException) -> bool:
    """True when the failure is transient and the caller may try again later."""
    return isinstance(error, (OracleError, InfrastructureError))
