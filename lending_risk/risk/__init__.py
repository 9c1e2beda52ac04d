"""Pure risk computations."""
from .risk_math import RiskMath
from .safety import check_borrow, check_pool_invariants, check_withdraw
from .validation import validate_address, validate_amount

__all__ = [
    "RiskMath",
    "check_borrow",
    "check_pool_invariants",
    "check_withdraw",
    "validate_address",
    "validate_amount",
]
