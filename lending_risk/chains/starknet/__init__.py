"""Starknet chain adapter."""
from .client import StarknetClient, get_selector_from_name
from .reader import StarknetChainReader

__all__ = ["StarknetChainReader", "StarknetClient", "get_selector_from_name"]
