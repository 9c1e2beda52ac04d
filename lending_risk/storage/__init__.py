"""Position persistence."""
from .yaml_store import YamlPositionStore

__all__ = ["YamlPositionStore"]
