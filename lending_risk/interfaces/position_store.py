"""Position store protocol — persistence collaborator."""
from typing import Protocol

from ..models import Position


class PositionStore(Protocol):
    """Loads and saves positions; reads may be eventually consistent."""

    async def load_active_positions(self) -> list[Position]: ...

    async def save_position(self, position: Position) -> None: ...
