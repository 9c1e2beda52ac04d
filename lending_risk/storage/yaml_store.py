"""YAML-file position store."""
from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any

import yaml

from ..errors import PersistenceError, RiskEngineError
from ..models import Position, PositionStatus

logger = logging.getLogger(__name__)


def _position_from_dict(raw: dict[str, Any]) -> Position:
    hf = raw.get("health_factor")
    return Position(
        id=str(raw["id"]),
        user_id=str(raw.get("user_id", "")),
        pool_address=str(raw["pool_address"]),
        collateral_asset=str(raw["collateral_asset"]).upper(),
        collateral_amount=str(raw.get("collateral_amount", "0")),
        debt_asset=str(raw["debt_asset"]).upper(),
        debt_amount=str(raw.get("debt_amount", "0")),
        health_factor=str(hf) if hf is not None else None,
        status=PositionStatus(raw.get("status", PositionStatus.ACTIVE.value)),
    )


def _position_to_dict(position: Position) -> dict[str, Any]:
    return {
        "id": position.id,
        "user_id": position.user_id,
        "pool_address": position.pool_address,
        "collateral_asset": position.collateral_asset,
        "collateral_amount": str(position.collateral_amount),
        "debt_asset": position.debt_asset,
        "debt_amount": str(position.debt_amount),
        "health_factor": (
            str(position.health_factor) if position.health_factor is not None else None
        ),
        "status": position.status.value,
    }


class YamlPositionStore:
    """Keep positions in a YAML file of the form ``positions: [...]``.

    Amounts are stored as strings so they round-trip without float loss.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        with open(self._path) as f:
            raw = yaml.safe_load(f) or {}
        entries = raw.get("positions", [])
        if not isinstance(entries, list):
            raise PersistenceError(
                f"Malformed positions file: {self._path}", path=str(self._path)
            )
        return entries

    def _write(self, entries: list[dict[str, Any]]) -> None:
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            yaml.safe_dump({"positions": entries}, f, sort_keys=False)
        os.replace(tmp_path, self._path)

    async def load_positions(self) -> list[Position]:
        async with self._lock:
            try:
                entries = await asyncio.to_thread(self._read)
                return [_position_from_dict(e) for e in entries]
            except RiskEngineError:
                raise
            except (OSError, yaml.YAMLError, KeyError, ValueError) as e:
                raise PersistenceError(
                    f"Failed to load positions from {self._path}: {e}",
                    path=str(self._path),
                ) from e

    async def load_active_positions(self) -> list[Position]:
        positions = await self.load_positions()
        active = [p for p in positions if p.is_active]
        logger.debug("Loaded %d active positions from %s", len(active), self._path)
        return active

    async def save_position(self, position: Position) -> None:
        async with self._lock:
            try:
                entries = await asyncio.to_thread(self._read)
                record = _position_to_dict(position)
                for i, entry in enumerate(entries):
                    if str(entry.get("id")) == position.id:
                        entries[i] = record
                        break
                else:
                    entries.append(record)
                await asyncio.to_thread(self._write, entries)
            except RiskEngineError:
                raise
            except (OSError, yaml.YAMLError) as e:
                raise PersistenceError(
                    f"Failed to save position {position.id}: {e}",
                    path=str(self._path),
                ) from e
