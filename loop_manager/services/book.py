"""Position storage addressed by a stable identifier."""
from __future__ import annotations

from ..errors import PositionNotFound
from ..models import Position


class PositionBook:
    """In-memory position records. Listing by owner is left to indexers."""

    def __init__(self) -> None:
        self._positions: dict[str, Position] = {}

    def get(self, position_id: str) -> Position:
        try:
            return self._positions[position_id]
        except KeyError:
            raise PositionNotFound(f"No position {position_id}") from None

    def put(self, position: Position) -> None:
        self._positions[position.position_id] = position

    def __contains__(self, position_id: object) -> bool:
        return position_id in self._positions

    def __len__(self) -> int:
        return len(self._positions)
