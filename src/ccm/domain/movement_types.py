from __future__ import annotations

from typing import Optional

from .models import Direction


# Synonymous spellings a backend `move_type` constraint may accept, in the order they are tried.
INCREASE_LABELS: tuple[str, ...] = ("IN", "ENTRADA", "INPUT", "INBOUND", "ENTRY")
DECREASE_LABELS: tuple[str, ...] = ("OUT", "SAIDA", "OUTPUT", "OUTBOUND", "EXIT")

CANDIDATES: dict[Direction, tuple[str, ...]] = {
    Direction.INCREASE: INCREASE_LABELS,
    Direction.DECREASE: DECREASE_LABELS,
}


def candidates_for(direction: Direction) -> tuple[str, ...]:
    return CANDIDATES[Direction(direction)]


def direction_of(label: object) -> Optional[Direction]:
    value = str(label or "").strip().upper()
    if value in INCREASE_LABELS:
        return Direction.INCREASE
    if value in DECREASE_LABELS:
        return Direction.DECREASE
    return None


def signed_qty(label: object, qty: int) -> int:
    """Quantity as it counts toward the balance; 0 for labels with unknown direction."""
    direction = direction_of(label)
    if direction is Direction.INCREASE:
        return abs(int(qty))
    if direction is Direction.DECREASE:
        return -abs(int(qty))
    return 0
