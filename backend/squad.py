"""
Fantasy squad operations on a single FantasyTeam.

Each operation checks every precondition before touching the team, so a failed
call leaves the squad, budget and captaincy exactly as they were. Persistence is
the caller's job (see services.fantasy_service).
"""
from __future__ import annotations

from collections import Counter
from datetime import datetime

from backend.errors import (
    DuplicatePlayerError,
    InsufficientBudgetError,
    PlayerNotFoundError,
    SquadFullError,
    ValidationError,
)
from backend.models import FantasyTeam, PlayerPosition, PlayerSelection, utcnow

MAX_SQUAD_SIZE = 15
MIN_SQUAD_SIZE = 11

# Advisory composition bounds (min, max) per position. Not enforced on write.
POSITION_LIMITS: dict[str, tuple[int, int]] = {
    PlayerPosition.GOALKEEPER.value: (1, 2),
    PlayerPosition.DEFENDER.value: (3, 5),
    PlayerPosition.MIDFIELDER.value: (3, 5),
    PlayerPosition.FORWARD.value: (1, 3),
}

_EPSILON = 1e-9


def _money(value: float) -> float:
    return round(value, 2)


def _rebalance(team: FantasyTeam) -> None:
    """Recompute total_value and remaining_budget from the selections."""
    team.total_value = _money(sum(p.purchase_price for p in team.players))
    team.remaining_budget = team.budget - team.total_value


def add_player(
    team: FantasyTeam,
    player_id: str,
    price: float,
    is_starting: bool = True,
    now: datetime | None = None,
) -> PlayerSelection:
    """Append a selection and charge its price to the budget."""
    if price is None or price < 0:
        raise ValidationError(["Purchase price cannot be negative"])
    price = _money(price)
    if len(team.players) >= MAX_SQUAD_SIZE:
        raise SquadFullError("Squad is full. Cannot add more players.")
    if price - team.remaining_budget > _EPSILON:
        raise InsufficientBudgetError("Insufficient budget to add this player.")
    if team.find_selection(player_id) is not None:
        raise DuplicatePlayerError("Player is already in the squad.")

    selection = PlayerSelection(
        player_id=player_id,
        purchase_price=price,
        is_starting=is_starting,
        added_at=now or utcnow(),
    )
    team.players.append(selection)
    _rebalance(team)
    return selection


def remove_player(team: FantasyTeam, player_id: str) -> PlayerSelection:
    """Remove a selection and refund its purchase price."""
    selection = team.find_selection(player_id)
    if selection is None:
        raise PlayerNotFoundError("Player not found in squad.")
    team.players.remove(selection)
    _rebalance(team)
    return selection


def set_captain(team: FantasyTeam, player_id: str) -> None:
    """
    Make player_id the only captain. The new captain loses vice-captaincy.
    Rejects ids not in the squad instead of leaving the team without a captain.
    """
    if team.find_selection(player_id) is None:
        raise PlayerNotFoundError("Player not found in squad.")
    for p in team.players:
        p.is_captain = p.player_id == player_id
        if p.is_captain:
            p.is_vice_captain = False


def set_vice_captain(team: FantasyTeam, player_id: str) -> None:
    """Make player_id the only vice-captain. The new vice-captain loses captaincy."""
    if team.find_selection(player_id) is None:
        raise PlayerNotFoundError("Player not found in squad.")
    for p in team.players:
        p.is_vice_captain = p.player_id == player_id
        if p.is_vice_captain:
            p.is_captain = False


def check_squad_composition(positions: list[str | None]) -> list[str]:
    """
    Advisory check of squad shape. positions holds one entry per selection.
    Returns every violated bound; an empty list means the squad is well-formed.
    """
    errors: list[str] = []
    size = len(positions)
    if not MIN_SQUAD_SIZE <= size <= MAX_SQUAD_SIZE:
        errors.append(f"Squad must have between {MIN_SQUAD_SIZE} and {MAX_SQUAD_SIZE} players (has {size})")
    counts = Counter(positions)
    for position, (low, high) in POSITION_LIMITS.items():
        n = counts.get(position, 0)
        if not low <= n <= high:
            errors.append(f"Squad must have between {low} and {high} {position}s (has {n})")
    unknown = counts.get(None, 0)
    if unknown:
        errors.append(f"{unknown} selected player(s) have no position")
    return errors
