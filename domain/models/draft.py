"""
Draft domain model for captain turn-based drafting.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

TEAM1 = "team1"
TEAM2 = "team2"


def other_team(team: str) -> str:
    return TEAM2 if team == TEAM1 else TEAM1


class DraftPattern(Enum):
    """How picks alternate between the two captains."""

    SNAKE = "snake"  # 1-2-2-1-1-2-2-1...
    ALTERNATE = "alternate"  # 1-2-1-2...


# Snake draft order: which captain picks at each step (0 = first-picking team, 1 = other team)
# Repeats every four picks, so any even-length prefix gives both teams the same count.
SNAKE_DRAFT_ORDER = [0, 1, 1, 0]


def build_pick_order(total_picks: int, first_team: str, pattern: DraftPattern = DraftPattern.SNAKE) -> list[str]:
    """
    Build the full sequence of teams that pick, one entry per pick.

    Args:
        total_picks: Number of non-captain players to distribute
        first_team: TEAM1 or TEAM2, the team that picks first
        pattern: Snake or strict alternation

    Returns:
        List of team names of length total_picks
    """
    if first_team not in (TEAM1, TEAM2):
        raise ValueError(f"Unknown team: {first_team}")
    if total_picks < 0:
        raise ValueError("total_picks must be non-negative")

    second_team = other_team(first_team)
    order = []
    for i in range(total_picks):
        if pattern == DraftPattern.SNAKE:
            picker = SNAKE_DRAFT_ORDER[i % len(SNAKE_DRAFT_ORDER)]
        else:
            picker = i % 2
        order.append(first_team if picker == 0 else second_team)
    return order


@dataclass
class DraftState:
    """
    Turn-based draft progress for one lobby.

    Exists only while the lobby is in the drafting phase.
    """

    first_team: str
    pick_order: list[str] = field(default_factory=list)
    pattern: DraftPattern = DraftPattern.SNAKE
    current_pick_index: int = 0
    # (team, player_id) in pick order
    picks: list[tuple[str, str]] = field(default_factory=list)

    @property
    def current_turn(self) -> str | None:
        """Team whose captain picks next, or None when the order is exhausted."""
        if self.current_pick_index >= len(self.pick_order):
            return None
        return self.pick_order[self.current_pick_index]

    @property
    def picks_left(self) -> int:
        return max(0, len(self.pick_order) - self.current_pick_index)

    @property
    def picks_remaining_this_turn(self) -> int:
        """Get how many consecutive picks the current team has."""
        current = self.current_turn
        if current is None:
            return 0
        count = 0
        for team in self.pick_order[self.current_pick_index:]:
            if team != current:
                break
            count += 1
        return count

    @property
    def is_complete(self) -> bool:
        return self.current_pick_index >= len(self.pick_order)

    def record_pick(self, team: str, player_id: str) -> None:
        """Record a pick for the team whose turn it is and advance the turn."""
        if team != self.current_turn:
            raise ValueError(f"It is not {team}'s turn to pick.")
        self.picks.append((team, player_id))
        self.current_pick_index += 1

    def drop_last_pick(self) -> None:
        """Shorten the order by one pick (a pickable player left mid-draft)."""
        if len(self.pick_order) > self.current_pick_index:
            self.pick_order.pop()

    def to_dict(self) -> dict[str, Any]:
        return {
            "firstTeam": self.first_team,
            "pattern": self.pattern.value,
            "pickOrder": list(self.pick_order),
            "pickIndex": self.current_pick_index,
            "currentTurn": self.current_turn,
            "picksLeft": self.picks_left,
            "picksThisTurn": self.picks_remaining_this_turn,
            "picks": [{"team": team, "odiscordId": pid} for team, pid in self.picks],
        }
