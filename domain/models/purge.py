"""
Purge domain model for trimming an overfull lobby before a game.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class PurgeState:
    """
    Elimination progress for one lobby.

    `elimination_order` is the planned victim order, drawn once when the purge
    starts; eliminations are applied one at a time from it.
    """

    original_count: int
    target_count: int
    elimination_order: list[str] = field(default_factory=list)
    eliminated: list[str] = field(default_factory=list)
    immune: set[str] = field(default_factory=set)  # One-time immunity tokens used this round
    protected: set[str] = field(default_factory=set)  # Whitelisted by the host
    countdown_ends_at: float | None = None
    complete: bool = False

    @property
    def to_eliminate(self) -> int:
        return max(0, self.original_count - self.target_count)

    def next_victim(self, member_ids: set[str]) -> str | None:
        """Next planned victim who is still a member, or None."""
        for pid in self.elimination_order:
            if pid in member_ids and pid not in self.eliminated:
                return pid
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "originalCount": self.original_count,
            "targetCount": self.target_count,
            "toEliminate": self.to_eliminate,
            "eliminated": list(self.eliminated),
            "immune": sorted(self.immune),
            "countdownEndsAt": self.countdown_ends_at,
            "complete": self.complete,
        }
