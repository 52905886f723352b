"""
Purge domain service: random elimination of excess players before a game.
"""

import random

from domain.models.purge import PurgeState


class PurgeService:
    """
    Pure purge selection.

    Victims are drawn uniformly at random from members without immunity.
    Whitelisted members are only drawn once every other candidate is taken.
    Immune members are never drawn.
    """

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    @staticmethod
    def needs_purge(member_count: int, max_players: int) -> bool:
        return member_count > max_players

    @staticmethod
    def can_purge(member_ids: list[str], max_players: int, immune: set[str]) -> bool:
        """Whether enough non-immune members exist to reach max_players."""
        to_eliminate = len(member_ids) - max_players
        eligible = [pid for pid in member_ids if pid not in immune]
        return len(eligible) >= to_eliminate

    def select_eliminations(
        self,
        member_ids: list[str],
        max_players: int,
        immune: set[str] | None = None,
        protected: set[str] | None = None,
    ) -> list[str]:
        """
        Choose the ordered list of members to eliminate.

        Args:
            member_ids: Current members in join order
            max_players: Member count to trim down to
            immune: Members holding an immunity token this round
            protected: Whitelisted members, drawn only as a last resort

        Returns:
            Exactly len(member_ids) - max_players distinct member IDs

        Raises:
            ValueError: If immunity leaves too few candidates
        """
        immune = immune or set()
        protected = protected or set()
        to_eliminate = max(0, len(member_ids) - max_players)
        if to_eliminate == 0:
            return []

        primary = [pid for pid in member_ids if pid not in immune and pid not in protected]
        fallback = [pid for pid in member_ids if pid not in immune and pid in protected]
        if len(primary) + len(fallback) < to_eliminate:
            raise ValueError(
                f"Need {to_eliminate} eliminations but only {len(primary) + len(fallback)} members lack immunity."
            )

        from_primary = min(to_eliminate, len(primary))
        victims = self.rng.sample(primary, from_primary)
        if from_primary < to_eliminate:
            victims.extend(self.rng.sample(fallback, to_eliminate - from_primary))
        return victims

    def create_state(
        self,
        member_ids: list[str],
        max_players: int,
        immune: set[str] | None = None,
        protected: set[str] | None = None,
        exempt: set[str] | None = None,
    ) -> PurgeState:
        """
        Plan a purge.

        `immune` holds members spending an immunity token; `exempt` members are
        never drawn either but are not reported as immune (the host).
        """
        immune = set(immune or set()) & set(member_ids)
        protected = set(protected or set()) & set(member_ids)
        excluded = immune | set(exempt or set())
        return PurgeState(
            original_count=len(member_ids),
            target_count=max_players,
            elimination_order=self.select_eliminations(member_ids, max_players, excluded, protected),
            immune=immune,
            protected=protected,
        )
