"""
Draft domain service for captain turn-based drafting.

Contains pure domain logic for first-pick choice and pick-order planning.
No side effects or external dependencies.
"""

import random

from domain.models.draft import TEAM1, TEAM2, DraftPattern, DraftState, build_pick_order

FIRST_TEAM_RANDOM = "random"


class DraftService:
    """
    Pure domain logic for the turn-based draft.

    Handles:
    - First pick choice (host choice, coinflip, or lower-rated captain)
    - Pick order planning for snake or alternating drafts
    - Pick validation
    """

    def __init__(self, rng: random.Random | None = None, pattern: DraftPattern = DraftPattern.SNAKE):
        """
        Initialize draft service.

        Args:
            rng: Random source used for coinflips. Seed it for reproducible tests.
            pattern: Pick pattern used for new drafts.
        """
        self.rng = rng or random.Random()
        self.pattern = pattern

    def coinflip(self) -> str:
        """Pick TEAM1 or TEAM2 at random."""
        return self.rng.choice([TEAM1, TEAM2])

    def determine_lower_rated_team(self, captain1_rating: float, captain2_rating: float) -> str:
        """
        Determine which captain has the lower rating.

        The lower-rated captain picks first to offset the rating gap.
        Equal ratings go to TEAM1.
        """
        if captain1_rating <= captain2_rating:
            return TEAM1
        return TEAM2

    def choose_first_team(
        self,
        requested: str | None,
        captain1_rating: float,
        captain2_rating: float,
    ) -> str:
        """
        Resolve which team picks first.

        Args:
            requested: TEAM1, TEAM2, FIRST_TEAM_RANDOM, or None for the default
            captain1_rating: Rating of the team1 captain
            captain2_rating: Rating of the team2 captain

        Raises:
            ValueError: If requested is not a known choice
        """
        if requested is None:
            return self.determine_lower_rated_team(captain1_rating, captain2_rating)
        if requested in (TEAM1, TEAM2):
            return requested
        if requested == FIRST_TEAM_RANDOM:
            return self.coinflip()
        raise ValueError(f"Unknown first team: {requested}")

    def plan_draft(self, pickable_count: int, first_team: str) -> DraftState:
        """
        Build the draft state for the given number of non-captain players.

        With captains already seated one per side, the pattern keeps final
        roster sizes equal, or within one when the pickable count is odd.
        """
        order = build_pick_order(pickable_count, first_team, self.pattern)
        return DraftState(first_team=first_team, pick_order=order, pattern=self.pattern)

    @staticmethod
    def validate_pick(
        state: DraftState,
        picking_team: str | None,
        player_id: str,
        unassigned_ids: list[str],
    ) -> str | None:
        """
        Check a pick against the current draft state.

        Returns:
            None when the pick is legal, otherwise a short reason.
        """
        if picking_team is None:
            return "Only captains can pick."
        if state.is_complete:
            return "The draft is already complete."
        if picking_team != state.current_turn:
            return "It is not your turn to pick."
        if player_id not in unassigned_ids:
            return "That player is not available to pick."
        return None
