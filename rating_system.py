"""
ELO rating system implementation for team matches.
"""

import math
from dataclasses import dataclass

from config import DEFAULT_ELO, ELO_K_FACTOR

# Rank tiers, checked from the top down: (minimum ELO, tier name)
RANK_TIERS: list[tuple[int, str]] = [
    (1500, "Netherite"),
    (1200, "Diamond"),
    (1000, "Amethyst"),
    (800, "Emerald"),
    (650, "Gold"),
    (500, "Iron"),
]
LOWEST_RANK = "Copper"


@dataclass(frozen=True)
class TeamRatingChange:
    """Outcome of an ELO computation for one match."""

    team1_average: float
    team2_average: float
    team1_expected: float
    team1_delta: int
    team2_delta: int
    team1_after: dict[str, int]
    team2_after: dict[str, int]


class EloRatingSystem:
    """
    Manages ELO ratings for two-team matches.

    Handles:
    - Team strength aggregation (mean rating)
    - Logistic expected score
    - Symmetric team deltas (winner gains what loser loses)
    - Rank tier lookup for display
    """

    SCALE = 400.0  # Classic ELO logistic scale

    def __init__(self, k_factor: float = ELO_K_FACTOR, default_rating: int = DEFAULT_ELO):
        """
        Initialize rating system.

        Args:
            k_factor: Maximum rating swing per match
            default_rating: Rating assigned to players without history
        """
        self.k_factor = k_factor
        self.default_rating = default_rating

    def team_average(self, ratings: list[float]) -> float:
        if not ratings:
            return float(self.default_rating)
        return sum(ratings) / len(ratings)

    @classmethod
    def expected_score(cls, rating: float, opponent_rating: float) -> float:
        """Probability that `rating` beats `opponent_rating`."""
        return 1.0 / (1.0 + math.pow(10.0, (opponent_rating - rating) / cls.SCALE))

    def team_delta(self, team_average: float, opponent_average: float, actual_score: float) -> int:
        """
        Rating change for every member of a team.

        actual_score: 1.0 win, 0.5 draw, 0.0 loss.
        """
        expected = self.expected_score(team_average, opponent_average)
        return int(round(self.k_factor * (actual_score - expected)))

    def compute_match(
        self,
        team1_ratings: dict[str, int],
        team2_ratings: dict[str, int],
        winning_team: int | None,
        ranked: bool = True,
    ) -> TeamRatingChange:
        """
        Compute post-match ratings for both rosters.

        winning_team: 1, 2, or None for a draw. Unranked matches keep every rating.
        The result depends only on the pre-match ratings, so recomputation is idempotent.
        """
        if winning_team not in (1, 2, None):
            raise ValueError("winning_team must be 1, 2 or None (draw).")

        avg1 = self.team_average(list(team1_ratings.values()))
        avg2 = self.team_average(list(team2_ratings.values()))
        expected1 = self.expected_score(avg1, avg2)

        if not ranked:
            delta1 = 0
        else:
            actual1 = 0.5 if winning_team is None else (1.0 if winning_team == 1 else 0.0)
            delta1 = self.team_delta(avg1, avg2, actual1)
        delta2 = -delta1

        return TeamRatingChange(
            team1_average=avg1,
            team2_average=avg2,
            team1_expected=expected1,
            team1_delta=delta1,
            team2_delta=delta2,
            team1_after={pid: max(0, r + delta1) for pid, r in team1_ratings.items()},
            team2_after={pid: max(0, r + delta2) for pid, r in team2_ratings.items()},
        )

    @staticmethod
    def rank_for(rating: float) -> str:
        """Return the rank tier name for a rating."""
        for threshold, name in RANK_TIERS:
            if rating >= threshold:
                return name
        return LOWEST_RANK
