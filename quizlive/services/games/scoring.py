import math
from typing import Iterable, List

from quizlive.models import Player


BASE_POINTS = 1000
MAX_SPEED_BONUS = 500


def score_answer(is_correct: bool, elapsed: float, time_limit: float) -> int:
    """Points for one answer.

    Correct answers earn 1000 plus up to 500 for speed; the client-reported
    elapsed time is clamped to [0, time_limit] first. Wrong answers earn 0.
    """
    if not is_correct:
        return 0
    if time_limit <= 0:
        return BASE_POINTS
    elapsed = clamp_elapsed(elapsed, time_limit)
    ratio = max(0.0, (time_limit - elapsed) / time_limit)
    return BASE_POINTS + int(math.floor(ratio * MAX_SPEED_BONUS))


def clamp_elapsed(elapsed: float, time_limit: float) -> float:
    elapsed = float(elapsed)
    if math.isnan(elapsed):
        # an unreadable time earns no speed bonus
        return float(time_limit)
    return min(max(elapsed, 0.0), float(time_limit))


def build_leaderboard(players: Iterable[Player]) -> List[Player]:
    # score descending, earlier joiners first on ties
    return sorted(players, key=lambda p: (-p.score, p.join_order))
