from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from codetrail.core.errors import E_GOAL_NOT_MET
from codetrail.core.levels import Level, Position

MAX_STARS = 3
# Steps over par that still earn two stars.
TWO_STAR_MARGIN = 2


@dataclass(frozen=True)
class Outcome:
    success: bool
    stars: int
    error_code: Optional[str] = None


def meets_goals(level: Level, position: Position, remaining_collectibles: int, steps: int) -> bool:
    goal = level.goal
    if goal.collectibles_required is not None and remaining_collectibles > 0:
        return False
    if goal.reach_target is not None and (position.x, position.y) != goal.reach_target:
        return False
    if goal.step_limit is not None and steps > goal.step_limit:
        return False
    return True


def calculate_stars(level: Level, success: bool, steps: int, remaining_collectibles: int) -> int:
    if not success:
        return 0
    if remaining_collectibles > 0:
        return 1
    if steps <= level.best_steps:
        return MAX_STARS
    if steps <= level.best_steps + TWO_STAR_MARGIN:
        return 2
    return 1


def evaluate(
    level: Level,
    position: Position,
    remaining_collectibles: int,
    steps: int,
    error_code: Optional[str] = None,
) -> Outcome:
    """Decide success and stars for a finished run.

    An execution error always fails the run and is reported as is; a clean
    run that misses a goal clause fails with ``E_GOAL_NOT_MET``.
    """
    success = error_code is None and meets_goals(level, position, remaining_collectibles, steps)
    stars = calculate_stars(level, success, steps, remaining_collectibles)
    if success:
        return Outcome(success=True, stars=stars)
    return Outcome(success=False, stars=0, error_code=error_code or E_GOAL_NOT_MET)
