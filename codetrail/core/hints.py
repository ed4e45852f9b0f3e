from __future__ import annotations

from typing import Dict, Optional

from codetrail.core.errors import E_COLLIDE, E_GOAL_NOT_MET, E_LOOP_DEPTH, E_STEP_LIMIT
from codetrail.core.levels import Level

FIRST_TRY_HINT = "Give it a go: build your program and press run."
FALLBACK_HINT = "Check the order of your blocks."

ERROR_HINTS: Dict[str, str] = {
    E_COLLIDE: "Oops, something is in the way! Try adjusting your turns.",
    E_STEP_LIMIT: "That took too many steps. Try using a repeat block!",
    E_GOAL_NOT_MET: "Almost there! Re-check the level goals: where should you end up, and what should you collect?",
    E_LOOP_DEPTH: "Your blocks are nested too deeply. Try simplifying your repeats and conditions.",
}


def hint(level: Level, attempts: int, last_error: Optional[str] = None) -> str:
    """Pick a hint for a student who has tried ``attempts`` times.

    A recognised error from the last run wins over the level's scripted
    hint ladder; the ladder is clamped to its last rung.
    """
    if attempts <= 0:
        return level.hints[0] if level.hints else FIRST_TRY_HINT
    if last_error in ERROR_HINTS:
        return ERROR_HINTS[last_error]
    if not level.hints:
        return FALLBACK_HINT
    return level.hints[min(attempts, len(level.hints) - 1)]
