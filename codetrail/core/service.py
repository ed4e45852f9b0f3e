from __future__ import annotations

import logging
from typing import Any, List, Optional

from codetrail.core import simulator
from codetrail.core.errors import EmptyProgramError, LevelLockedError, SandboxLockedError
from codetrail.core.hints import hint
from codetrail.core.levels import LevelRepository
from codetrail.core.program import parse_program
from codetrail.core.progress import CompleteRequest, LevelProgress, ProgressStore
from codetrail.core.simulator import SimulationResult
from codetrail.core.validator import validate
from codetrail.ui.models import LOCKED, ChapterState, LevelState, build_chapter_states, level_status

logger = logging.getLogger(__name__)


class CodeTrailService:
    """Student-facing operations over a shared catalog and progress store.

    Transport layers call these methods and translate the raised
    ``LevelNotFoundError`` / ``ValidationError`` into their own responses.
    """

    def __init__(self, levels: LevelRepository, store: ProgressStore) -> None:
        self._levels = levels
        self._store = store

    @property
    def levels(self) -> LevelRepository:
        return self._levels

    @property
    def store(self) -> ProgressStore:
        return self._store

    def run_program(self, student_id: str, level_key: str, program: Any) -> SimulationResult:
        """Validate and simulate ``program`` on a level. Nothing is stored."""
        level = self._levels.get(level_key)
        instructions = parse_program(program)
        validate(level, instructions)
        result = simulator.run(level, instructions)
        logger.debug(
            "Student %s ran %s: success=%s stars=%d error=%s",
            student_id,
            level_key,
            result.success,
            result.stars,
            result.error_code,
        )
        return result

    def complete_level(self, student_id: str, level_key: str, request: CompleteRequest) -> LevelProgress:
        return self._store.complete(student_id, level_key, request)

    def get_map(self, student_id: str) -> List[ChapterState]:
        profile = self._store.get_profile(student_id)
        return build_chapter_states(self._levels, profile)

    def get_level(self, student_id: str, level_key: str) -> LevelState:
        """Level detail for a student. Raises LevelLockedError for locked levels."""
        level = self._levels.get(level_key)
        profile = self._store.get_profile(student_id)
        status = level_status(self._levels, profile, level_key)
        if status == LOCKED:
            raise LevelLockedError(level_key)
        record = profile.progress.get(level_key)
        return LevelState(
            level=level,
            status=status,
            stars=record.stars if record is not None else 0,
            best_difference=record.best_difference if record is not None else None,
        )

    def get_hint(self, student_id: str, level_key: str, attempts: int, last_error: Optional[str] = None) -> str:
        level = self._levels.get(level_key)
        logger.debug("Hint for student %s on %s after %d attempts (last error %s)", student_id, level_key, attempts, last_error)
        return hint(level, attempts, last_error)

    def sandbox_run(
        self,
        student_id: str,
        level_key: str,
        program: Any,
        step_limit: Optional[int] = None,
    ) -> SimulationResult:
        """Free-play run on any level's grid, ignoring its block restrictions.

        Only available once the student has completed a level. Never touches
        the student's progress.
        """
        level = self._levels.get(level_key)
        if not self._store.get_profile(student_id).sandbox_unlocked:
            raise SandboxLockedError(student_id)
        instructions = parse_program(program)
        if not instructions:
            raise EmptyProgramError()
        return simulator.run(level, instructions, step_limit=step_limit)
