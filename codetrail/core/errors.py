"""Exceptions raised by the CodeTrail core.

Simulation failures (collisions, step limits and so on) are not exceptions:
they are outcome codes carried on the simulation result.
"""

from __future__ import annotations

# Simulation outcome codes, carried on SimulationResult.error_code.
E_COLLIDE = "E_COLLIDE"
E_STEP_LIMIT = "E_STEP_LIMIT"
E_LOOP_DEPTH = "E_LOOP_DEPTH"
E_GOAL_NOT_MET = "E_GOAL_NOT_MET"
E_UNSUPPORTED_PREFIX = "E_UNSUPPORTED_"


class CodeTrailError(Exception):
    """Base class for all CodeTrail errors."""


class ValidationError(CodeTrailError, ValueError):
    """A request or program was rejected before any simulation ran."""

    code = "E_VALIDATION"


class EmptyProgramError(ValidationError):
    code = "E_EMPTY_PROGRAM"

    def __init__(self) -> None:
        super().__init__("Program is empty: add at least one block.")


class InvalidInstructionError(ValidationError):
    """The program uses a block the level does not allow."""

    def __init__(self, code: str) -> None:
        super().__init__(f"Block {code} is not allowed in this level.")
        self.code = code


class ProgramFormatError(ValidationError):
    code = "E_PROGRAM_FORMAT"


class LevelNotFoundError(CodeTrailError, KeyError):
    def __init__(self, level_key: str) -> None:
        super().__init__(level_key)
        self.level_key = level_key

    def __str__(self) -> str:
        return f"Level not found: {self.level_key}"


class LevelLockedError(CodeTrailError):
    def __init__(self, level_key: str) -> None:
        super().__init__(f"Level is still locked: {level_key}")
        self.level_key = level_key


class SandboxLockedError(CodeTrailError):
    def __init__(self, student_id: str) -> None:
        super().__init__(f"Sandbox is locked for student {student_id}: complete a level first.")
        self.student_id = student_id
