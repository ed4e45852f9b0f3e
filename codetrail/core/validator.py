from __future__ import annotations

from typing import Optional, Sequence

from codetrail.core.errors import EmptyProgramError, InvalidInstructionError
from codetrail.core.levels import Level
from codetrail.core.program import Instruction, walk


def find_disallowed_block(level: Level, program: Sequence[Instruction]) -> Optional[str]:
    """Return the block code of the first instruction the level forbids, or None.

    An empty allow-list means the level places no restriction at all.
    """
    allowed = level.allowed_instruction_kinds
    if not allowed:
        return None
    for instruction in walk(program):
        if instruction.block_code is not None and instruction.block_code not in allowed:
            return instruction.block_code
    return None


def validate(level: Level, program: Sequence[Instruction]) -> None:
    """Raise if ``program`` may not run on ``level``."""
    if not program:
        raise EmptyProgramError()
    code = find_disallowed_block(level, program)
    if code is not None:
        raise InvalidInstructionError(code)
