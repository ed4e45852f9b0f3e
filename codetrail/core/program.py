"""Instruction tree submitted by a student.

Programs arrive as JSON-style lists of dicts, for example::

    [{"type": "move"},
     {"type": "repeat", "times": 3, "body": [{"type": "turn", "direction": "left"}]}]

``parse_program`` turns them into frozen instruction objects and every
instruction can turn itself back into the same dict shape for replay logs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from codetrail.core.errors import ProgramFormatError

TILE_AHEAD_WALKABLE = "tile-ahead-walkable"
COLLECTIBLES_REMAINING = "collectibles-remaining"

# Deepest block nesting a program may execute. The top-level list is depth 0.
MAX_DEPTH = 10

BLOCK_CODES: Tuple[str, ...] = ("MOVE", "TURN_LEFT", "TURN_RIGHT", "COLLECT", "REPEAT", "CONDITIONAL")


def block_code_for(kind: str) -> str:
    """Upper-case a kind into a block-code token, e.g. ``jump-high`` -> ``JUMP_HIGH``."""
    code = re.sub(r"[^A-Z0-9]+", "_", kind.upper()).strip("_")
    return code or "UNKNOWN"


@dataclass(frozen=True)
class Move:
    kind: ClassVar[str] = "move"
    block_code: ClassVar[str] = "MOVE"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind}


@dataclass(frozen=True)
class Turn:
    kind: ClassVar[str] = "turn"
    direction: str

    @property
    def block_code(self) -> str:
        return "TURN_LEFT" if self.direction == "left" else "TURN_RIGHT"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "direction": self.direction}


@dataclass(frozen=True)
class Collect:
    kind: ClassVar[str] = "collect"
    block_code: ClassVar[str] = "COLLECT"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind}


@dataclass(frozen=True)
class Repeat:
    kind: ClassVar[str] = "repeat"
    block_code: ClassVar[str] = "REPEAT"
    times: int
    body: Tuple["Instruction", ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "times": self.times, "body": [i.to_dict() for i in self.body]}


@dataclass(frozen=True)
class Condition:
    kind: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind}


@dataclass(frozen=True)
class Conditional:
    kind: ClassVar[str] = "conditional"
    block_code: ClassVar[str] = "CONDITIONAL"
    condition: Optional[Condition]
    truthy: Tuple["Instruction", ...] = ()
    falsy: Tuple["Instruction", ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "condition": self.condition.to_dict() if self.condition is not None else None,
            "truthy": [i.to_dict() for i in self.truthy],
            "falsy": [i.to_dict() for i in self.falsy],
        }


@dataclass(frozen=True)
class UnknownInstruction:
    """An instruction type this engine does not implement; kept so it can be reported."""

    kind: str
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def block_code(self) -> str:
        return block_code_for(self.kind)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.raw)
        data["type"] = self.kind
        return data


@dataclass(frozen=True)
class TooDeepInstruction:
    """An instruction in a block nested past ``MAX_DEPTH``, left unparsed.

    The simulator never executes it: entering its block ends the run with
    ``E_LOOP_DEPTH``. It has no block code, so allow-lists ignore it.
    """

    kind: str
    block_code: ClassVar[Optional[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind}


Instruction = Union[Move, Turn, Collect, Repeat, Conditional, UnknownInstruction, TooDeepInstruction]
_INSTRUCTION_TYPES = (Move, Turn, Collect, Repeat, Conditional, UnknownInstruction, TooDeepInstruction)


def parse_program(raw: Any) -> List[Instruction]:
    """Parse a JSON-style program. Raises ProgramFormatError on malformed input.

    Blocks nested deeper than ``MAX_DEPTH`` are not descended into; their
    instructions become ``TooDeepInstruction`` placeholders.
    """
    if not isinstance(raw, (list, tuple)):
        raise ProgramFormatError("Program must be a list of instructions.")
    return [parse_instruction(item, f"program[{i}]") for i, item in enumerate(raw)]


def parse_instruction(raw: Any, path: str = "instruction", depth: int = 0) -> Instruction:
    """Parse one instruction found in a block at nesting ``depth``."""
    if isinstance(raw, _INSTRUCTION_TYPES):
        return raw
    if not isinstance(raw, dict):
        raise ProgramFormatError(f"{path}: expected an object, got {type(raw).__name__}")
    kind = raw.get("type")
    if not isinstance(kind, str) or not kind.strip():
        raise ProgramFormatError(f"{path}: missing instruction 'type'")
    kind = kind.strip().lower()

    if kind == "move":
        return Move()
    if kind == "collect":
        return Collect()
    if kind == "turn":
        direction = raw.get("direction")
        if direction not in ("left", "right"):
            raise ProgramFormatError(f"{path}: turn direction must be 'left' or 'right'")
        return Turn(direction=direction)
    if kind == "repeat":
        times = raw.get("times")
        # bool is an int subclass; reject it explicitly
        if isinstance(times, bool) or not isinstance(times, int):
            raise ProgramFormatError(f"{path}: repeat 'times' must be an integer")
        if times < 0:
            raise ProgramFormatError(f"{path}: repeat 'times' must not be negative")
        return Repeat(times=times, body=_parse_block(raw.get("body"), f"{path}.body", depth + 1, required=True))
    if kind == "conditional":
        return Conditional(
            condition=_parse_condition(raw.get("condition"), f"{path}.condition"),
            truthy=_parse_block(raw.get("truthy"), f"{path}.truthy", depth + 1),
            falsy=_parse_block(raw.get("falsy"), f"{path}.falsy", depth + 1),
        )
    return UnknownInstruction(kind=kind, raw=dict(raw))


def _parse_block(raw: Any, path: str, depth: int, required: bool = False) -> Tuple[Instruction, ...]:
    if raw is None:
        if required:
            raise ProgramFormatError(f"{path}: missing instruction list")
        return ()
    if not isinstance(raw, (list, tuple)):
        raise ProgramFormatError(f"{path}: expected a list of instructions")
    if depth > MAX_DEPTH:
        return tuple(TooDeepInstruction(kind=_kind_of(item)) for item in raw)
    return tuple(parse_instruction(item, f"{path}[{i}]", depth) for i, item in enumerate(raw))


def _kind_of(raw: Any) -> str:
    kind = raw.get("type") if isinstance(raw, dict) else None
    return kind.strip().lower() if isinstance(kind, str) and kind.strip() else "unknown"


def _parse_condition(raw: Any, path: str) -> Optional[Condition]:
    if raw is None:
        return None
    if isinstance(raw, Condition):
        return raw
    if isinstance(raw, str):
        return Condition(kind=raw)
    if not isinstance(raw, dict) or not isinstance(raw.get("type"), str):
        raise ProgramFormatError(f"{path}: condition needs a 'type'")
    return Condition(kind=raw["type"])


def program_to_dicts(program: Sequence[Instruction]) -> List[Dict[str, Any]]:
    return [instruction.to_dict() for instruction in program]


def walk(program: Sequence[Instruction]) -> Iterator[Instruction]:
    """Yield every instruction depth-first, left to right, nested blocks included."""
    stack = list(reversed(program))
    while stack:
        instruction = stack.pop()
        yield instruction
        if isinstance(instruction, Repeat):
            stack.extend(reversed(instruction.body))
        elif isinstance(instruction, Conditional):
            stack.extend(reversed(instruction.falsy))
            stack.extend(reversed(instruction.truthy))
