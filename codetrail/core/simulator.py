from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

from codetrail.core.errors import (
    E_COLLIDE,
    E_LOOP_DEPTH,
    E_STEP_LIMIT,
    E_UNSUPPORTED_PREFIX,
)
from codetrail.core.goals import evaluate
from codetrail.core.levels import DIRECTIONS, Level, LevelGoal, Position
from codetrail.core.program import (
    COLLECTIBLES_REMAINING,
    MAX_DEPTH,
    TILE_AHEAD_WALKABLE,
    Collect,
    Condition,
    Conditional,
    Instruction,
    Move,
    Repeat,
    Turn,
    block_code_for,
)

logger = logging.getLogger(__name__)

DEFAULT_STEP_LIMIT = 200


@dataclass
class WorldState:
    """Mutable state of one simulation run."""

    position: Position
    steps_taken: int = 0
    remaining_collectibles: int = 0
    visited_collectible_keys: Set[str] = field(default_factory=set)


@dataclass(frozen=True)
class SimulationStep:
    """One executed instruction and the world as it was just before it ran."""

    index: int
    instruction: Instruction
    position: Position
    collectibles_remaining: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "instruction": self.instruction.to_dict(),
            "position": self.position.to_dict(),
            "collectibles": self.collectibles_remaining,
        }


@dataclass
class SimulationResult:
    success: bool
    steps: int
    stars: int
    error_code: Optional[str]
    remaining_collectibles: int
    final_position: Position
    log: List[SimulationStep]
    best_steps: int
    goal: LevelGoal

    @property
    def replay_log(self) -> List[Dict[str, Any]]:
        return [step.to_dict() for step in self.log]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "steps": self.steps,
            "stars": self.stars,
            "error_code": self.error_code,
            "remaining_collectibles": self.remaining_collectibles,
            "final_position": self.final_position.to_dict(),
            "log": self.replay_log,
            "metadata": {"best_steps": self.best_steps, "goal": self.goal.to_dict()},
        }


def rotate(facing: str, direction: str) -> str:
    offset = -1 if direction == "left" else 1
    return DIRECTIONS[(DIRECTIONS.index(facing) + offset) % len(DIRECTIONS)]


def evaluate_condition(level: Level, world: WorldState, condition: Condition) -> bool:
    if condition.kind == TILE_AHEAD_WALKABLE:
        return level.is_walkable(*world.position.ahead())
    if condition.kind == COLLECTIBLES_REMAINING:
        return world.remaining_collectibles > 0
    return False


class _Interpreter:
    def __init__(self, level: Level, step_limit: int) -> None:
        self.level = level
        self.step_limit = step_limit
        self.world = WorldState(position=level.start, remaining_collectibles=level.collectible_count)
        self.log: List[SimulationStep] = []

    def execute(self, instructions: Sequence[Instruction], depth: int) -> Optional[str]:
        """Run ``instructions`` in order; return the first error code, if any."""
        if depth > MAX_DEPTH:
            return E_LOOP_DEPTH

        world = self.world
        for instruction in instructions:
            if world.steps_taken >= self.step_limit:
                return E_STEP_LIMIT
            world.steps_taken += 1
            self.log.append(
                SimulationStep(
                    index=world.steps_taken,
                    instruction=instruction,
                    position=world.position,
                    collectibles_remaining=world.remaining_collectibles,
                )
            )

            error = self._step(instruction, depth)
            if error:
                return error
        return None

    def _step(self, instruction: Instruction, depth: int) -> Optional[str]:
        world = self.world
        if isinstance(instruction, Move):
            x, y = world.position.ahead()
            if not self.level.is_walkable(x, y):
                return E_COLLIDE
            world.position = Position(x=x, y=y, facing=world.position.facing)
        elif isinstance(instruction, Turn):
            pos = world.position
            world.position = Position(x=pos.x, y=pos.y, facing=rotate(pos.facing, instruction.direction))
        elif isinstance(instruction, Collect):
            tile = self.level.tile_at(world.position.x, world.position.y)
            if tile is not None and tile.collectible:
                key = f"{tile.x}:{tile.y}:{tile.collectible}"
                if key not in world.visited_collectible_keys:
                    world.visited_collectible_keys.add(key)
                    world.remaining_collectibles -= 1
        elif isinstance(instruction, Repeat):
            for _ in range(instruction.times):
                error = self.execute(instruction.body, depth + 1)
                if error:
                    return error
        elif isinstance(instruction, Conditional):
            # No condition at all: neither branch runs.
            if instruction.condition is None:
                return None
            if evaluate_condition(self.level, world, instruction.condition):
                branch = instruction.truthy
            else:
                branch = instruction.falsy
            return self.execute(branch, depth + 1)
        else:
            return E_UNSUPPORTED_PREFIX + block_code_for(instruction.kind)
        return None


def run(level: Level, program: Sequence[Instruction], step_limit: Optional[int] = None) -> SimulationResult:
    """Interpret ``program`` on ``level`` and score the result.

    Pure function of its arguments: the same level and program always give
    the same step log and outcome. The step budget is ``step_limit`` when
    given, else the level's goal step limit, else ``DEFAULT_STEP_LIMIT``.
    """
    if step_limit is None:
        step_limit = level.goal.step_limit if level.goal.step_limit is not None else DEFAULT_STEP_LIMIT

    interpreter = _Interpreter(level, step_limit)
    error = interpreter.execute(program, depth=0)
    world = interpreter.world
    outcome = evaluate(level, world.position, world.remaining_collectibles, world.steps_taken, error)
    logger.debug(
        "Simulated %s: steps=%d success=%s stars=%d error=%s",
        level.key,
        world.steps_taken,
        outcome.success,
        outcome.stars,
        outcome.error_code,
    )
    return SimulationResult(
        success=outcome.success,
        steps=world.steps_taken,
        stars=outcome.stars,
        error_code=outcome.error_code,
        remaining_collectibles=world.remaining_collectibles,
        final_position=world.position,
        log=interpreter.log,
        best_steps=level.best_steps,
        goal=level.goal,
    )
