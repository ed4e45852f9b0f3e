"""Shared fixtures: the bundled catalog and a builder for ad-hoc grid levels."""

from __future__ import annotations

from typing import Callable, Iterable, Optional, Tuple

import pytest

from codetrail.core.levels import (
    COLLECTIBLE_SYMBOLS,
    Level,
    LevelGoal,
    LevelRepository,
    LevelRewards,
    Position,
    Tile,
)


def grid_tiles(rows: Iterable[str]) -> Tuple[Tile, ...]:
    tiles = []
    for y, row in enumerate(rows):
        for x, symbol in enumerate(row):
            if symbol in COLLECTIBLE_SYMBOLS:
                tiles.append(Tile(x, y, True, COLLECTIBLE_SYMBOLS[symbol]))
            else:
                tiles.append(Tile(x, y, symbol == "."))
    return tuple(tiles)


def build_level(
    rows: Tuple[str, ...],
    start: Position,
    goal: LevelGoal,
    best_steps: int,
    key: str = "test-level",
    hints: Tuple[str, ...] = (),
    allowed: Iterable[str] = (),
    rewards: Optional[LevelRewards] = None,
) -> Level:
    return Level(
        key=key,
        name="Test Level",
        width=len(rows[0]),
        height=len(rows),
        tiles=grid_tiles(rows),
        start=start,
        goal=goal,
        best_steps=best_steps,
        hints=tuple(hints),
        allowed_instruction_kinds=frozenset(allowed),
        rewards=rewards or LevelRewards(),
    )


@pytest.fixture(scope="session")
def catalog() -> LevelRepository:
    """The catalog shipped with the package."""
    return LevelRepository()


@pytest.fixture()
def level_factory() -> Callable[..., Level]:
    return build_level


@pytest.fixture()
def corridor() -> Level:
    """5x5 grid with a single walkable row at y=2, mirroring level-1-1."""
    return build_level(
        ("#####", "#####", ".....", "#####", "#####"),
        start=Position(0, 2, "east"),
        goal=LevelGoal(reach_target=(4, 2), step_limit=8),
        best_steps=4,
        key="corridor",
        hints=("h0", "h1", "h2"),
        allowed=("MOVE", "TURN_LEFT", "TURN_RIGHT"),
    )
