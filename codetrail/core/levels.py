from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import yaml

from codetrail.core.errors import LevelNotFoundError

logger = logging.getLogger(__name__)

# Clockwise order; turning right advances one slot, turning left goes back one.
DIRECTIONS: Tuple[str, ...] = ("north", "east", "south", "west")

_OFFSETS: Dict[str, Tuple[int, int]] = {
    "north": (0, -1),
    "east": (1, 0),
    "south": (0, 1),
    "west": (-1, 0),
}

COLLECTIBLE_SYMBOLS: Dict[str, str] = {"g": "gem", "c": "coin", "k": "key", "s": "star"}
WALKABLE_SYMBOL = "."
BLOCKED_SYMBOLS = frozenset("# ")


def default_levels_dir() -> Path:
    return Path(__file__).resolve().parent.parent / "data" / "levels"


@dataclass(frozen=True)
class Position:
    x: int
    y: int
    facing: str = "east"

    def ahead(self) -> Tuple[int, int]:
        """Coordinates of the tile directly in front of this position."""
        dx, dy = _OFFSETS[self.facing]
        return self.x + dx, self.y + dy

    def to_dict(self) -> Dict[str, Any]:
        return {"x": self.x, "y": self.y, "facing": self.facing}


@dataclass(frozen=True)
class Tile:
    x: int
    y: int
    walkable: bool
    collectible: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"x": self.x, "y": self.y, "walkable": self.walkable}
        if self.collectible:
            data["collectible"] = self.collectible
        return data


@dataclass(frozen=True)
class LevelGoal:
    """Success clauses for a level. Every clause that is set must hold."""

    collectibles_required: Optional[int] = None
    reach_target: Optional[Tuple[int, int]] = None
    step_limit: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.collectibles_required is not None:
            data["collectibles_required"] = self.collectibles_required
        if self.reach_target is not None:
            data["reach"] = {"x": self.reach_target[0], "y": self.reach_target[1]}
        if self.step_limit is not None:
            data["step_limit"] = self.step_limit
        return data


@dataclass(frozen=True)
class LevelRewards:
    stars_required: int = 3
    outfit_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"stars_required": self.stars_required, "outfit": self.outfit_id}


@dataclass(frozen=True)
class Level:
    key: str
    name: str
    width: int
    height: int
    tiles: Tuple[Tile, ...]
    start: Position
    goal: LevelGoal
    best_steps: int
    hints: Tuple[str, ...] = ()
    allowed_instruction_kinds: FrozenSet[str] = frozenset()
    comic: str = ""
    rewards: LevelRewards = field(default_factory=LevelRewards)
    chapter_key: str = ""
    _tile_index: Dict[Tuple[int, int], Tile] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "_tile_index", {(tile.x, tile.y): tile for tile in self.tiles})

    def tile_at(self, x: int, y: int) -> Optional[Tile]:
        return self._tile_index.get((x, y))

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def is_walkable(self, x: int, y: int) -> bool:
        """Off-grid, missing and blocked tiles are all unwalkable."""
        if not self.in_bounds(x, y):
            return False
        tile = self.tile_at(x, y)
        return tile is not None and tile.walkable

    @property
    def collectible_count(self) -> int:
        return sum(1 for tile in self.tiles if tile.collectible)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.key,
            "name": self.name,
            "width": self.width,
            "height": self.height,
            "tiles": [tile.to_dict() for tile in self.tiles],
            "start": self.start.to_dict(),
            "goal": self.goal.to_dict(),
            "best_steps": self.best_steps,
            "hints": list(self.hints),
            "allowed_blocks": sorted(self.allowed_instruction_kinds),
            "comic": self.comic,
            "rewards": self.rewards.to_dict(),
            "chapter_id": self.chapter_key,
        }


@dataclass(frozen=True)
class Chapter:
    key: str
    title: str
    order: int
    level_keys: Tuple[str, ...]


@dataclass(frozen=True)
class Course:
    key: str
    name: str
    description: str = ""


class LevelRepository:
    """Ordered, read-only catalog of chapters and levels loaded from YAML.

    The index from level key to (chapter, position in chapter) is built once
    here and never changes afterwards, so one repository can be shared by
    every request.
    """

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base_dir = Path(base_dir) if base_dir is not None else default_levels_dir()
        self._course, self._chapters, self._levels = self._load_catalog()
        self._positions: Dict[str, Tuple[Chapter, int]] = {}
        for chapter in self._chapters:
            for index, level_key in enumerate(chapter.level_keys):
                self._positions[level_key] = (chapter, index)

    @property
    def course(self) -> Course:
        return self._course

    def all(self) -> List[Level]:
        """All levels in catalog order: chapter order, then position in chapter."""
        return [self._levels[key] for chapter in self._chapters for key in chapter.level_keys]

    def get(self, key: str) -> Level:
        try:
            return self._levels[key]
        except KeyError:
            raise LevelNotFoundError(key) from None

    def chapters(self) -> List[Chapter]:
        return list(self._chapters)

    def chapter_of(self, key: str) -> Chapter:
        return self._position(key)[0]

    def index_in_chapter(self, key: str) -> int:
        return self._position(key)[1]

    def previous_level(self, key: str) -> Optional[Level]:
        """The level before ``key`` in the same chapter, or None for a chapter's first level."""
        chapter, index = self._position(key)
        if index == 0:
            return None
        return self._levels[chapter.level_keys[index - 1]]

    def __contains__(self, key: object) -> bool:
        return key in self._levels

    def __len__(self) -> int:
        return len(self._levels)

    def _position(self, key: str) -> Tuple[Chapter, int]:
        try:
            return self._positions[key]
        except KeyError:
            raise LevelNotFoundError(key) from None

    def _load_catalog(self) -> Tuple[Course, List[Chapter], Dict[str, Level]]:
        base_dir = self._base_dir
        if not base_dir.exists():
            raise FileNotFoundError(f"Levels directory not found: {base_dir}")

        course = Course(key="course", name="CodeTrail")
        course_path = base_dir / "course.yaml"
        if course_path.exists():
            raw = _read_mapping(course_path)
            course = Course(
                key=str(raw.get("key", "course")),
                name=str(raw.get("name", "CodeTrail")).strip(),
                description=str(raw.get("description", "")).strip(),
            )

        def _sort_key(p: Path) -> tuple[int, str]:
            m = re.match(r"^chapter(\d+)$", p.stem)
            if m:
                return (int(m.group(1)), p.stem)
            return (10**9, p.stem)

        chapters: List[Chapter] = []
        levels: Dict[str, Level] = {}
        for chapter_path in sorted(base_dir.glob("chapter*.yaml"), key=_sort_key):
            raw = _read_mapping(chapter_path)
            chapter_key = raw.get("key") or chapter_path.stem
            title = raw.get("title")
            if not title or not isinstance(title, str):
                raise ValueError(f"{chapter_path.name}: missing or invalid 'title'")
            raw_levels = raw.get("levels")
            if not raw_levels or not isinstance(raw_levels, list):
                raise ValueError(f"{chapter_path.name}: 'levels' must be a non-empty list")

            # (order, list position, key); list position breaks ties
            ordered: List[Tuple[int, int, str]] = []
            for index, raw_level in enumerate(raw_levels):
                level = _parse_level(raw_level, str(chapter_key), chapter_path.name)
                if level.key in levels:
                    raise ValueError(f"{chapter_path.name}: duplicate level key '{level.key}'")
                levels[level.key] = level
                order = raw_level.get("order", index + 1)
                if isinstance(order, bool) or not isinstance(order, int):
                    raise ValueError(f"{chapter_path.name}: level '{level.key}' has a non-integer 'order'")
                ordered.append((order, index, level.key))
            level_keys = [key for _, _, key in sorted(ordered)]

            chapters.append(
                Chapter(
                    key=str(chapter_key),
                    title=title.strip(),
                    order=int(raw.get("order", len(chapters) + 1)),
                    level_keys=tuple(level_keys),
                )
            )

        if not levels:
            raise ValueError(f"No chapter files (chapter*.yaml) found in {base_dir}")
        chapters.sort(key=lambda c: (c.order, c.key))
        logger.debug("Loaded %d levels in %d chapters from %s", len(levels), len(chapters), base_dir)
        return course, chapters, levels


def _read_mapping(path: Path) -> Dict[str, Any]:
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not raw or not isinstance(raw, dict):
        raise ValueError(f"{path.name}: expected a YAML mapping")
    return raw


def _parse_level(raw: Any, chapter_key: str, source: str) -> Level:
    if not isinstance(raw, dict):
        raise ValueError(f"{source}: each level must be a mapping")
    key = raw.get("key")
    name = raw.get("name")
    if not key or not isinstance(key, str):
        raise ValueError(f"{source}: level missing or invalid 'key'")
    if not name or not isinstance(name, str):
        raise ValueError(f"{source}: level '{key}' missing or invalid 'name'")
    where = f"{source}: level '{key}'"

    if "grid" in raw:
        width, height, tiles = _tiles_from_grid(raw["grid"], where)
    elif "tiles" in raw:
        width, height = int(raw.get("width", 0)), int(raw.get("height", 0))
        if width <= 0 or height <= 0:
            raise ValueError(f"{where}: 'width' and 'height' are required with 'tiles'")
        tiles = tuple(
            Tile(
                x=int(t["x"]),
                y=int(t["y"]),
                walkable=bool(t.get("walkable", True)),
                collectible=t.get("collectible") or None,
            )
            for t in raw["tiles"]
        )
    else:
        raise ValueError(f"{where}: needs either 'grid' or 'tiles'")

    start_raw = raw.get("start") or {}
    facing = str(start_raw.get("facing", "east")).lower()
    if facing not in DIRECTIONS:
        raise ValueError(f"{where}: invalid start facing '{facing}'")
    start = Position(x=int(start_raw.get("x", 0)), y=int(start_raw.get("y", 0)), facing=facing)
    if not (0 <= start.x < width and 0 <= start.y < height):
        raise ValueError(f"{where}: start position is off the grid")

    goal_raw = raw.get("goal") or {}
    reach = goal_raw.get("reach")
    if isinstance(reach, dict):
        reach_target: Optional[Tuple[int, int]] = (int(reach["x"]), int(reach["y"]))
    elif isinstance(reach, (list, tuple)) and len(reach) == 2:
        reach_target = (int(reach[0]), int(reach[1]))
    elif reach is None:
        reach_target = None
    else:
        raise ValueError(f"{where}: 'goal.reach' must be {{x, y}} or [x, y]")
    goal = LevelGoal(
        collectibles_required=_optional_int(goal_raw.get("collectibles_required")),
        reach_target=reach_target,
        step_limit=_optional_int(goal_raw.get("step_limit")),
    )

    if "best_steps" not in raw:
        raise ValueError(f"{where}: missing 'best_steps'")

    rewards_raw = raw.get("rewards") or {}
    rewards = LevelRewards(
        stars_required=int(rewards_raw.get("stars_required", 3)),
        outfit_id=rewards_raw.get("outfit") or None,
    )

    hints = raw.get("hints") or []
    if isinstance(hints, str):
        hints = hints.splitlines()

    return Level(
        key=key,
        name=name.strip(),
        width=width,
        height=height,
        tiles=tiles,
        start=start,
        goal=goal,
        best_steps=int(raw["best_steps"]),
        hints=tuple(str(h).strip() for h in hints if str(h).strip()),
        allowed_instruction_kinds=frozenset(str(b).strip().upper() for b in raw.get("allowed_blocks") or []),
        comic=str(raw.get("comic", "")).strip(),
        rewards=rewards,
        chapter_key=chapter_key,
    )


def _tiles_from_grid(grid: Any, where: str) -> Tuple[int, int, Tuple[Tile, ...]]:
    if isinstance(grid, str):
        grid = [row for row in grid.splitlines() if row.strip()]
    if not grid or not isinstance(grid, list):
        raise ValueError(f"{where}: 'grid' must be a non-empty list of rows")
    rows = [str(row) for row in grid]
    width = len(rows[0])
    if any(len(row) != width for row in rows):
        raise ValueError(f"{where}: all grid rows must have the same length")

    tiles: List[Tile] = []
    for y, row in enumerate(rows):
        for x, symbol in enumerate(row):
            if symbol == WALKABLE_SYMBOL:
                tiles.append(Tile(x=x, y=y, walkable=True))
            elif symbol in BLOCKED_SYMBOLS:
                tiles.append(Tile(x=x, y=y, walkable=False))
            elif symbol in COLLECTIBLE_SYMBOLS:
                tiles.append(Tile(x=x, y=y, walkable=True, collectible=COLLECTIBLE_SYMBOLS[symbol]))
            else:
                raise ValueError(f"{where}: unknown grid symbol '{symbol}' at ({x}, {y})")
    return width, len(rows), tuple(tiles)


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)
