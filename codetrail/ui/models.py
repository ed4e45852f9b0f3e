"""Map and level view models handed to clients."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from codetrail.core.levels import Chapter, Level, LevelRepository
from codetrail.core.progress import StudentProfile

LOCKED = "locked"
UNLOCKED = "unlocked"
COMPLETED = "completed"


@dataclass
class LevelState:
    """Map state for a single level: status, stars, and whether it is the next one to play."""

    level: Level
    status: str
    stars: int = 0
    best_difference: Optional[int] = None
    is_current: bool = False

    @property
    def unlocked(self) -> bool:
        return self.status != LOCKED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.level.key,
            "name": self.level.name,
            "status": self.status,
            "stars": self.stars,
            "best_difference": self.best_difference,
            "is_current": self.is_current,
        }


@dataclass
class ChapterState:
    chapter: Chapter
    levels: List[LevelState] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.chapter.key,
            "title": self.chapter.title,
            "levels": [state.to_dict() for state in self.levels],
        }


def level_status(levels: LevelRepository, profile: StudentProfile, level_key: str) -> str:
    """Completed once the level has stars; otherwise unlocked when first in its
    chapter or when the previous level in the chapter has stars."""
    if profile.stars_for(level_key) > 0:
        return COMPLETED
    previous = levels.previous_level(level_key)
    if previous is None or profile.stars_for(previous.key) > 0:
        return UNLOCKED
    return LOCKED


def build_chapter_states(levels: LevelRepository, profile: StudentProfile) -> List[ChapterState]:
    """Compute status for every level, chapter by chapter, and mark the current target."""
    chapters: List[ChapterState] = []
    for chapter in levels.chapters():
        states = []
        for key in chapter.level_keys:
            record = profile.progress.get(key)
            states.append(
                LevelState(
                    level=levels.get(key),
                    status=level_status(levels, profile, key),
                    stars=record.stars if record is not None else 0,
                    best_difference=record.best_difference if record is not None else None,
                )
            )
        chapters.append(ChapterState(chapter=chapter, levels=states))

    for chapter_state in chapters:
        current = next((st for st in chapter_state.levels if st.status == UNLOCKED), None)
        if current is not None:
            current.is_current = True
            break
    return chapters
