from __future__ import annotations

import copy
import json
import logging
import threading
import time
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from codetrail.core.errors import ValidationError
from codetrail.core.goals import MAX_STARS
from codetrail.core.levels import LevelRepository

logger = logging.getLogger(__name__)

DEFAULT_OUTFIT = "starter-cape"

BADGE_FIRST_CLEAR = "first-clear"
BADGE_TRAVELER = "traveler"
BADGE_PERFECTIONIST = "perfectionist"
BADGE_CHAPTER_MASTER = "chapter-master"
BADGE_STAR_COLLECTOR = "star-collector"

TRAVELER_LEVELS = 5
PERFECTIONIST_LEVELS = 3
STAR_COLLECTOR_STARS = 30


@dataclass
class LevelProgress:
    stars: int = 0
    steps: int = 0
    hints_used: int = 0
    duration_seconds: float = 0.0
    best_difference: Optional[int] = None
    completed_at_ms: Optional[int] = None
    replay_log: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class AvatarState:
    equipped: str = DEFAULT_OUTFIT
    unlocked: Set[str] = field(default_factory=lambda: {DEFAULT_OUTFIT})


@dataclass
class Achievements:
    badges: List[str] = field(default_factory=list)
    compendium: List[str] = field(default_factory=list)


@dataclass
class StudentSettings:
    volume: float = 0.8
    low_motion: bool = False
    language: str = "en"
    resettable: bool = True


@dataclass
class StudentProfile:
    student_id: str
    avatar: AvatarState = field(default_factory=AvatarState)
    achievements: Achievements = field(default_factory=Achievements)
    settings: StudentSettings = field(default_factory=StudentSettings)
    sandbox_unlocked: bool = False
    progress: Dict[str, LevelProgress] = field(default_factory=dict)

    def stars_for(self, level_key: str) -> int:
        record = self.progress.get(level_key)
        return record.stars if record is not None else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "avatar": {"equipped": self.avatar.equipped, "unlocked": sorted(self.avatar.unlocked)},
            "achievements": asdict(self.achievements),
            "settings": asdict(self.settings),
            "sandbox_unlocked": self.sandbox_unlocked,
            "progress": {key: asdict(value) for key, value in self.progress.items()},
        }


@dataclass(frozen=True)
class CompleteRequest:
    """Settlement data for one finished level attempt."""

    stars: int
    steps: int
    hints_used: int = 0
    duration_seconds: float = 0.0
    replay_log: Sequence[Dict[str, Any]] = ()

    def __post_init__(self) -> None:
        if not 0 <= self.stars <= MAX_STARS:
            raise ValidationError(f"stars must be between 0 and {MAX_STARS}, got {self.stars}")
        if self.steps < 0 or self.hints_used < 0 or self.duration_seconds < 0:
            raise ValidationError("steps, hints_used and duration_seconds must not be negative")

    @classmethod
    def from_result(cls, result: Any, hints_used: int = 0, duration_seconds: float = 0.0) -> "CompleteRequest":
        """Build a request from a SimulationResult."""
        return cls(
            stars=result.stars,
            steps=result.steps,
            hints_used=hints_used,
            duration_seconds=duration_seconds,
            replay_log=tuple(result.replay_log),
        )


def merge_progress(
    existing: Optional[LevelProgress],
    request: CompleteRequest,
    best_steps: int,
    now_ms: int,
) -> LevelProgress:
    """Fold a completion into the stored record.

    Stars only go up; hints and duration accumulate. Steps and the difference
    to par are replaced only by a starred run that is strictly shorter (or the
    first starred run), and the replay log follows whichever run set a best.
    """
    difference = request.steps - best_steps if request.stars > 0 else None
    if existing is None:
        return LevelProgress(
            stars=request.stars,
            steps=request.steps,
            hints_used=request.hints_used,
            duration_seconds=request.duration_seconds,
            best_difference=difference,
            completed_at_ms=now_ms,
            replay_log=list(request.replay_log),
        )

    merged = copy.deepcopy(existing)
    improved = request.stars > 0 and (existing.best_difference is None or request.steps < existing.steps)
    stars_rose = request.stars > existing.stars

    merged.stars = max(existing.stars, request.stars)
    merged.hints_used = existing.hints_used + request.hints_used
    merged.duration_seconds = existing.duration_seconds + request.duration_seconds
    merged.completed_at_ms = now_ms
    if improved:
        merged.steps = request.steps
        merged.best_difference = difference
    if improved or stars_rose:
        merged.replay_log = list(request.replay_log)
    return merged


def recompute_derived_state(profile: StudentProfile, levels: LevelRepository) -> None:
    """Rebuild sandbox unlock, badges and compendium from the progress map.

    Only catalog levels count; everything is recomputed from scratch.
    """
    keys = [level.key for level in levels.all()]
    stars = {key: profile.stars_for(key) for key in keys}
    completed = sum(1 for value in stars.values() if value > 0)
    total_stars = sum(stars.values())
    perfect = [key for key in keys if stars[key] == MAX_STARS]

    badges: Set[str] = set()
    if completed >= 1:
        badges.add(BADGE_FIRST_CLEAR)
    if completed >= TRAVELER_LEVELS:
        badges.add(BADGE_TRAVELER)
    if len(perfect) >= PERFECTIONIST_LEVELS:
        badges.add(BADGE_PERFECTIONIST)
    if keys and completed == len(keys):
        badges.add(BADGE_CHAPTER_MASTER)
    if total_stars >= STAR_COLLECTOR_STARS:
        badges.add(BADGE_STAR_COLLECTOR)

    profile.sandbox_unlocked = completed > 0
    profile.achievements = Achievements(
        badges=sorted(badges),
        compendium=sorted(f"{key}-3star" for key in perfect),
    )


class ProgressStore:
    """Per-student profiles and level progress.

    One re-entrant lock guards every profile. Reads return deep copies and
    each mutation holds the lock for the whole read-modify-write, with the
    derived-state recompute and the save inside it. With ``file_path`` set
    the profiles persist to JSON; otherwise they live in memory only.
    """

    def __init__(
        self,
        levels: LevelRepository,
        file_path: Optional[Path] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._levels = levels
        self._file_path = Path(file_path) if file_path is not None else None
        self._clock = clock
        self._lock = threading.RLock()
        self._profiles: Dict[str, StudentProfile] = self._load()

    def get_profile(self, student_id: str) -> StudentProfile:
        with self._lock:
            return copy.deepcopy(self._ensure_profile(student_id))

    def get_level_progress(self, student_id: str, level_key: str) -> Optional[LevelProgress]:
        with self._lock:
            profile = self._profiles.get(student_id)
            record = profile.progress.get(level_key) if profile is not None else None
            return copy.deepcopy(record)

    def student_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._profiles)

    def complete(self, student_id: str, level_key: str, request: CompleteRequest) -> LevelProgress:
        """Record a finished attempt and refresh rewards and achievements."""
        level = self._levels.get(level_key)
        with self._lock:
            profile = self._ensure_profile(student_id)
            now_ms = int(self._clock() * 1000)
            record = merge_progress(profile.progress.get(level_key), request, level.best_steps, now_ms)
            profile.progress[level_key] = record

            outfit = level.rewards.outfit_id
            if outfit and record.stars >= level.rewards.stars_required and outfit not in profile.avatar.unlocked:
                profile.avatar.unlocked.add(outfit)
                logger.info("Student %s unlocked outfit %s", student_id, outfit)

            badges_before = set(profile.achievements.badges)
            recompute_derived_state(profile, self._levels)
            new_badges = sorted(set(profile.achievements.badges) - badges_before)
            if new_badges:
                logger.info("Student %s earned badges: %s", student_id, ", ".join(new_badges))
            logger.info(
                "Student %s completed %s: stars=%d steps=%d", student_id, level_key, record.stars, record.steps
            )
            self._save()
            return copy.deepcopy(record)

    def update_settings(self, student_id: str, **changes: Any) -> StudentSettings:
        """Merge ``changes`` into the student's settings. Raises ValidationError on bad keys or values."""
        known = {f.name for f in fields(StudentSettings)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ValidationError(f"Unknown settings: {', '.join(unknown)}")
        checked = {name: _check_setting(name, value) for name, value in changes.items()}
        with self._lock:
            profile = self._ensure_profile(student_id)
            for name, value in checked.items():
                setattr(profile.settings, name, value)
            recompute_derived_state(profile, self._levels)
            self._save()
            return copy.deepcopy(profile.settings)

    def equip_avatar(self, student_id: str, outfit_id: str) -> AvatarState:
        with self._lock:
            profile = self._ensure_profile(student_id)
            if outfit_id not in profile.avatar.unlocked:
                raise ValidationError(f"Outfit {outfit_id} is not unlocked")
            profile.avatar.equipped = outfit_id
            recompute_derived_state(profile, self._levels)
            self._save()
            return copy.deepcopy(profile.avatar)

    def reset(self, student_id: str) -> None:
        """Clear progress, avatar and achievements back to defaults. Settings are kept."""
        with self._lock:
            previous = self._profiles.get(student_id)
            profile = StudentProfile(student_id=student_id)
            if previous is not None:
                profile.settings = previous.settings
            recompute_derived_state(profile, self._levels)
            self._profiles[student_id] = profile
            logger.info("Reset progress for student %s", student_id)
            self._save()

    def save(self) -> None:
        """Persist current state to disk."""
        with self._lock:
            self._save()

    def _ensure_profile(self, student_id: str) -> StudentProfile:
        # Caller holds the lock.
        profile = self._profiles.get(student_id)
        if profile is None:
            profile = StudentProfile(student_id=student_id)
            recompute_derived_state(profile, self._levels)
            self._profiles[student_id] = profile
        return profile

    def _load(self) -> Dict[str, StudentProfile]:
        profiles: Dict[str, StudentProfile] = {}
        if self._file_path is None or not self._file_path.exists():
            return profiles
        try:
            payload = json.loads(self._file_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not load progress from %s: %s", self._file_path, e)
            return profiles

        students = payload.get("students", {}) if isinstance(payload, dict) else {}
        if not isinstance(students, dict):
            logger.warning("Ignoring malformed 'students' section in %s", self._file_path)
            return profiles
        for student_id, value in students.items():
            try:
                profile = profile_from_dict(student_id, value)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning("Skipping unreadable profile %s in %s: %s", student_id, self._file_path, e)
                continue
            recompute_derived_state(profile, self._levels)
            profiles[student_id] = profile
        return profiles

    def _save(self) -> None:
        if self._file_path is None:
            return
        payload = {"students": {key: value.to_dict() for key, value in self._profiles.items()}}
        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            self._file_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not save progress to %s: %s", self._file_path, e)


def _check_setting(name: str, value: Any) -> Any:
    if name == "volume":
        # bool is an int subclass; reject it explicitly
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"volume must be a number, got {value!r}")
        if not 0.0 <= value <= 1.0:
            raise ValidationError("volume must be between 0 and 1")
        return float(value)
    if name == "language":
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"language must be a non-empty string, got {value!r}")
        return value.strip()
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be true or false, got {value!r}")
    return value


def profile_from_dict(student_id: str, data: Dict[str, Any]) -> StudentProfile:
    """Rebuild a profile from its JSON form. Achievements and sandbox state are not read back."""
    profile = StudentProfile(student_id=student_id)

    avatar = data.get("avatar") or {}
    unlocked = set(avatar.get("unlocked") or []) | {DEFAULT_OUTFIT}
    equipped = avatar.get("equipped") or DEFAULT_OUTFIT
    profile.avatar = AvatarState(equipped=equipped if equipped in unlocked else DEFAULT_OUTFIT, unlocked=unlocked)

    settings = data.get("settings") or {}
    defaults = StudentSettings()
    profile.settings = StudentSettings(
        volume=float(settings.get("volume", defaults.volume)),
        low_motion=bool(settings.get("low_motion", defaults.low_motion)),
        language=str(settings.get("language", defaults.language)),
        resettable=bool(settings.get("resettable", defaults.resettable)),
    )

    for key, value in (data.get("progress") or {}).items():
        best_difference = value.get("best_difference")
        completed_at = value.get("completed_at_ms")
        profile.progress[key] = LevelProgress(
            stars=int(value.get("stars", 0)),
            steps=int(value.get("steps", 0)),
            hints_used=int(value.get("hints_used", 0)),
            duration_seconds=float(value.get("duration_seconds", 0.0)),
            best_difference=int(best_difference) if best_difference is not None else None,
            completed_at_ms=int(completed_at) if completed_at is not None else None,
            replay_log=list(value.get("replay_log") or []),
        )
    return profile
