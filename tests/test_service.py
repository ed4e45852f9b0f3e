"""Tests for codetrail.core.service – the student-facing operations."""

from __future__ import annotations

import pytest

from codetrail.core.errors import (
    E_COLLIDE,
    E_LOOP_DEPTH,
    E_STEP_LIMIT,
    EmptyProgramError,
    InvalidInstructionError,
    LevelLockedError,
    LevelNotFoundError,
    ProgramFormatError,
    SandboxLockedError,
)
from codetrail.core.levels import LevelRepository
from codetrail.core.progress import CompleteRequest, ProgressStore
from codetrail.core.service import CodeTrailService
from codetrail.ui.models import COMPLETED, UNLOCKED

MOVE = {"type": "move"}
RIGHT = {"type": "turn", "direction": "right"}


@pytest.fixture()
def service(catalog: LevelRepository) -> CodeTrailService:
    return CodeTrailService(catalog, ProgressStore(catalog, clock=lambda: 1000.0))


# ---------------------------------------------------------------------------
# run_program
# ---------------------------------------------------------------------------

class TestRunProgram:
    def test_success(self, service: CodeTrailService):
        result = service.run_program("s1", "level-1-1", [MOVE] * 4)
        assert result.success
        assert result.stars == 3

    def test_failure_is_a_result_not_an_error(self, service: CodeTrailService):
        result = service.run_program("s1", "level-1-1", [RIGHT, MOVE])
        assert result.error_code == E_COLLIDE

    def test_does_not_record_progress(self, service: CodeTrailService):
        service.run_program("s1", "level-1-1", [MOVE] * 4)
        assert service.store.get_level_progress("s1", "level-1-1") is None

    def test_unknown_level(self, service: CodeTrailService):
        with pytest.raises(LevelNotFoundError):
            service.run_program("s1", "level-9-9", [MOVE])

    def test_empty_program(self, service: CodeTrailService):
        with pytest.raises(EmptyProgramError):
            service.run_program("s1", "level-1-1", [])

    def test_disallowed_block(self, service: CodeTrailService):
        with pytest.raises(InvalidInstructionError) as exc:
            service.run_program("s1", "level-1-1", [{"type": "repeat", "times": 4, "body": [MOVE]}])
        assert exc.value.code == "REPEAT"

    def test_malformed_program(self, service: CodeTrailService):
        with pytest.raises(ProgramFormatError):
            service.run_program("s1", "level-1-1", {"type": "move"})

    @pytest.mark.parametrize("level_key", ["level-2-2", "level-3-3"])
    def test_deeply_nested_program_reports_loop_depth(self, service: CodeTrailService, level_key):
        node = MOVE
        for _ in range(500):
            node = {"type": "repeat", "times": 1, "body": [node]}
        result = service.run_program("s1", level_key, [node])
        assert result.error_code == E_LOOP_DEPTH
        assert result.stars == 0

    def test_unrestricted_level_accepts_any_block(self, service: CodeTrailService):
        result = service.run_program("s1", "level-3-3", [{"type": "repeat", "times": 1, "body": [MOVE]}])
        assert result.error_code is not None
        assert result.steps == 2


# ---------------------------------------------------------------------------
# complete_level / get_map / get_level
# ---------------------------------------------------------------------------

class TestProgression:
    def test_complete_level_unlocks_next(self, service: CodeTrailService):
        result = service.run_program("s1", "level-1-1", [MOVE] * 4)
        record = service.complete_level("s1", "level-1-1", CompleteRequest.from_result(result))
        assert record.stars == 3
        assert record.best_difference == 0

        states = {ls.level.key: ls for c in service.get_map("s1") for ls in c.levels}
        assert states["level-1-1"].status == COMPLETED
        assert states["level-1-2"].status == UNLOCKED
        assert states["level-1-2"].is_current

    def test_get_level(self, service: CodeTrailService):
        state = service.get_level("s1", "level-1-1")
        assert state.status == UNLOCKED
        assert state.stars == 0

    def test_get_level_locked(self, service: CodeTrailService):
        with pytest.raises(LevelLockedError):
            service.get_level("s1", "level-1-2")

    def test_get_level_unknown(self, service: CodeTrailService):
        with pytest.raises(LevelNotFoundError):
            service.get_level("s1", "nope")

    def test_get_level_after_completion(self, service: CodeTrailService):
        service.complete_level("s1", "level-1-1", CompleteRequest(stars=2, steps=5))
        state = service.get_level("s1", "level-1-1")
        assert state.status == COMPLETED
        assert state.best_difference == 1


# ---------------------------------------------------------------------------
# get_hint
# ---------------------------------------------------------------------------

class TestGetHint:
    def test_ladder(self, service: CodeTrailService, catalog: LevelRepository):
        assert service.get_hint("s1", "level-1-1", 0) == catalog.get("level-1-1").hints[0]

    def test_error_hint(self, service: CodeTrailService):
        assert "repeat" in service.get_hint("s1", "level-1-1", 3, E_STEP_LIMIT)

    def test_unknown_level(self, service: CodeTrailService):
        with pytest.raises(LevelNotFoundError):
            service.get_hint("s1", "nope", 0)


# ---------------------------------------------------------------------------
# sandbox_run
# ---------------------------------------------------------------------------

class TestSandbox:
    def test_locked_until_first_clear(self, service: CodeTrailService):
        with pytest.raises(SandboxLockedError):
            service.sandbox_run("s1", "level-1-1", [MOVE])

    def test_ignores_block_restrictions(self, service: CodeTrailService):
        service.complete_level("s1", "level-1-1", CompleteRequest(stars=1, steps=8))
        result = service.sandbox_run("s1", "level-1-1", [{"type": "repeat", "times": 4, "body": [MOVE]}])
        assert result.success
        assert result.stars == 2

    def test_custom_step_limit(self, service: CodeTrailService):
        service.complete_level("s1", "level-1-1", CompleteRequest(stars=1, steps=8))
        result = service.sandbox_run("s1", "level-1-1", [MOVE] * 4, step_limit=2)
        assert result.error_code == E_STEP_LIMIT

    def test_empty_program(self, service: CodeTrailService):
        service.complete_level("s1", "level-1-1", CompleteRequest(stars=1, steps=8))
        with pytest.raises(EmptyProgramError):
            service.sandbox_run("s1", "level-1-1", [])

    def test_does_not_touch_progress(self, service: CodeTrailService):
        service.complete_level("s1", "level-1-1", CompleteRequest(stars=1, steps=8))
        service.sandbox_run("s1", "level-1-2", [MOVE, MOVE])
        assert service.store.get_level_progress("s1", "level-1-2") is None
