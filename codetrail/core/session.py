from __future__ import annotations

import time
from typing import Optional

from codetrail.core.hints import hint
from codetrail.core.levels import Level
from codetrail.core.progress import CompleteRequest
from codetrail.core.simulator import SimulationResult


class PlaySession:
    """Tracks one student's attempts at a single level.

    Counts runs and hint requests, remembers the last error code for the
    hint engine, and measures elapsed time so a successful run can be turned
    into a ``CompleteRequest``.
    """

    def __init__(self, level: Level, start_time: Optional[float] = None) -> None:
        """Start a session for ``level``, optionally at a given Unix timestamp."""
        self._level = level
        self._start_time = time.time() if start_time is None else start_time
        self._attempts = 0
        self._hints_used = 0
        self._last_error: Optional[str] = None
        self._best: Optional[SimulationResult] = None

    @property
    def level(self) -> Level:
        return self._level

    @property
    def attempts(self) -> int:
        """Number of runs recorded so far."""
        return self._attempts

    @property
    def hints_used(self) -> int:
        return self._hints_used

    @property
    def last_error(self) -> Optional[str]:
        """Error code of the most recent run, None if it succeeded or nothing ran yet."""
        return self._last_error

    @property
    def best_result(self) -> Optional[SimulationResult]:
        """Highest-starred successful run, fewest steps on ties."""
        return self._best

    def record(self, result: SimulationResult) -> None:
        """Record the outcome of one run."""
        self._attempts += 1
        self._last_error = result.error_code
        if result.success and (
            self._best is None
            or result.stars > self._best.stars
            or (result.stars == self._best.stars and result.steps < self._best.steps)
        ):
            self._best = result

    def request_hint(self) -> str:
        """Return the next hint and count it against the session."""
        self._hints_used += 1
        return hint(self._level, self._attempts, self._last_error)

    def elapsed_seconds(self, now: Optional[float] = None) -> float:
        current = time.time() if now is None else now
        return max(0.0, current - self._start_time)

    def is_complete(self) -> bool:
        """True once at least one run has succeeded."""
        return self._best is not None

    def complete_request(self, now: Optional[float] = None) -> CompleteRequest:
        """Settlement for the best run so far. Raises ValueError if no run succeeded."""
        if self._best is None:
            raise ValueError(f"No successful run recorded for level {self._level.key}")
        return CompleteRequest.from_result(
            self._best,
            hints_used=self._hints_used,
            duration_seconds=self.elapsed_seconds(now),
        )
