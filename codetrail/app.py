"""Command-line entry point for the CodeTrail engine."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from codetrail.core.errors import CodeTrailError
from codetrail.core.levels import LevelRepository
from codetrail.core.progress import CompleteRequest, ProgressStore
from codetrail.core.service import CodeTrailService


def configure_logging(verbose: bool = False) -> None:
    """Configure application-wide logging with a standard format."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def default_progress_file() -> Path:
    return Path.home() / ".codetrail" / "progress.json"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="codetrail", description="Run block programs against CodeTrail levels.")
    parser.add_argument("--levels-dir", type=Path, default=None, help="directory holding course/chapter YAML files")
    parser.add_argument("--progress-file", type=Path, default=default_progress_file())
    parser.add_argument("--student", default="student-1", help="student id (default: %(default)s)")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    run_cmd = sub.add_parser("run", help="simulate a program file (JSON list of instructions)")
    run_cmd.add_argument("level")
    run_cmd.add_argument("program", help="path to the program JSON, or - for stdin")
    run_cmd.add_argument("--complete", action="store_true", help="record the result when the run succeeds")
    run_cmd.add_argument("--hints", type=int, default=0, help="hints used, reported on completion")
    run_cmd.add_argument("--duration", type=float, default=0.0, help="seconds spent, reported on completion")

    sub.add_parser("map", help="show chapters with level status")

    hint_cmd = sub.add_parser("hint", help="get a hint for a level")
    hint_cmd.add_argument("level")
    hint_cmd.add_argument("--attempts", type=int, default=0)
    hint_cmd.add_argument("--last-error", default=None)

    sub.add_parser("profile", help="show the student's profile")
    sub.add_parser("reset", help="clear the student's progress")
    return parser


def _read_program(source: str) -> Any:
    text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    return json.loads(text)


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def run(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, execute one command and return the exit status."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    levels = LevelRepository(args.levels_dir)
    store = ProgressStore(levels, file_path=args.progress_file)
    service = CodeTrailService(levels, store)

    try:
        if args.command == "run":
            try:
                program = _read_program(args.program)
            except (OSError, json.JSONDecodeError) as e:
                logging.error("Could not read program %s: %s", args.program, e)
                return 2
            result = service.run_program(args.student, args.level, program)
            output = {"result": result.to_dict()}
            if args.complete and result.success:
                request = CompleteRequest.from_result(result, hints_used=args.hints, duration_seconds=args.duration)
                record = service.complete_level(args.student, args.level, request)
                output["progress"] = {"stars": record.stars, "steps": record.steps, "best_difference": record.best_difference}
            _emit(output)
            return 0 if result.success else 1
        if args.command == "map":
            _emit({"chapters": [chapter.to_dict() for chapter in service.get_map(args.student)]})
        elif args.command == "hint":
            _emit({"hint": service.get_hint(args.student, args.level, args.attempts, args.last_error)})
        elif args.command == "profile":
            profile = store.get_profile(args.student).to_dict()
            # replay logs are long; the profile view only needs the summary
            for record in profile["progress"].values():
                record.pop("replay_log", None)
            _emit(profile)
        elif args.command == "reset":
            store.reset(args.student)
    except CodeTrailError as e:
        logging.error("%s", e)
        return 2
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
