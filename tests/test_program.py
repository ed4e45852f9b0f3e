"""Tests for codetrail.core.program – instruction tree parsing."""

from __future__ import annotations

import pytest

from codetrail.core.errors import ProgramFormatError, ValidationError
from codetrail.core.program import (
    MAX_DEPTH,
    Collect,
    Condition,
    Conditional,
    Move,
    Repeat,
    TooDeepInstruction,
    Turn,
    UnknownInstruction,
    block_code_for,
    parse_instruction,
    parse_program,
    program_to_dicts,
    walk,
)


class TestParseProgram:
    def test_flat_program(self):
        program = parse_program([{"type": "move"}, {"type": "turn", "direction": "left"}, {"type": "collect"}])
        assert program == [Move(), Turn("left"), Collect()]

    def test_nested(self):
        program = parse_program([
            {"type": "repeat", "times": 2, "body": [
                {"type": "conditional",
                 "condition": {"type": "tile-ahead-walkable"},
                 "truthy": [{"type": "move"}],
                 "falsy": [{"type": "turn", "direction": "right"}]},
            ]},
        ])
        assert program == [
            Repeat(times=2, body=(
                Conditional(Condition("tile-ahead-walkable"), truthy=(Move(),), falsy=(Turn("right"),)),
            )),
        ]

    def test_type_is_case_insensitive(self):
        assert parse_instruction({"type": " MOVE "}) == Move()

    def test_conditional_without_condition(self):
        instruction = parse_instruction({"type": "conditional", "truthy": [{"type": "move"}]})
        assert instruction.condition is None
        assert instruction.falsy == ()

    def test_unknown_kind_is_kept(self):
        instruction = parse_instruction({"type": "jump", "height": 2})
        assert isinstance(instruction, UnknownInstruction)
        assert instruction.block_code == "JUMP"
        assert instruction.to_dict() == {"type": "jump", "height": 2}

    def test_already_parsed_instructions_pass_through(self):
        move = Move()
        assert parse_program([move])[0] is move

    def test_empty_program_parses(self):
        assert parse_program([]) == []


class TestParseErrors:
    @pytest.mark.parametrize(
        "raw",
        [
            {"not": "a list"},
            [42],
            [{}],
            [{"type": "turn", "direction": "up"}],
            [{"type": "repeat", "times": "3", "body": []}],
            [{"type": "repeat", "times": True, "body": []}],
            [{"type": "repeat", "times": -1, "body": []}],
            [{"type": "repeat", "times": 2}],
            [{"type": "conditional", "condition": {}, "truthy": []}],
            [{"type": "conditional", "truthy": {"type": "move"}}],
        ],
    )
    def test_rejected(self, raw):
        with pytest.raises(ProgramFormatError):
            parse_program(raw)

    def test_format_error_is_a_validation_error(self):
        assert issubclass(ProgramFormatError, ValidationError)

    def test_error_names_the_path(self):
        with pytest.raises(ProgramFormatError, match=r"program\[1\]\.body\[0\]"):
            parse_program([{"type": "move"}, {"type": "repeat", "times": 1, "body": [{"type": "turn"}]}])


class TestSerialisation:
    def test_round_trip_of_nested_program(self):
        raw = [
            {"type": "move"},
            {"type": "repeat", "times": 3, "body": [{"type": "collect"}]},
            {"type": "conditional", "condition": {"type": "collectibles-remaining"},
             "truthy": [{"type": "collect"}], "falsy": []},
        ]
        assert program_to_dicts(parse_program(raw)) == raw

    def test_absent_condition_serialises_as_none(self):
        assert Conditional(condition=None).to_dict()["condition"] is None


class TestBlockCodes:
    def test_turn_codes(self):
        assert Turn("left").block_code == "TURN_LEFT"
        assert Turn("right").block_code == "TURN_RIGHT"

    def test_block_code_for(self):
        assert block_code_for("jump-high") == "JUMP_HIGH"
        assert block_code_for("--") == "UNKNOWN"


class TestWalk:
    def test_depth_first_left_to_right(self):
        program = parse_program([
            {"type": "repeat", "times": 1, "body": [{"type": "move"}]},
            {"type": "conditional", "condition": "tile-ahead-walkable",
             "truthy": [{"type": "collect"}], "falsy": [{"type": "turn", "direction": "left"}]},
        ])
        kinds = [i.block_code for i in walk(program)]
        assert kinds == ["REPEAT", "MOVE", "CONDITIONAL", "COLLECT", "TURN_LEFT"]

    def test_deep_program_walks_without_recursion(self):
        program = parse_program([deeply_nested(5000)])
        assert sum(1 for _ in walk(program)) == MAX_DEPTH + 2


def deeply_nested(depth: int) -> dict:
    """``depth`` repeat blocks, each holding the next, around a single move."""
    node = {"type": "move"}
    for _ in range(depth):
        node = {"type": "repeat", "times": 1, "body": [node]}
    return node


class TestDeepNesting:
    def test_parses_far_past_the_recursion_limit(self):
        program = parse_program([deeply_nested(500)])
        assert isinstance(program[0], Repeat)

    def test_blocks_past_max_depth_are_left_unparsed(self):
        chain = list(walk(parse_program([deeply_nested(500)])))
        assert all(isinstance(i, Repeat) for i in chain[:MAX_DEPTH + 1])
        assert chain[-1] == TooDeepInstruction(kind="repeat")
        assert chain[-1].block_code is None

    def test_max_depth_block_is_fully_parsed(self):
        chain = list(walk(parse_program([deeply_nested(MAX_DEPTH)])))
        assert chain[-1] == Move()

    def test_unparsed_items_keep_their_kind(self):
        chain = list(walk(parse_program([deeply_nested(MAX_DEPTH + 1)])))
        assert chain[-1] == TooDeepInstruction(kind="move")
        assert chain[-1].to_dict() == {"type": "move"}

    def test_deep_program_serialises(self):
        data = parse_program([deeply_nested(500)])[0].to_dict()
        for _ in range(MAX_DEPTH + 1):
            data = data["body"][0]
        assert data == {"type": "repeat"}

    def test_malformed_block_at_the_limit_still_rejected(self):
        node = {"type": "repeat", "times": 1, "body": "move"}
        for _ in range(MAX_DEPTH):
            node = {"type": "repeat", "times": 1, "body": [node]}
        with pytest.raises(ProgramFormatError):
            parse_program([node])
