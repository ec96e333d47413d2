import pytest

from record_pipeline.dsl_parser import parse_stage
from record_pipeline.models import STAGE_TYPES, ConsoleStage, HoleStage, LiteralStage, TakeStage
from record_pipeline.record import Record
from record_pipeline.stages import (
    StageProcessor,
    build_processor,
    build_processors,
    source_records,
)


def _run(stage_text: str, records: list[Record]) -> list[Record]:
    """Feed every record, then flush, the way both executors do for a lone stage."""
    processor = build_processor(parse_stage(stage_text))
    output: list[Record] = []
    for record in records:
        if processor.satisfied:
            break
        output.extend(processor.process(record))
    output.extend(processor.flush())
    return output


def _texts(records: list[Record]) -> list[str]:
    return [record.rstrip() for record in records]


def test_every_stage_type_has_a_processor():
    samples = {
        "ConsoleStage": "CONSOLE",
        "HoleStage": "HOLE",
        "FilterStage": 'FILTER 0,1 = "A"',
        "SelectStage": "SELECT 0,1,0",
        "TakeStage": "TAKE 1",
        "SkipStage": "SKIP 1",
        "LocateStage": 'LOCATE "A"',
        "ChangeStage": 'CHANGE "A" "B"',
        "LiteralStage": 'LITERAL "A"',
        "UpperStage": "UPPER",
        "LowerStage": "LOWER",
        "ReverseStage": "REVERSE",
        "DuplicateStage": "DUPLICATE 2",
        "CountStage": "COUNT",
    }
    assert set(samples) == {stage_type.__name__ for stage_type in STAGE_TYPES}
    for text in samples.values():
        assert isinstance(build_processor(parse_stage(text)), StageProcessor)


def test_build_processor_rejects_unknown_descriptor():
    with pytest.raises(TypeError, match="no processor registered"):
        build_processor(object())


def test_build_processors_creates_fresh_instances():
    stage = TakeStage(count=1)
    first, second = build_processors([stage, stage])
    assert first is not second
    first.process(Record.blank())
    assert first.satisfied
    assert not second.satisfied


def test_console_passes_records_through(employees):
    assert _run("CONSOLE", employees) == employees


def test_hole_discards_everything(employees):
    assert _run("HOLE", employees) == []


def test_filter_equal_and_not_equal(employees):
    assert _texts(_run('FILTER 18,10 = "SALES"', employees)) == [
        "SMITH   JOHN      SALES     00050000",
        "DOE     JANE      SALES     00060000",
    ]
    assert len(_run('FILTER 18,10 != "SALES"', employees)) == 3


def test_filter_is_exact_field_match(employees):
    assert _run('FILTER 18,10 = "SALE"', employees) == []
    assert _run('FILTER 18,10 = "sales"', employees) == []


def test_select_builds_blank_record_in_list_order(employees):
    output = _run("SELECT 0,8,0; 28,8,8", employees[:1])
    assert _texts(output) == ["SMITH   00050000"]


def test_select_later_fields_overwrite_earlier_ones(employees):
    output = _run("SELECT 0,8,0; 28,8,4", employees[:1])
    assert output[0].field(0, 12) == "SMIT00050000"


def test_select_can_move_field_right(employees):
    output = _run("SELECT 0,5,75", employees[:1])
    assert output[0].text == " " * 75 + "SMITH"


def test_take_stops_after_limit(employees):
    processor = build_processor(parse_stage("TAKE 2"))
    assert not processor.satisfied
    assert processor.process(employees[0]) == [employees[0]]
    assert processor.process(employees[1]) == [employees[1]]
    assert processor.satisfied
    assert processor.process(employees[2]) == []


def test_take_zero_is_satisfied_immediately():
    assert build_processor(parse_stage("TAKE 0")).satisfied


def test_skip_drops_leading_records(employees):
    assert _run("SKIP 3", employees) == employees[3:]
    assert _run("SKIP 0", employees) == employees
    assert _run("SKIP 10", employees) == []


def test_locate_whole_record_and_window(employees):
    assert len(_run('LOCATE "ENGINEER"', employees)) == 2
    assert len(_run('NLOCATE "ENGINEER"', employees)) == 3
    assert _run('LOCATE 0,8 "ENGINEER"', employees) == []
    assert _texts(_run('LOCATE 0,8 "ON"', employees)) == [
        "JONES   MARY      ENGINEER  00075000",
        "WILSON  ALICE     ENGINEER  00080000",
    ]


def test_change_replaces_every_occurrence():
    output = _run('CHANGE "AB" "X"', [Record.from_text("AB AB ABAB")])
    assert _texts(output) == ["X X XX"]


def test_change_growing_text_is_truncated_to_width():
    record = Record.from_text("A" * 79 + "B")
    output = _run('CHANGE "B" "CDE"', [record])
    assert output[0].text == "A" * 79 + "C"


def test_change_without_match_leaves_record(employees):
    assert _run('CHANGE "ZZZ" "Q"', employees) == employees


def test_literal_appends_after_input(employees):
    output = _run('LITERAL "TRAILER"', employees[:2])
    assert _texts(output) == [employees[0].rstrip(), employees[1].rstrip(), "TRAILER"]


def test_literal_emits_on_empty_input():
    assert _texts(_run('LITERAL "ONLY"', [])) == ["ONLY"]


def test_upper_and_lower():
    record = Record.from_text("Mixed Case 123")
    assert _texts(_run("UPPER", [record])) == ["MIXED CASE 123"]
    assert _texts(_run("LOWER", [record])) == ["mixed case 123"]


def test_reverse_ignores_trailing_pad():
    output = _run("REVERSE", [Record.from_text("ABC")])
    assert output[0].text == "CBA" + " " * 77


def test_reverse_full_width_record():
    text = "".join(chr(ord("A") + index % 26) for index in range(80))
    output = _run("REVERSE", [Record.from_text(text)])
    assert output[0].text == text[::-1]


def test_duplicate_emits_consecutive_copies(employees):
    output = _run("DUPLICATE 3", employees[:2])
    assert output == [employees[0]] * 3 + [employees[1]] * 3


def test_count_emits_summary_on_flush(employees):
    assert _texts(_run("COUNT", employees)) == ["COUNT=5"]
    assert _texts(_run("COUNT", [])) == ["COUNT=0"]


def test_source_records():
    assert source_records(ConsoleStage()) is None
    assert source_records(HoleStage()) == []
    assert _texts(source_records(LiteralStage(text="HEADER"))) == ["HEADER"]


def test_source_records_rejects_non_source():
    with pytest.raises(TypeError, match="cannot be used as a source"):
        source_records(TakeStage(count=1))


def test_empty_locate_pattern_matches_every_record(employees):
    assert _run('LOCATE ""', employees) == employees
    assert _run('NLOCATE ""', employees) == []
