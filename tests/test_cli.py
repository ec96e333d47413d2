import json
from pathlib import Path

import pytest

from record_pipeline.cli import build_parser, main, read_records
from record_pipeline.config import CONFIG_ENV_VAR
from record_pipeline.errors import RecordWidthError

SPECS_DIR = Path(__file__).parent / "specs"
INPUT_FILE = SPECS_DIR / "input-fixed-80.data"


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.chdir(tmp_path)


def _spec(name: str) -> str:
    return str(SPECS_DIR / name)


def test_run_writes_trimmed_records_to_stdout(capsys):
    assert main(["run", _spec("filter-sales.pipe"), str(INPUT_FILE)]) == 0
    assert capsys.readouterr().out == "SMITH   00050000\nDOE     00060000\nTAYLOR  00045000\n"


@pytest.mark.parametrize("executor", ["batch", "rat"])
def test_run_to_output_file(executor, tmp_path):
    output = tmp_path / "out" / "result.txt"
    code = main(
        [
            "run",
            _spec("count-filtered.pipe"),
            str(INPUT_FILE),
            "-o",
            str(output),
            "--executor",
            executor,
        ]
    )
    assert code == 0
    assert output.read_text(encoding="ascii") == "COUNT=2\n"


def test_run_all_blocks_in_order(capsys):
    assert main(["run", _spec("literal-header-footer.pipe"), str(INPUT_FILE)]) == 0
    assert capsys.readouterr().out == "=== EMPLOYEES ===\n=== END ===\n"


def test_blank_input_lines_are_skipped(tmp_path, capsys):
    data = tmp_path / "gappy.data"
    data.write_text("FIRST\n\nSECOND\r\n\n", encoding="ascii")
    assert main(["run", _spec("non-marketing.pipe"), str(data)]) == 0
    assert capsys.readouterr().out == "FIRST\nSECOND\n"


def test_over_width_input_fails_unless_truncating(tmp_path, capsys):
    data = tmp_path / "wide.data"
    data.write_text("A" * 85 + "\n", encoding="ascii")

    assert main(["run", _spec("non-marketing.pipe"), str(data)]) == 1
    assert "maximum is 80" in capsys.readouterr().err

    assert main(["run", _spec("non-marketing.pipe"), str(data), "--truncate"]) == 0
    assert capsys.readouterr().out == "A" * 80 + "\n"


def test_parse_error_exits_with_one(tmp_path, capsys):
    bad = tmp_path / "bad.pipe"
    bad.write_text('PIPE CONSOLE\n| LOCATE "oops\n| CONSOLE\n', encoding="utf-8")
    assert main(["run", str(bad), str(INPUT_FILE)]) == 1
    err = capsys.readouterr().err
    assert "error: Line 2: " in err
    assert "unterminated string" in err


def test_missing_input_file_exits_with_one(tmp_path, capsys):
    assert main(["run", _spec("non-marketing.pipe"), str(tmp_path / "absent.data")]) == 1
    assert "error: " in capsys.readouterr().err


def test_unknown_executor_is_a_usage_error():
    with pytest.raises(SystemExit) as excinfo:
        main(["run", _spec("non-marketing.pipe"), "--executor", "parallel"])
    assert excinfo.value.code == 2


def test_config_file_selects_executor(tmp_path):
    config = tmp_path / "settings.toml"
    config.write_text('executor = "rat"\n', encoding="utf-8")
    trace = tmp_path / "trace.jsonl"
    code = main(
        [
            "run",
            _spec("count-filtered.pipe"),
            str(INPUT_FILE),
            "-o",
            str(tmp_path / "out.txt"),
            "--config",
            str(config),
            "--trace-jsonl",
            str(trace),
        ]
    )
    assert code == 0
    rows = [json.loads(line) for line in trace.read_text(encoding="utf-8").splitlines()]
    assert {row["kind"] for row in rows} == {"record", "flush"}
    assert sum(1 for row in rows if row["kind"] == "record") == 8
    assert all(row["block"] == 1 for row in rows)


def test_batch_trace_has_stage_rows(tmp_path):
    trace = tmp_path / "trace.jsonl"
    code = main(
        [
            "run",
            _spec("skip-take-window.pipe"),
            str(INPUT_FILE),
            "-o",
            str(tmp_path / "out.txt"),
            "--trace-jsonl",
            str(trace),
        ]
    )
    assert code == 0
    rows = [json.loads(line) for line in trace.read_text(encoding="utf-8").splitlines()]
    assert [(row["name"], row["input_count"], row["output_count"]) for row in rows] == [
        ("CONSOLE", 0, 5),
        ("SKIP", 5, 3),
        ("TAKE", 3, 3),
        ("CONSOLE", 3, 3),
    ]


def test_check_lists_blocks(capsys):
    assert main(["check", _spec("literal-header-footer.pipe")]) == 0
    assert capsys.readouterr().out == "line 1: LITERAL | CONSOLE\nline 4: CONSOLE | TAKE | LITERAL | CONSOLE\n"


def test_check_reports_parse_errors(tmp_path, capsys):
    bad = tmp_path / "bad.pipe"
    bad.write_text("PIPE COUNT\n| CONSOLE\n", encoding="utf-8")
    assert main(["check", str(bad)]) == 1
    assert "COUNT cannot be the first stage" in capsys.readouterr().err


def test_subcommand_is_required():
    with pytest.raises(SystemExit) as excinfo:
        build_parser().parse_args([])
    assert excinfo.value.code == 2


def test_read_records_strict_and_truncating():
    lines = ["SHORT\n", "\n", "B" * 81 + "\n"]
    with pytest.raises(RecordWidthError):
        list(read_records(lines))
    records = list(read_records(lines, strict=False))
    assert [record.rstrip() for record in records] == ["SHORT", "B" * 80]


def test_run_with_select_as_last_stage(tmp_path, capsys):
    pipe = tmp_path / "tail.pipe"
    pipe.write_text('PIPE CONSOLE\n| FILTER 18,10 = "ENGINEER"\n| SELECT 0,8,0 ?\n', encoding="utf-8")
    assert main(["run", str(pipe), str(INPUT_FILE)]) == 0
    assert capsys.readouterr().out == "JONES\nWILSON\n"
